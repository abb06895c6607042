from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from cbtprep.database import Base

PAYMENT_PENDING = "pending"
PAYMENT_SUCCESS = "success"
PAYMENT_FAILED = "failed"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    user = relationship("User", back_populates="payments")

    reference = Column(String, unique=True, index=True, nullable=False)  # CBT_<ms>_<rand>
    gateway_reference = Column(String, nullable=True)
    amount = Column(Integer, nullable=False)                             # in kobo
    email = Column(String, nullable=False)
    status = Column(String, default=PAYMENT_PENDING, nullable=False)     # pending|success|failed
    unlock_code = Column(String, nullable=True, index=True)              # 8 digits, for manual entry
    payment_method = Column(String, default="paystack", nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
