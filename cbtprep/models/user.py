from datetime import datetime
from sqlalchemy import Column, String, Boolean, Integer, DateTime
from sqlalchemy.orm import relationship
from cbtprep.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    nickname = Column(String, nullable=False)

    # premium unlocks CBT mode; set by payment verification or an unlock code
    is_premium = Column(Boolean, default=False, nullable=False)
    is_activated = Column(Boolean, default=False, nullable=False)

    # cumulative stats, updated once per completed CBT session
    total_score = Column(Integer, default=0, nullable=False)
    tests_completed = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    cbt_sessions = relationship("CbtSession", back_populates="user")
    payments = relationship("Payment", back_populates="user")
    badges = relationship("UserBadge", back_populates="user", cascade="all, delete-orphan")
