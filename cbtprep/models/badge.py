from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from cbtprep.database import Base


class UserBadge(Base):
    __tablename__ = "user_badges"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    user = relationship("User", back_populates="badges")

    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    icon = Column(String, nullable=True)
    rarity = Column(String, default="common", nullable=False)
    unlocked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
