from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from cbtprep.database import Base
from datetime import datetime

STATUS_SETUP = "setup"
STATUS_ASSEMBLING = "assembling"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

OPEN_STATUSES = (STATUS_SETUP, STATUS_ASSEMBLING, STATUS_ACTIVE)


class CbtSession(Base):
    """
    One sitting of a combined 4-subject CBT exam.

    Questions are stored as snapshots (full text, options, correct label,
    subject tag) rather than references: the source bank is external and
    grading has to stay stable after the exam was assembled.
    """
    __tablename__ = "cbt_sessions"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    user = relationship("User", back_populates="cbt_sessions")

    selected_subjects = Column(JSON, nullable=False)      # [{id, name, emoji}], fixed at creation
    exam_type = Column(String, nullable=False, default="utme")
    questions_per_subject = Column(Integer, nullable=False, default=20)
    payment_id = Column(String, nullable=True)

    status = Column(String, nullable=False, default=STATUS_SETUP, index=True)
    questions = Column(JSON, nullable=False, default=list)
    fallback_count = Column(Integer, nullable=False, default=0)

    time_allowed = Column(Integer, nullable=False, default=7200)   # seconds
    time_remaining = Column(Integer, nullable=False, default=7200)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # populated at completion only
    score = Column(Integer, nullable=True)
    correct_answers = Column(Integer, nullable=True)
    total_questions = Column(Integer, nullable=True)
    subject_breakdown = Column(JSON, nullable=True)

    answers = relationship(
        "SessionAnswer", back_populates="session", cascade="all, delete-orphan"
    )

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    @property
    def user_answers(self) -> dict[str, str]:
        return {a.question_id: a.answer for a in self.answers}


class SessionAnswer(Base):
    """One row per answered question, so answers to different questions never collide."""
    __tablename__ = "cbt_answers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, ForeignKey("cbt_sessions.id"), nullable=False, index=True)
    session = relationship("CbtSession", back_populates="answers")

    question_id = Column(String, nullable=False)
    answer = Column(String, nullable=False)
    answered_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_answer_per_question"),
    )
