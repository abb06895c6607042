from datetime import datetime
from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional

ExamType = Literal["utme", "wassce", "neco", "post-utme"]

class SubjectRef(BaseModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    emoji: Optional[str] = None

class SubjectOut(BaseModel):
    id: str
    name: str
    emoji: str

class CreateSessionRequest(BaseModel):
    subjects: List[SubjectRef]
    unlock_code: Optional[str] = None
    payment_id: Optional[str] = None
    exam_type: Optional[ExamType] = None

class OptionOut(BaseModel):
    id: str
    text: str

class QuestionOut(BaseModel):
    """Question as shown during the exam: no correct answer, no explanation."""
    id: str
    question: str
    options: List[OptionOut]
    subject: str
    exam_type: Optional[str] = None
    exam_year: Optional[str] = None
    image_url: Optional[str] = None

class SessionOut(BaseModel):
    id: str
    user_id: str
    status: str
    is_active: bool
    is_completed: bool
    selected_subjects: List[SubjectRef]
    exam_type: str
    questions: List[QuestionOut] = []
    user_answers: Dict[str, str] = {}
    time_allowed: int
    time_remaining: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    correct_answers: Optional[int] = None
    total_questions: Optional[int] = None
    class Config:
        from_attributes = True

class SubmitAnswerRequest(BaseModel):
    question_id: str
    answer: str = Field(min_length=1, max_length=1)

class SubmitAnswerResponse(BaseModel):
    question_id: str
    answer: str
    answered_count: int
    time_remaining: int

class CompleteSessionRequest(BaseModel):
    answers: Dict[str, str] = {}
    # reported by the client for information only; the server clock decides
    elapsed_seconds: Optional[int] = Field(default=None, ge=0)

class SubjectScore(BaseModel):
    correct: int
    total: int

class ScoreOut(BaseModel):
    session_id: str
    score: int
    correct_answers: int
    total_questions: int
    subject_breakdown: Dict[str, SubjectScore]

class ReviewItem(QuestionOut):
    correct_answer: str
    explanation: Optional[str] = None
    user_answer: Optional[str] = None
    is_correct: bool

class ReviewOut(ScoreOut):
    questions: List[ReviewItem]

class ExplainRequest(BaseModel):
    question_id: str

class ExplainResponse(BaseModel):
    question_id: str
    explanation: str
