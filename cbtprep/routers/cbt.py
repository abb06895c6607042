from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cbtprep.database import get_db
from cbtprep.models.session import CbtSession
from cbtprep.models.user import User
from cbtprep.schemas.cbt import (
    CreateSessionRequest,
    SessionOut,
    SubjectOut,
    SubmitAnswerRequest,
    SubmitAnswerResponse,
    CompleteSessionRequest,
    ScoreOut,
    ReviewOut,
    ExplainRequest,
    ExplainResponse,
)
from cbtprep.utils.auth import get_current_user
from cbtprep.utils.catalog import load_subjects
from cbtprep.utils.exam_session import (
    SessionError,
    SessionValidationError,
    AccessDeniedError,
    SessionStateError,
    AssemblyError,
    create_session,
    start_session,
    get_session,
    get_active_session,
    submit_answer,
    complete_session,
    stored_result,
)
from cbtprep.utils.explanations import Explainer, FALLBACK_EXPLANATION, get_explainer
from cbtprep.utils.fallback import FallbackQuestionGenerator, get_fallback_generator
from cbtprep.utils.question_source import AlocQuestionSource, get_question_source
from cbtprep.utils.scoring import build_review

router = APIRouter(prefix="/cbt", tags=["CBT"])

_STATUS_CODES = {
    SessionValidationError: 400,
    AccessDeniedError: 403,
    SessionStateError: 409,
}


def _http_error(e: SessionError) -> HTTPException:
    if isinstance(e, AssemblyError):
        return HTTPException(status_code=500, detail="Unable to start exam, try again")
    return HTTPException(status_code=_STATUS_CODES.get(type(e), 400), detail=str(e))


def _own_session(session_id: str, db: Session, user: User) -> CbtSession:
    session = get_session(db, session_id, user_id=user.id)
    if not session:
        raise HTTPException(status_code=404, detail="CBT session not found")
    return session


def _score_out(session: CbtSession) -> dict:
    return {"session_id": session.id, **stored_result(session).to_dict()}


@router.get("/subjects", response_model=List[SubjectOut])
def list_subjects():
    return [{"id": s["id"], "name": s["name"], "emoji": s["emoji"]} for s in load_subjects()]


@router.post("/sessions", response_model=SessionOut, status_code=201)
def create(payload: CreateSessionRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Creates a SETUP session for exactly 4 subjects.
    Non-premium users must present an unlock code (which upgrades them).
    """
    try:
        return create_session(
            db,
            user,
            [s.model_dump() for s in payload.subjects],
            unlock_code=payload.unlock_code,
            payment_id=payload.payment_id,
            exam_type=payload.exam_type,
        )
    except SessionError as e:
        raise _http_error(e)


@router.get("/sessions/active", response_model=Optional[SessionOut])
def active(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return get_active_session(db, user.id)


@router.get("/sessions/{session_id}", response_model=SessionOut)
def read(session_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return _own_session(session_id, db, user)


@router.post("/sessions/{session_id}/start", response_model=SessionOut)
def start(
    session_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    source: AlocQuestionSource = Depends(get_question_source),
    generator: FallbackQuestionGenerator = Depends(get_fallback_generator),
):
    """Assembles the questions (sequentially per subject) and starts the clock."""
    session = _own_session(session_id, db, user)
    try:
        return start_session(db, session, source, generator)
    except SessionError as e:
        raise _http_error(e)


@router.post("/sessions/{session_id}/answers", response_model=SubmitAnswerResponse)
def answer(session_id: str, payload: SubmitAnswerRequest,
           db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    session = _own_session(session_id, db, user)
    try:
        return submit_answer(db, session, payload.question_id, payload.answer)
    except SessionError as e:
        raise _http_error(e)


@router.post("/sessions/{session_id}/complete", response_model=ScoreOut)
def complete(session_id: str, payload: CompleteSessionRequest | None = None,
             db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Submits the exam. Calling it again returns the same result;
    stats are only updated the first time.
    """
    session = _own_session(session_id, db, user)
    try:
        result = complete_session(db, session, answers=payload.answers if payload else None)
    except SessionError as e:
        raise _http_error(e)
    return {"session_id": session.id, **result.to_dict()}


@router.get("/sessions/{session_id}/review", response_model=ReviewOut)
def review(session_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    session = _own_session(session_id, db, user)
    if not session.is_completed:
        raise HTTPException(status_code=409, detail="Review is available after the exam is submitted")
    return {**_score_out(session), "questions": build_review(session.questions, session.user_answers)}


@router.post("/sessions/{session_id}/explain", response_model=ExplainResponse)
def explain(
    session_id: str,
    payload: ExplainRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    explainer: Explainer = Depends(get_explainer),
):
    session = _own_session(session_id, db, user)
    if not session.is_completed:
        raise HTTPException(status_code=409, detail="Explanations are available after the exam is submitted")

    question = next((q for q in session.questions if q["id"] == payload.question_id), None)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found in this session")

    text = explainer.explain(
        question["question"],
        question["correct_answer"],
        session.user_answers.get(question["id"]),
        question["subject"],
    )
    if text == FALLBACK_EXPLANATION and question.get("explanation"):
        text = question["explanation"]
    return {"question_id": question["id"], "explanation": text}
