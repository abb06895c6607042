from __future__ import annotations

import logging
import random
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cbtprep import config
from cbtprep.models.badge import UserBadge
from cbtprep.models.session import (
    CbtSession,
    SessionAnswer,
    STATUS_SETUP,
    STATUS_ASSEMBLING,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_FAILED,
    OPEN_STATUSES,
)
from cbtprep.models.user import User
from cbtprep.utils.access_gate import authorize
from cbtprep.utils.scoring import ScoreResult, score_session

logger = logging.getLogger(__name__)

OPTION_LABELS = ("A", "B", "C", "D")
FIRST_COMPLETION_BADGE = "Test Taker"


# ------------------------------------------------------------
# Errors
# ------------------------------------------------------------
class SessionError(Exception):
    """Base class for CBT session errors."""


class SessionValidationError(SessionError):
    """Bad input: wrong subject count, unknown question, invalid option."""


class AccessDeniedError(SessionError):
    """User is not premium and presented no valid unlock code."""


class SessionStateError(SessionError):
    """Operation not allowed in the session's current state."""


class AssemblyError(SessionError):
    """No questions could be assembled; the session is left FAILED."""


# ------------------------------------------------------------
# Collaborators
# ------------------------------------------------------------
class QuestionSource(Protocol):
    def fetch_questions(self, subject: str, count: int, exam_type: str = "utme") -> List[Dict[str, Any]]: ...


class QuestionGenerator(Protocol):
    def generate(self, subject: str, count: int, exam_type: str = "utme") -> List[Dict[str, Any]]: ...


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.utcnow()


def _slug(s: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (s or "").strip().lower()).strip("-") or "subject"


def validate_subjects(subjects: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Normalises subject refs to [{id, name, emoji}] and checks that exactly
    SUBJECTS_PER_SESSION distinct subjects (by name, case-insensitive) were chosen.
    """
    required = config.SUBJECTS_PER_SESSION
    if not subjects or len(subjects) != required:
        raise SessionValidationError(f"Exactly {required} subjects must be selected")

    refs = []
    for s in subjects:
        name = str(s.get("name") or "").strip()
        if not name:
            raise SessionValidationError("Every subject needs a name")
        refs.append({
            "id": str(s.get("id") or _slug(name)),
            "name": name,
            "emoji": str(s.get("emoji") or ""),
        })

    if len({r["name"].lower() for r in refs}) != required:
        raise SessionValidationError(f"The {required} selected subjects must be distinct")
    return refs


def seconds_remaining(session: CbtSession, now: Optional[datetime] = None) -> int:
    """Remaining time computed from started_at; client-reported values are never used."""
    if session.started_at is None:
        return session.time_allowed
    elapsed = int((_now(now) - session.started_at).total_seconds())
    return max(0, session.time_allowed - elapsed)


def snapshot_question(session_id: str, position: int, subject: str, index: int, record: Dict[str, Any],
                      source: str, exam_type: str) -> Dict[str, Any]:
    """
    Freezes a raw question record into the shape stored on the session.
    `position` is the subject's slot in the selection; it keeps ids unique even
    when two subject names reduce to the same slug.
    """
    option = record.get("option") or {}
    return {
        "id": f"{session_id}_{position}_{_slug(subject)}_{index}",
        "question": record["question"],
        "options": [{"id": label, "text": option.get(label.lower(), "")} for label in OPTION_LABELS],
        "correct_answer": str(record["answer"]).upper(),
        "subject": subject,
        "explanation": record.get("solution") or f"This is a {subject} question from the past questions bank.",
        "exam_type": record.get("examtype") or exam_type,
        "exam_year": record.get("examyear") or None,
        "image_url": record.get("image") or None,
        "source": source,
    }


def shuffle_questions(questions: List[Dict[str, Any]], rng: Optional[random.Random] = None) -> List[Dict[str, Any]]:
    """Uniform permutation (Fisher-Yates via random.shuffle) of a copy of the list."""
    shuffled = list(questions)
    (rng or random).shuffle(shuffled)
    return shuffled


def assemble_questions(
    session_id: str,
    subjects: List[Dict[str, str]],
    source: QuestionSource,
    generator: QuestionGenerator,
    per_subject: int,
    exam_type: str,
    rng: Optional[random.Random] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Builds the exam: per subject, sequentially, fetch up to `per_subject`
    questions from the source and top up the shortfall from the generator.
    Returns (shuffled snapshots, number of generated questions).

    Raises AssemblyError when a subject ends up with no questions at all.
    """
    combined: List[Dict[str, Any]] = []
    generated_total = 0

    # one subject at a time: the question bank rate-limits parallel requests
    for position, subject in enumerate(subjects):
        name = subject["name"]
        fetched = source.fetch_questions(name, per_subject, exam_type)[:per_subject]
        shortfall = per_subject - len(fetched)
        generated = generator.generate(name, shortfall, exam_type) if shortfall > 0 else []

        if not fetched and not generated:
            raise AssemblyError(f"No questions available for {name}")
        if generated:
            logger.info("%s: %d from question bank, %d generated", name, len(fetched), len(generated))

        records = [(r, "aloc") for r in fetched] + [(r, "fallback") for r in generated]
        combined.extend(
            snapshot_question(session_id, position, name, i, r, src, exam_type)
            for i, (r, src) in enumerate(records)
        )
        generated_total += len(generated)

    return shuffle_questions(combined, rng), generated_total


# ------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------
def create_session(
    db: Session,
    user: User,
    subjects: List[Dict[str, Any]],
    unlock_code: Optional[str] = None,
    payment_id: Optional[str] = None,
    exam_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CbtSession:
    """
    Validates the subject selection and the user's access, then persists a
    SETUP session. Questions are fetched later, by start_session().
    """
    refs = validate_subjects(subjects)

    decision = authorize(db, user, unlock_code)
    if not decision.allowed:
        raise AccessDeniedError(decision.reason)

    running = (
        db.query(CbtSession)
        .filter(CbtSession.user_id == user.id, CbtSession.status.in_((STATUS_ASSEMBLING, STATUS_ACTIVE)))
        .all()
    )
    for other in running:
        refresh_timer(db, other, now=now)
        if other.status in (STATUS_ASSEMBLING, STATUS_ACTIVE):
            raise SessionStateError(f"You already have an exam in progress ({other.id})")

    session = CbtSession(
        id=str(uuid4()),
        user_id=user.id,
        selected_subjects=refs,
        exam_type=(exam_type or config.DEFAULT_EXAM_TYPE).strip().lower(),
        questions_per_subject=config.QUESTIONS_PER_SUBJECT,
        payment_id=payment_id,
        status=STATUS_SETUP,
        questions=[],
        time_allowed=config.CBT_TIME_ALLOWED,
        time_remaining=config.CBT_TIME_ALLOWED,
        created_at=_now(now),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info("CBT session %s created for user %s: %s",
                session.id, user.id, ", ".join(r["name"] for r in refs))
    return session


def start_session(
    db: Session,
    session: CbtSession,
    source: QuestionSource,
    generator: QuestionGenerator,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> CbtSession:
    """
    SETUP -> ASSEMBLING -> ACTIVE. Starting an ACTIVE session returns it as is.
    """
    if session.status == STATUS_ACTIVE:
        return refresh_timer(db, session, now=now)
    if session.status != STATUS_SETUP:
        raise SessionStateError(f"Session cannot be started from state '{session.status}'")

    decision = authorize(db, session.user)
    if not decision.allowed:
        raise AccessDeniedError(decision.reason)

    claimed = (
        db.query(CbtSession)
        .filter(CbtSession.id == session.id, CbtSession.status == STATUS_SETUP)
        .update({CbtSession.status: STATUS_ASSEMBLING}, synchronize_session=False)
    )
    db.commit()
    db.refresh(session)
    if not claimed:
        raise SessionStateError("Session is already being started")

    try:
        questions, generated = assemble_questions(
            session.id,
            session.selected_subjects,
            source,
            generator,
            session.questions_per_subject,
            session.exam_type,
            rng=rng,
        )
    except Exception as e:
        db.rollback()
        session.status = STATUS_FAILED
        db.commit()
        logger.error("CBT session %s failed to assemble: %s", session.id, e)
        if isinstance(e, AssemblyError):
            raise
        raise AssemblyError(str(e)) from e

    started = _now(now)
    session.questions = questions
    session.total_questions = len(questions)
    session.fallback_count = generated
    session.time_allowed = config.CBT_TIME_ALLOWED
    session.time_remaining = config.CBT_TIME_ALLOWED
    session.started_at = started
    session.status = STATUS_ACTIVE
    db.commit()
    db.refresh(session)

    logger.info("CBT session %s started with %d questions (%d generated)",
                session.id, len(questions), generated)
    return session


def refresh_timer(db: Session, session: CbtSession, now: Optional[datetime] = None) -> CbtSession:
    """Updates time_remaining of an ACTIVE session and completes it once time is up."""
    if session.status != STATUS_ACTIVE:
        return session

    remaining = seconds_remaining(session, now)
    if remaining <= 0:
        logger.info("CBT session %s ran out of time", session.id)
        complete_session(db, session, now=now)
        return session

    if session.time_remaining != remaining:
        session.time_remaining = remaining
        db.commit()
    return session


def get_session(db: Session, session_id: str, user_id: Optional[str] = None,
                now: Optional[datetime] = None) -> Optional[CbtSession]:
    session = db.get(CbtSession, session_id)
    if not session or (user_id is not None and session.user_id != user_id):
        return None
    return refresh_timer(db, session, now=now)


def get_active_session(db: Session, user_id: str, now: Optional[datetime] = None) -> Optional[CbtSession]:
    """Most recent unfinished session of the user (ACTIVE preferred over SETUP)."""
    candidates = (
        db.query(CbtSession)
        .filter(
            CbtSession.user_id == user_id,
            CbtSession.status.in_(OPEN_STATUSES),
        )
        .order_by(CbtSession.created_at.desc())
        .all()
    )
    for s in candidates:
        refresh_timer(db, s, now=now)

    running = [s for s in candidates if s.status in (STATUS_ACTIVE, STATUS_ASSEMBLING)]
    waiting = [s for s in candidates if s.status == STATUS_SETUP]
    return (running or waiting or [None])[0]


def _find_question(session: CbtSession, question_id: str) -> Dict[str, Any]:
    for q in session.questions or []:
        if q["id"] == question_id:
            return q
    raise SessionValidationError(f"Question {question_id} does not belong to this session")


def _normalize_answer(question: Dict[str, Any], answer: str) -> str:
    label = (answer or "").strip().upper()
    if label not in {o["id"] for o in question["options"]}:
        raise SessionValidationError(f"Invalid option '{answer}'")
    return label


def _save_answers(db: Session, session_id: str, labels: Dict[str, str], now: datetime) -> None:
    """Upserts {question_id: label} in one commit; last write wins per question."""
    for attempt in range(2):
        existing = {
            row.question_id: row
            for row in db.query(SessionAnswer).filter(
                SessionAnswer.session_id == session_id,
                SessionAnswer.question_id.in_(list(labels)),
            )
        }
        for question_id, label in labels.items():
            row = existing.get(question_id)
            if row:
                row.answer = label
                row.answered_at = now
            else:
                db.add(SessionAnswer(session_id=session_id, question_id=question_id, answer=label, answered_at=now))
        try:
            db.commit()
            return
        except IntegrityError:
            # a concurrent request inserted one of these questions first
            db.rollback()
            if attempt:
                raise


def _validated_answers(session: CbtSession, answers: Dict[str, str]) -> Dict[str, str]:
    """Checks every entry before anything is written; returns {question_id: label}."""
    return {qid: _normalize_answer(_find_question(session, qid), answer) for qid, answer in answers.items()}


def submit_answer(db: Session, session: CbtSession, question_id: str, answer: str,
                  now: Optional[datetime] = None) -> Dict[str, Any]:
    """Records (or overwrites) the answer to one question of an ACTIVE session."""
    refresh_timer(db, session, now=now)
    if session.status == STATUS_COMPLETED:
        raise SessionStateError("Exam already submitted or time is up")
    if session.status != STATUS_ACTIVE:
        raise SessionStateError("Exam has not started")

    label = _validated_answers(session, {question_id: answer})[question_id]
    _save_answers(db, session.id, {question_id: label}, _now(now))

    db.refresh(session)
    return {
        "question_id": question_id,
        "answer": label,
        "answered_count": len(session.answers),
        "time_remaining": seconds_remaining(session, now),
    }


def stored_result(session: CbtSession) -> ScoreResult:
    return ScoreResult(
        score=session.score or 0,
        correct_answers=session.correct_answers or 0,
        total_questions=session.total_questions or 0,
        subject_breakdown=session.subject_breakdown or {},
    )


def _award_first_completion_badge(db: Session, user_id: str, now: datetime) -> None:
    exists = (
        db.query(UserBadge.id)
        .filter(UserBadge.user_id == user_id, UserBadge.title == FIRST_COMPLETION_BADGE)
        .first()
    )
    if exists:
        return
    db.add(UserBadge(
        id=str(uuid4()),
        user_id=user_id,
        title=FIRST_COMPLETION_BADGE,
        description="Completed your first CBT exam",
        icon="award",
        rarity="common",
        unlocked_at=now,
    ))


def complete_session(
    db: Session,
    session: CbtSession,
    answers: Optional[Dict[str, str]] = None,
    now: Optional[datetime] = None,
) -> ScoreResult:
    """
    ACTIVE -> COMPLETED, exactly once.

    Final answers are merged in unless time is already up. The score, the user's
    cumulative stats and the first-completion badge are written in the same
    transaction as the state change. Completing a COMPLETED session returns the
    stored result without touching anything.
    """
    if session.status == STATUS_COMPLETED:
        return stored_result(session)
    if session.status != STATUS_ACTIVE:
        raise SessionStateError("Exam has not started")

    finished = _now(now)
    remaining = seconds_remaining(session, finished)

    if answers:
        if remaining <= 0:
            logger.info("Ignoring %d late answers for session %s", len(answers), session.id)
        else:
            _save_answers(db, session.id, _validated_answers(session, answers), finished)
            db.refresh(session)

    result = score_session(session.questions or [], session.user_answers)

    claimed = (
        db.query(CbtSession)
        .filter(CbtSession.id == session.id, CbtSession.status == STATUS_ACTIVE)
        .update(
            {
                CbtSession.status: STATUS_COMPLETED,
                CbtSession.completed_at: finished,
                CbtSession.time_remaining: remaining,
                CbtSession.score: result.score,
                CbtSession.correct_answers: result.correct_answers,
                CbtSession.total_questions: result.total_questions,
                CbtSession.subject_breakdown: result.subject_breakdown,
            },
            synchronize_session=False,
        )
    )
    if not claimed:
        # lost the race against another completion request
        db.rollback()
        db.refresh(session)
        if session.status == STATUS_COMPLETED:
            return stored_result(session)
        raise SessionStateError(f"Session cannot be completed from state '{session.status}'")

    db.query(User).filter(User.id == session.user_id).update(
        {
            User.total_score: User.total_score + result.correct_answers,
            User.tests_completed: User.tests_completed + 1,
        },
        synchronize_session=False,
    )
    _award_first_completion_badge(db, session.user_id, finished)
    db.commit()
    db.refresh(session)

    logger.info("CBT session %s completed: %d/%d (%d%%)",
                session.id, result.correct_answers, result.total_questions, result.score)
    return result
