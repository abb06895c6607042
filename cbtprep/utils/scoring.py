from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, List


@dataclass
class ScoreResult:
    score: int
    correct_answers: int
    total_questions: int
    subject_breakdown: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def percent(correct: int, total: int) -> int:
    # integer round-half-up, 62/80 -> 78
    if total <= 0:
        return 0
    return (correct * 200 + total) // (2 * total)


def score_session(questions: List[Dict[str, Any]], user_answers: Dict[str, str]) -> ScoreResult:
    """
    questions: question snapshots stored on the session
    user_answers: {question_id: option label}

    Exact label comparison; an unanswered question counts as wrong.
    total_questions is the number of snapshots, never the number of answers.
    The subject breakdown uses the subject tag captured at assembly time.
    """
    correct = 0
    breakdown: Dict[str, Dict[str, int]] = {}

    for q in questions:
        bucket = breakdown.setdefault(q.get("subject") or "General", {"correct": 0, "total": 0})
        bucket["total"] += 1
        if user_answers.get(q["id"]) == q["correct_answer"]:
            bucket["correct"] += 1
            correct += 1

    total = len(questions)
    return ScoreResult(
        score=percent(correct, total),
        correct_answers=correct,
        total_questions=total,
        subject_breakdown=breakdown,
    )


def build_review(questions: List[Dict[str, Any]], user_answers: Dict[str, str]) -> List[Dict[str, Any]]:
    """Per-question rows for the review screen, in exam order."""
    items = []
    for q in questions:
        answer = user_answers.get(q["id"])
        items.append({
            **q,
            "user_answer": answer,
            "is_correct": answer == q["correct_answer"],
        })
    return items
