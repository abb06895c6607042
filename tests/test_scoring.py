import random

import pytest

from cbtprep.utils.exam_session import shuffle_questions
from cbtprep.utils.scoring import build_review, percent, score_session


def _questions(per_subject, subjects=("Mathematics", "English", "Biology", "Physics")):
    return [
        {"id": f"{s}-{i}", "subject": s, "correct_answer": "B"}
        for s in subjects
        for i in range(per_subject)
    ]


@pytest.mark.parametrize("correct,total,expected", [
    (62, 80, 78),
    (0, 80, 0),
    (80, 80, 100),
    (1, 8, 13),   # 12.5 rounds up
    (1, 3, 33),
    (2, 3, 67),
    (5, 0, 0),
])
def test_percent_rounds_half_up(correct, total, expected):
    assert percent(correct, total) == expected


def test_example_exam_scores_78():
    questions = _questions(20)
    answers = {q["id"]: "B" for q in questions[:62]}
    result = score_session(questions, answers)
    assert (result.score, result.correct_answers, result.total_questions) == (78, 62, 80)


def test_unanswered_and_wrong_count_as_incorrect():
    questions = _questions(2, subjects=("Physics",))
    result = score_session(questions, {"Physics-0": "A"})
    assert result.correct_answers == 0
    assert result.total_questions == 2
    assert result.subject_breakdown == {"Physics": {"correct": 0, "total": 2}}


def test_breakdown_uses_question_subject():
    questions = _questions(2)
    answers = {"Biology-0": "B", "Biology-1": "B", "English-1": "B"}
    breakdown = score_session(questions, answers).subject_breakdown
    assert breakdown["Biology"] == {"correct": 2, "total": 2}
    assert breakdown["English"] == {"correct": 1, "total": 2}
    assert breakdown["Mathematics"] == {"correct": 0, "total": 2}


def test_missing_subject_falls_into_general():
    result = score_session([{"id": "x", "correct_answer": "A"}], {"x": "A"})
    assert result.subject_breakdown == {"General": {"correct": 1, "total": 1}}


def test_review_marks_each_question():
    questions = _questions(1, subjects=("Physics", "Biology"))
    items = build_review(questions, {"Physics-0": "B", "Biology-0": "D"})
    assert [(i["user_answer"], i["is_correct"]) for i in items] == [("B", True), ("D", False)]


def test_shuffle_is_a_permutation_and_leaves_input_alone():
    questions = _questions(20)
    original = [q["id"] for q in questions]
    shuffled = shuffle_questions(questions, random.Random(42))
    assert sorted(q["id"] for q in shuffled) == sorted(original)
    assert [q["id"] for q in questions] == original
    assert [q["id"] for q in shuffled] != original
