from __future__ import annotations

import logging
from typing import Any, Dict, List
from uuid import uuid4

from cbtprep.utils.catalog import load_fallback_banks, OPTION_KEYS

logger = logging.getLogger(__name__)

GENERIC_EXPLANATION = "Practice question - consult your textbooks for detailed explanations."


def _norm(s: str) -> str:
    return (s or "").strip().lower()


class FallbackQuestionGenerator:
    """
    Produces placeholder questions when the question bank under-delivers.

    Records have the same shape as the ones returned by the question source:
    {id, question, option{a..d}, answer, solution, examtype, examyear, subject}.
    Generation is pure: the bank is loaded once, at construction.
    """

    def __init__(self, banks: Dict[str, List[Dict[str, Any]]] | None = None, exam_year: str = "2024"):
        self.banks = banks if banks is not None else load_fallback_banks()
        self.exam_year = exam_year

    def generate(self, subject: str, count: int, exam_type: str = "utme") -> List[Dict[str, Any]]:
        if count <= 0:
            return []

        bank = self.banks.get(_norm(subject))
        batch = uuid4().hex[:8]
        records = []
        for i in range(count):
            template = bank[i % len(bank)] if bank else self._generic(subject, i)
            records.append({
                "id": f"fallback_{_norm(subject) or 'general'}_{i}_{batch}",
                "question": template["question"],
                "option": dict(template["option"]),
                "answer": template["answer"],
                "solution": template["solution"] or GENERIC_EXPLANATION,
                "examtype": exam_type,
                "examyear": self.exam_year,
                "subject": subject,
            })

        logger.info("Generated %d fallback questions for %s", count, subject)
        return records

    @staticmethod
    def _generic(subject: str, index: int) -> Dict[str, Any]:
        label = (subject or "General").strip().title() or "General"
        return {
            "question": f"Sample {label} question {index + 1} for CBT practice.",
            "option": {k: f"Option {k.upper()}" for k in OPTION_KEYS},
            "answer": "a",
            "solution": GENERIC_EXPLANATION,
        }


def get_fallback_generator() -> FallbackQuestionGenerator:
    return FallbackQuestionGenerator()
