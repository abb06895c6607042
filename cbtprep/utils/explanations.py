from __future__ import annotations

import logging
from typing import Optional

import httpx

from cbtprep import config

logger = logging.getLogger(__name__)

FALLBACK_EXPLANATION = (
    "An AI explanation is not available right now. Review the correct option, "
    "then check the topic in your textbook or class notes."
)


def build_prompt(question: str, correct_answer: str, user_answer: Optional[str], subject: str) -> str:
    attempt = f"The student chose {user_answer}." if user_answer else "The student did not answer."
    return (
        f"You are a friendly tutor helping a Nigerian student prepare for {subject} in JAMB/UTME.\n"
        f"Question: {question}\n"
        f"Correct answer: {correct_answer}\n"
        f"{attempt}\n"
        "Explain briefly why the correct answer is right and, if the student was wrong, "
        "what misconception led to their choice. Keep it under 150 words."
    )


class Explainer:
    """OpenAI-compatible chat-completions call. Any failure yields the static fallback text."""

    def __init__(
        self,
        api_url: str = config.AI_API_URL,
        api_key: str = config.AI_API_KEY,
        model: str = config.AI_MODEL,
        timeout: float = config.AI_TIMEOUT,
        client: httpx.Client | None = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def explain(self, question: str, correct_answer: str, user_answer: Optional[str], subject: str) -> str:
        if not self.api_key:
            return FALLBACK_EXPLANATION

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": build_prompt(question, correct_answer, user_answer, subject)}],
            "temperature": 0.4,
        }
        try:
            response = self._client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            text = response.json()["choices"][0]["message"]["content"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("AI explanation failed: %s", e)
            return FALLBACK_EXPLANATION

        return (text or "").strip() or FALLBACK_EXPLANATION


_default_explainer: Explainer | None = None


def get_explainer() -> Explainer:
    global _default_explainer
    if _default_explainer is None:
        _default_explainer = Explainer()
    return _default_explainer


def close_explainer() -> None:
    global _default_explainer
    if _default_explainer is not None:
        _default_explainer.close()
        _default_explainer = None
