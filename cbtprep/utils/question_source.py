from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List
from uuid import uuid4

import httpx

from cbtprep import config
from cbtprep.utils.catalog import subject_slug

logger = logging.getLogger(__name__)

USER_AGENT = "CBT-Platform/2.0"


class AlocQuestionSource:
    """
    Thin client for the ALOC past-questions bank.

    fetch_questions() never raises: transport errors, bad statuses and
    malformed payloads all end up as a short (possibly empty) list, and the
    caller tops up from the fallback generator. Consecutive requests are spaced
    by at least `min_interval` seconds, the bank rate-limits aggressively.
    """

    def __init__(
        self,
        base_url: str = config.ALOC_BASE_URL,
        access_token: str = config.ALOC_ACCESS_TOKEN,
        timeout: float = config.ALOC_TIMEOUT,
        min_interval: float = config.ALOC_MIN_INTERVAL,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.min_interval = min_interval
        self._client = client or httpx.Client(timeout=timeout)
        self._last_request = 0.0
        self._throttle_lock = threading.Lock()

    def is_configured(self) -> bool:
        return bool(self.access_token)

    def close(self) -> None:
        self._client.close()

    def fetch_questions(self, subject: str, count: int, exam_type: str = "utme") -> List[Dict[str, Any]]:
        if count <= 0:
            return []
        if not self.is_configured():
            logger.warning("ALOC_ACCESS_TOKEN is not set, skipping question bank for %s", subject)
            return []

        slug = subject_slug(subject)
        try:
            payload = self._request(slug, count, exam_type)
        except Exception:
            logger.exception("Question bank request failed for %s", slug)
            return []
        if payload is None:
            return []

        questions = self._parse(payload, subject, exam_type)[:count]
        logger.info("Question bank returned %d/%d questions for %s", len(questions), count, slug)
        return questions

    # ------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        return {
            "AccessToken": self.access_token,
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _throttle(self) -> None:
        # held while sleeping so concurrent starts queue up behind each other
        with self._throttle_lock:
            wait = self.min_interval - (time.monotonic() - self._last_request)
            if wait > 0:
                time.sleep(wait)
            self._last_request = time.monotonic()

    def _get(self, url: str, params: Dict[str, str]) -> httpx.Response:
        self._throttle()
        return self._client.get(url, params=params, headers=self._headers())

    def _request(self, slug: str, count: int, exam_type: str) -> Any | None:
        url = f"{self.base_url}/q/{count}"
        params = {"subject": slug}
        if exam_type:
            params["type"] = exam_type

        response = self._get(url, params)

        if response.status_code == 429:
            logger.warning("Question bank rate limit hit for %s", slug)
            return None

        # the bank rejects some subject/type combinations; retry with subject only
        if response.status_code in (400, 404) and exam_type:
            logger.info("Retrying %s without exam type (HTTP %d)", slug, response.status_code)
            response = self._get(url, {"subject": slug})

        if not response.is_success:
            logger.warning("Question bank HTTP %d for %s", response.status_code, slug)
            return None
        return response.json()

    # ------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------
    def _parse(self, payload: Any, subject: str, exam_type: str) -> List[Dict[str, Any]]:
        if not isinstance(payload, dict) or not payload.get("data"):
            logger.warning("Unexpected question bank payload for %s", subject)
            return []

        data = payload["data"]
        items = data if isinstance(data, list) else [data]

        seen = set()
        questions = []
        for item in items:
            record = self._parse_one(item, subject, exam_type)
            if record is None or record["id"] in seen:
                continue
            seen.add(record["id"])
            questions.append(record)
        return questions

    @staticmethod
    def _parse_one(item: Any, subject: str, exam_type: str) -> Dict[str, Any] | None:
        if not isinstance(item, dict):
            return None
        options = item.get("option")
        answer = str(item.get("answer") or "").strip().lower()
        if not item.get("question") or not isinstance(options, dict) or not answer:
            return None

        option = {k: str(options.get(k) or options.get(k.upper()) or "") for k in ("a", "b", "c", "d")}
        if answer not in option or not option[answer]:
            return None

        return {
            "id": str(item.get("id") or f"aloc_{uuid4().hex[:12]}"),
            "question": str(item["question"]),
            "option": option,
            "answer": answer,
            "image": item.get("image") or "",
            "solution": item.get("solution") or item.get("explanation") or "",
            "examtype": item.get("examtype") or exam_type,
            "examyear": str(item.get("examyear") or ""),
            "subject": subject,
        }


_default_source: AlocQuestionSource | None = None


def get_question_source() -> AlocQuestionSource:
    """FastAPI dependency; one shared client so the request spacing is process-wide."""
    global _default_source
    if _default_source is None:
        _default_source = AlocQuestionSource()
    return _default_source


def close_question_source() -> None:
    global _default_source
    if _default_source is not None:
        _default_source.close()
        _default_source = None
