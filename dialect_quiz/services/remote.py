from __future__ import annotations

import logging
from typing import Any

import httpx

from dialect_quiz.config import REMOTE_KEY, REMOTE_TIMEOUT_SEC, REMOTE_URL

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {408, 425, 429}


class RemoteError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class RemoteProgressStore:
    """Mirror of quiz progress on a hosted PostgREST backend."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = REMOTE_TIMEOUT_SEC,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_env(cls) -> RemoteProgressStore | None:
        if not REMOTE_URL or not REMOTE_KEY:
            return None
        return cls(REMOTE_URL, REMOTE_KEY)

    def save_quiz_attempt(self, user_id: int, attempt: dict) -> None:
        row = {
            "user_id": user_id,
            "quiz_type": attempt.get("quiz_type"),
            "score": attempt.get("score"),
            "total_questions": attempt.get("total_questions"),
            "difficulty": attempt.get("difficulty"),
            "source_dialect": attempt.get("source_dialect"),
            "target_dialect": attempt.get("target_dialect"),
            "time_spent": attempt.get("time_spent", 0),
            "phrases_tested": list(attempt.get("phrases_tested") or []),
            "correct_phrases": list(attempt.get("correct_phrases") or []),
        }
        self._request("POST", "/rest/v1/quiz_attempts", json=row)

    def update_phrase_progress(
        self,
        user_id: int,
        phrase_id: str,
        *,
        correct_count: int,
        incorrect_count: int,
        is_mastered: bool,
        last_reviewed: str | None = None,
    ) -> None:
        row = {
            "user_id": user_id,
            "phrase_id": phrase_id,
            "correct_count": correct_count,
            "incorrect_count": incorrect_count,
            "is_mastered": is_mastered,
            "last_reviewed": last_reviewed,
        }
        self._upsert_phrase_progress(row)

    def mark_mastered(self, user_id: int, phrase_id: str, *, mastered_at: str | None = None) -> None:
        self._upsert_phrase_progress(
            {"user_id": user_id, "phrase_id": phrase_id, "is_mastered": True, "mastered_at": mastered_at}
        )

    def _upsert_phrase_progress(self, row: dict) -> None:
        self._request(
            "POST",
            "/rest/v1/phrase_progress",
            params={"on_conflict": "user_id,phrase_id"},
            json=row,
            prefer="resolution=merge-duplicates",
        )

    def _request(self, method: str, path: str, *, prefer: str | None = None, **kwargs: Any) -> httpx.Response:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.request(method, self.base_url + path, headers=headers, **kwargs)
                resp.raise_for_status()
                return resp
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            retryable = status >= 500 or status in RETRYABLE_STATUSES
            logger.error("remote %s %s rejected with %s", method, path, status)
            raise RemoteError(f"remote returned {status} for {path}", status=status, retryable=retryable) from exc
        except httpx.HTTPError as exc:
            logger.error("remote %s %s failed", method, path, exc_info=True)
            raise RemoteError(f"remote request failed: {exc}", retryable=True) from exc
