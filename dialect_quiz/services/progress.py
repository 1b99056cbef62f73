from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from dialect_quiz.config import SYNC_INTERVAL_SEC
from dialect_quiz.scheduler.srs import SpacedRepetitionItem, next_item
from dialect_quiz.services.remote import RemoteError, RemoteProgressStore
from dialect_quiz.storage.db import Database, QuizAttempt, UserProgress

logger = logging.getLogger(__name__)

UTC = timezone.utc
CACHE_TTL_SEC = 300.0


@dataclass
class ProgressChange:
    """A local write plus the remote call that mirrors it."""

    label: str
    local: Callable[[Database], Any] | None = None
    remote: Callable[[RemoteProgressStore, Any], None] | None = None
    rollback: Callable[[Database, Any], None] | None = None
    group: str | None = None


@dataclass
class PendingWrite:
    user_id: int
    change: ProgressChange
    result: Any = None
    attempts: int = 0
    queued_at: float = field(default_factory=time.monotonic)


class SyncRejected(RuntimeError):
    def __init__(self, rejected: list[PendingWrite], errors: list[RemoteError]) -> None:
        labels = ", ".join(f"{item.change.label} (user {item.user_id})" for item in rejected)
        super().__init__(f"remote rejected: {labels}")
        self.rejected = rejected
        self.errors = errors


class ProgressService:
    def __init__(
        self,
        store: Database,
        remote: RemoteProgressStore | None = None,
        *,
        sync_interval: float = SYNC_INTERVAL_SEC,
        cache_ttl: float = CACHE_TTL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.remote = remote
        self.sync_interval = sync_interval
        self.cache_ttl = cache_ttl
        self.last_error: str | None = None

        self._clock = clock
        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._cache: dict[int, tuple[float, UserProgress]] = {}
        self._pending: dict[int, list[PendingWrite]] = {}
        self._online = True
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # lifecycle

    def start(self) -> None:
        if self.remote is None or (self._thread and self._thread.is_alive()):
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="progress-sync", daemon=True)
        self._thread.start()
        logger.info("progress sync started (every %.0fs)", self.sync_interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> int:
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("back online, flushing pending progress")
            return self.flush()
        return 0

    # reads

    def get_progress(self, user_id: int, *, force_refresh: bool = False) -> UserProgress:
        now = self._clock()
        with self._lock:
            cached = self._cache.get(user_id)
            if cached and not force_refresh and now - cached[0] < self.cache_ttl:
                return cached[1]
            progress = self.store.get_progress(user_id)
            self._cache[user_id] = (now, progress)
            return progress

    def pending(self, user_id: int | None = None) -> list[PendingWrite]:
        with self._lock:
            if user_id is not None:
                return list(self._pending.get(user_id, []))
            return [item for items in self._pending.values() for item in items]

    # writes

    def apply(self, user_id: int, change: ProgressChange) -> Any:
        """Write locally, refresh the cached copy, then queue the remote mirror."""
        with self._lock:
            result = change.local(self.store) if change.local else None
            self._cache[user_id] = (self._clock(), self.store.get_progress(user_id))
            if self.remote is not None and change.remote is not None:
                self._pending.setdefault(user_id, []).append(PendingWrite(user_id, change, result))
        return result

    def update_progress(self, user_id: int, partial: dict) -> UserProgress:
        self.apply(user_id, ProgressChange("progress update", local=lambda store: store.update_progress(user_id, partial)))
        return self.get_progress(user_id)

    def mark_mastered(self, user_id: int, phrase_id: str) -> bool:
        if phrase_id in self.store.get_mastered_ids(user_id):
            return False
        self.apply(
            user_id,
            ProgressChange(
                f"mastered {phrase_id}",
                local=lambda store: store.mark_mastered(user_id, phrase_id),
                remote=lambda remote, _result: remote.mark_mastered(
                    user_id, phrase_id, mastered_at=datetime.now(UTC).isoformat()
                ),
                rollback=lambda store, _result: store.revert_mastered(user_id, phrase_id),
            ),
        )
        return True

    def record_review(
        self,
        user_id: int,
        phrase_id: str,
        correct: bool,
        *,
        now: datetime | None = None,
    ) -> SpacedRepetitionItem:
        previous = self.store.get_srs_item(user_id, phrase_id)
        item = next_item(previous, phrase_id=phrase_id, correct=correct, now=now)
        self.apply(user_id, ProgressChange(f"review {phrase_id}", local=lambda store: store.save_srs_item(user_id, item)))
        return item

    def record_quiz(
        self,
        user_id: int,
        attempt: QuizAttempt,
        outcomes: Iterable[tuple[str, bool]],
        *,
        now: datetime | None = None,
    ) -> int:
        now = now or datetime.now(UTC)
        outcomes = list(outcomes)

        def write(store: Database) -> dict:
            attempt_id = store.record_quiz_attempt(user_id, attempt, now=now)
            existing = {row["phrase_id"]: row for row in store.get_phrase_progress(user_id)}
            snapshots: list[tuple[str, dict | None]] = []
            rows = []
            for phrase_id, correct in outcomes:
                snapshots.append((phrase_id, existing.get(phrase_id)))
                existing[phrase_id] = store.record_phrase_result(user_id, phrase_id, correct)
                rows.append(existing[phrase_id])
            session_id = store.record_study_session(
                user_id,
                session_type=attempt.quiz_type,
                duration_minutes=round(attempt.time_spent / 60),
                phrases_studied=len(outcomes),
                accuracy_percentage=round(attempt.score / attempt.total_questions * 100) if attempt.total_questions else 0,
                now=now,
            )
            return {"attempt_id": attempt_id, "session_id": session_id, "rows": rows, "snapshots": snapshots}

        def undo(store: Database, res: dict) -> None:
            store.delete_quiz_attempt(res["attempt_id"])
            store.delete_study_session(res["session_id"])
            for phrase_id, snapshot in reversed(res["snapshots"]):
                store.restore_phrase_progress(user_id, phrase_id, snapshot)

        group = f"quiz {uuid.uuid4().hex}"
        result = self.apply(
            user_id,
            ProgressChange(
                "quiz attempt",
                local=write,
                remote=lambda remote, _result: remote.save_quiz_attempt(user_id, vars(attempt)),
                rollback=undo,
                group=group,
            ),
        )
        for row in result["rows"]:
            self.apply(user_id, _phrase_progress_change(user_id, row, group=group))
        return int(result["attempt_id"])

    # sync

    def flush(self) -> int:
        """Push queued writes in order; returns how many the remote accepted."""
        if self.remote is None or not self._online:
            return 0

        sent = 0
        rejected: list[PendingWrite] = []
        errors: list[RemoteError] = []
        with self._flush_lock:
            with self._lock:
                user_ids = list(self._pending)
            for user_id in user_ids:
                while True:
                    with self._lock:
                        queue = self._pending.get(user_id)
                        if not queue:
                            break
                        item = queue[0]
                    item.attempts += 1
                    try:
                        item.change.remote(self.remote, item.result)
                    except RemoteError as exc:
                        self.last_error = str(exc)
                        if exc.retryable:
                            logger.warning("sync of %s deferred: %s", item.change.label, exc)
                            break
                        self._drop(item)
                        self._roll_back(item)
                        self._drop_group(item)
                        rejected.append(item)
                        errors.append(exc)
                        continue
                    self._drop(item)
                    sent += 1

        if sent and not rejected:
            self.last_error = None
        if rejected:
            raise SyncRejected(rejected, errors)
        return sent

    def _drop(self, item: PendingWrite) -> None:
        with self._lock:
            queue = self._pending.get(item.user_id, [])
            if item in queue:
                queue.remove(item)
            if not queue:
                self._pending.pop(item.user_id, None)

    def _drop_group(self, item: PendingWrite) -> None:
        # writes queued alongside a rejected one describe state that was just rolled back
        if item.change.group is None:
            return
        with self._lock:
            queue = [other for other in self._pending.get(item.user_id, []) if other.change.group != item.change.group]
            if queue:
                self._pending[item.user_id] = queue
            else:
                self._pending.pop(item.user_id, None)

    def _roll_back(self, item: PendingWrite) -> None:
        logger.error("remote rejected %s for user %s, rolling back", item.change.label, item.user_id)
        with self._lock:
            if item.change.rollback is not None:
                item.change.rollback(self.store, item.result)
            self._cache[item.user_id] = (self._clock(), self.store.get_progress(item.user_id))

    def _run(self) -> None:
        while not self._stop.wait(self.sync_interval):
            try:
                self.flush()
            except SyncRejected as exc:
                logger.error("%s", exc)


def _phrase_progress_change(user_id: int, row: dict, *, group: str | None = None) -> ProgressChange:
    return ProgressChange(
        f"phrase progress {row['phrase_id']}",
        remote=lambda remote, _result: remote.update_phrase_progress(
            user_id,
            row["phrase_id"],
            correct_count=int(row["correct_count"]),
            incorrect_count=int(row["incorrect_count"]),
            is_mastered=bool(row["is_mastered"]),
            last_reviewed=row.get("last_reviewed"),
        ),
        group=group,
    )
