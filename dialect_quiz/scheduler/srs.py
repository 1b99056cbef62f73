from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

UTC = timezone.utc
MIN_EASE = 1.3
MAX_EASE = 2.5
EASE_STEP_UP = 0.1
EASE_STEP_DOWN = 0.2


@dataclass
class SpacedRepetitionItem:
    phrase_id: str
    interval: float = 0.0
    repetitions: int = 0
    ease_factor: float = MAX_EASE
    next_review_at: str | None = None
    last_review_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def next_item(
    previous: SpacedRepetitionItem | None,
    *,
    phrase_id: str,
    correct: bool,
    now: datetime | None = None,
) -> SpacedRepetitionItem:
    """Binary-grade SM-2 update: ease moves by +0.1 / -0.2 and a miss resets the interval."""
    now = now or datetime.now(UTC)

    if previous is None:
        return SpacedRepetitionItem(
            phrase_id=phrase_id,
            interval=1.0 if correct else 0.0,
            repetitions=1 if correct else 0,
            ease_factor=MAX_EASE,
            next_review_at=(now + timedelta(days=1 if correct else 0)).isoformat(),
            last_review_at=now.isoformat(),
        )

    if correct:
        ease = min(round(previous.ease_factor + EASE_STEP_UP, 2), MAX_EASE)
        interval = previous.interval * ease
        repetitions = previous.repetitions + 1
    else:
        ease = max(round(previous.ease_factor - EASE_STEP_DOWN, 2), MIN_EASE)
        interval = 1.0
        repetitions = 0

    return SpacedRepetitionItem(
        phrase_id=previous.phrase_id,
        interval=interval,
        repetitions=repetitions,
        ease_factor=ease,
        next_review_at=(now + timedelta(days=round(interval))).isoformat(),
        last_review_at=now.isoformat(),
    )


def is_due(item: SpacedRepetitionItem, now: datetime | None = None) -> bool:
    now = now or datetime.now(UTC)
    due_at = _parse_dt(item.next_review_at)
    return due_at is None or due_at <= now


def due_phrase_ids(items: Iterable[SpacedRepetitionItem], now: datetime | None = None) -> list[str]:
    now = now or datetime.now(UTC)
    due = [item for item in items if is_due(item, now)]
    due.sort(key=lambda item: _parse_dt(item.next_review_at) or now)
    return [item.phrase_id for item in due]


def item_from_row(row: dict | None) -> SpacedRepetitionItem | None:
    if row is None:
        return None
    return SpacedRepetitionItem(
        phrase_id=str(row["phrase_id"]),
        interval=float(row.get("interval_days", row.get("interval", 0.0)) or 0.0),
        repetitions=int(row.get("repetitions", 0) or 0),
        ease_factor=float(row.get("ease_factor", MAX_EASE) or MAX_EASE),
        next_review_at=row.get("next_review_at"),
        last_review_at=row.get("last_review_at"),
    )


def _parse_dt(value: object) -> datetime | None:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
