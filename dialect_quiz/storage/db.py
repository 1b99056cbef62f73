from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Sequence

from dialect_quiz.config import DB_PATH, TARGET_DIALECTS
from dialect_quiz.scheduler.srs import SpacedRepetitionItem, item_from_row

UTC = timezone.utc
DEFAULT_USER_ID = 1
ALLOWED_THEMES = {"light", "dark", "auto"}
ALLOWED_PREFERENCE_DIALECTS = {*TARGET_DIALECTS, "all"}
PROGRESS_FIELDS = {
    "preferences",
    "phrases_learned",
    "phrases_in_progress",
    "spaced_repetition",
    "streak_days",
    "total_study_time",
}

logger = logging.getLogger(__name__)


@dataclass
class Preferences:
    target_dialect: str = "all"
    daily_goal: int = 10
    sound_enabled: bool = True
    theme: str = "auto"
    reminder_time: str | None = None


@dataclass
class QuizScore:
    date: str
    score: int
    total: int
    time_spent: int = 0
    quiz_type: str | None = None
    difficulty: str | None = None
    target_dialect: str | None = None


@dataclass
class QuizAttempt:
    quiz_type: str
    score: int
    total_questions: int
    difficulty: str | None = None
    source_dialect: str | None = None
    target_dialect: str | None = None
    time_spent: int = 0
    correct_phrases: list[str] = field(default_factory=list)
    phrases_tested: list[str] = field(default_factory=list)
    questions: list[dict] = field(default_factory=list)


@dataclass
class UserProgress:
    user_id: int
    phrases_learned: list[str] = field(default_factory=list)
    phrases_in_progress: list[str] = field(default_factory=list)
    quiz_scores: list[QuizScore] = field(default_factory=list)
    spaced_repetition: list[SpacedRepetitionItem] = field(default_factory=list)
    streak_days: int = 0
    last_active_date: str | None = None
    total_study_time: int = 0
    preferences: Preferences = field(default_factory=Preferences)

    def to_dict(self) -> dict:
        return asdict(self)


class Database:
    def __init__(self, db_path: Path = DB_PATH) -> None:
        self.db_path = db_path

    @contextmanager
    def connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        schema_path = Path(__file__).with_name("schema.sql")
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(schema_path.read_text(encoding="utf-8"))
        self.ensure_default_users()

    def ensure_default_users(self) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO users (id, display_name) VALUES (?, 'Learner')",
                (DEFAULT_USER_ID,),
            )

    # users and sessions

    def create_user(self, *, display_name: str, email: str | None = None) -> dict:
        name = " ".join(display_name.split()).strip()
        if not name:
            raise ValueError("display name is empty")
        with self.connect() as conn:
            row = conn.execute(
                "INSERT INTO users (display_name, email) VALUES (?, ?) RETURNING *",
                (name, _normalize_email(email)),
            ).fetchone()
        return dict(row)

    def get_user(self, user_id: int) -> dict | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    def get_user_by_email(self, email: str) -> dict | None:
        normalized = _normalize_email(email)
        if not normalized:
            return None
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (normalized,)).fetchone()
        return dict(row) if row else None

    def update_user(
        self,
        user_id: int,
        *,
        display_name: str | None = None,
        email: str | None = None,
        avatar: str | None = None,
    ) -> dict:
        current = self.get_user(user_id)
        if current is None:
            raise ValueError(f"user {user_id} not found")
        name = " ".join((display_name if display_name is not None else current["display_name"]).split())
        if not name:
            raise ValueError("display name is empty")
        with self.connect() as conn:
            conn.execute(
                """
                UPDATE users
                SET display_name = ?, email = ?, avatar = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (
                    name,
                    _normalize_email(email) if email is not None else current["email"],
                    avatar if avatar is not None else current["avatar"],
                    user_id,
                ),
            )
        return self.get_user(user_id)

    def create_session(self, user_id: int, token: str) -> None:
        with self.connect() as conn:
            conn.execute("INSERT INTO user_sessions (token, user_id) VALUES (?, ?)", (token, user_id))

    def get_session_user(self, token: str) -> dict | None:
        with self.connect() as conn:
            row = conn.execute(
                """
                SELECT u.* FROM user_sessions s
                JOIN users u ON u.id = s.user_id
                WHERE s.token = ? AND s.revoked_at IS NULL
                """,
                (token,),
            ).fetchone()
        return dict(row) if row else None

    def revoke_session(self, token: str) -> bool:
        with self.connect() as conn:
            cur = conn.execute(
                "UPDATE user_sessions SET revoked_at = ? WHERE token = ? AND revoked_at IS NULL",
                (_iso_now(), token),
            )
        return cur.rowcount > 0

    # preferences

    def get_preferences(self, user_id: int) -> Preferences:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM user_preferences WHERE user_id = ?", (user_id,)).fetchone()
        if not row:
            return Preferences()
        return Preferences(
            target_dialect=_normalize_target_dialect(row["target_dialect"]),
            daily_goal=int(row["daily_goal"]),
            sound_enabled=bool(row["sound_enabled"]),
            theme=_normalize_theme(row["theme"]),
            reminder_time=row["reminder_time"],
        )

    def update_preferences(self, user_id: int, settings: dict) -> Preferences:
        current = self.get_preferences(user_id)
        merged = Preferences(
            target_dialect=_normalize_target_dialect(settings.get("target_dialect", current.target_dialect)),
            daily_goal=max(1, min(int(settings.get("daily_goal", current.daily_goal)), 200)),
            sound_enabled=bool(settings.get("sound_enabled", current.sound_enabled)),
            theme=_normalize_theme(settings.get("theme", current.theme)),
            reminder_time=settings.get("reminder_time", current.reminder_time),
        )
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO user_preferences (user_id, target_dialect, daily_goal, sound_enabled, theme, reminder_time)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id)
                DO UPDATE SET
                  target_dialect = excluded.target_dialect,
                  daily_goal = excluded.daily_goal,
                  sound_enabled = excluded.sound_enabled,
                  theme = excluded.theme,
                  reminder_time = excluded.reminder_time,
                  updated_at = CURRENT_TIMESTAMP
                """,
                (
                    user_id,
                    merged.target_dialect,
                    merged.daily_goal,
                    int(merged.sound_enabled),
                    merged.theme,
                    merged.reminder_time,
                ),
            )
        return merged

    # progress aggregate

    def get_progress(self, user_id: int) -> UserProgress:
        with self.connect() as conn:
            stats = conn.execute("SELECT * FROM user_stats WHERE user_id = ?", (user_id,)).fetchone()
        return UserProgress(
            user_id=user_id,
            phrases_learned=self.get_mastered_ids(user_id),
            phrases_in_progress=self.get_in_progress_ids(user_id),
            quiz_scores=[_score_from_attempt(row) for row in reversed(self.list_quiz_attempts(user_id, limit=200))],
            spaced_repetition=self.list_srs_items(user_id),
            streak_days=int(stats["streak_days"]) if stats else 0,
            last_active_date=stats["last_active_at"] if stats else None,
            total_study_time=int(stats["total_study_time"]) if stats else 0,
            preferences=self.get_preferences(user_id),
        )

    def update_progress(self, user_id: int, partial: dict) -> UserProgress:
        unknown = set(partial) - PROGRESS_FIELDS
        if unknown:
            raise ValueError(f"unsupported progress fields: {', '.join(sorted(unknown))}")

        if "preferences" in partial:
            self.update_preferences(user_id, dict(partial["preferences"] or {}))
        for phrase_id in partial.get("phrases_learned") or []:
            self.mark_mastered(user_id, str(phrase_id))
        if "phrases_in_progress" in partial:
            self.set_in_progress(user_id, [str(pid) for pid in partial["phrases_in_progress"] or []])
        for item in partial.get("spaced_repetition") or []:
            self.save_srs_item(user_id, item)

        stats_update = {key: partial[key] for key in ("streak_days", "total_study_time") if key in partial}
        with self.connect() as conn:
            self._touch_stats(conn, user_id)
            if "streak_days" in stats_update:
                conn.execute(
                    "UPDATE user_stats SET streak_days = ? WHERE user_id = ?",
                    (max(0, int(stats_update["streak_days"])), user_id),
                )
            if "total_study_time" in stats_update:
                conn.execute(
                    "UPDATE user_stats SET total_study_time = ? WHERE user_id = ?",
                    (max(0, int(stats_update["total_study_time"])), user_id),
                )
        return self.get_progress(user_id)

    # mastery

    def mark_mastered(self, user_id: int, phrase_id: str) -> bool:
        """Add ``phrase_id`` to the mastered set; returns False when it was already there."""
        now = _iso_now()
        with self.connect() as conn:
            row = conn.execute(
                "SELECT is_mastered FROM phrase_progress WHERE user_id = ? AND phrase_id = ?",
                (user_id, phrase_id),
            ).fetchone()
            if row and row["is_mastered"]:
                return False
            conn.execute(
                """
                INSERT INTO phrase_progress (user_id, phrase_id, is_mastered, in_progress, mastered_at, last_reviewed)
                VALUES (?, ?, 1, 0, ?, ?)
                ON CONFLICT(user_id, phrase_id)
                DO UPDATE SET
                  is_mastered = 1,
                  in_progress = 0,
                  mastered_at = COALESCE(phrase_progress.mastered_at, excluded.mastered_at),
                  updated_at = CURRENT_TIMESTAMP
                """,
                (user_id, phrase_id, now, now),
            )
        logger.info("user %s mastered phrase %s", user_id, phrase_id)
        return True

    def revert_mastered(self, user_id: int, phrase_id: str) -> None:
        """Undo a mastery mark that the remote mirror refused."""
        with self.connect() as conn:
            conn.execute(
                """
                UPDATE phrase_progress
                SET is_mastered = 0, mastered_at = NULL, updated_at = CURRENT_TIMESTAMP
                WHERE user_id = ? AND phrase_id = ?
                """,
                (user_id, phrase_id),
            )

    def get_mastered_ids(self, user_id: int) -> list[str]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT phrase_id FROM phrase_progress
                WHERE user_id = ? AND is_mastered = 1
                ORDER BY mastered_at ASC, id ASC
                """,
                (user_id,),
            ).fetchall()
        return [str(row["phrase_id"]) for row in rows]

    def get_in_progress_ids(self, user_id: int) -> list[str]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT phrase_id FROM phrase_progress
                WHERE user_id = ? AND in_progress = 1 AND is_mastered = 0
                ORDER BY id ASC
                """,
                (user_id,),
            ).fetchall()
        return [str(row["phrase_id"]) for row in rows]

    def set_in_progress(self, user_id: int, phrase_ids: Sequence[str]) -> None:
        wanted = list(dict.fromkeys(phrase_ids))
        with self.connect() as conn:
            conn.execute(
                "UPDATE phrase_progress SET in_progress = 0 WHERE user_id = ? AND is_mastered = 0",
                (user_id,),
            )
            for phrase_id in wanted:
                conn.execute(
                    """
                    INSERT INTO phrase_progress (user_id, phrase_id, in_progress)
                    VALUES (?, ?, 1)
                    ON CONFLICT(user_id, phrase_id)
                    DO UPDATE SET
                      in_progress = CASE WHEN phrase_progress.is_mastered = 1 THEN 0 ELSE 1 END,
                      updated_at = CURRENT_TIMESTAMP
                    """,
                    (user_id, phrase_id),
                )

    def record_phrase_result(self, user_id: int, phrase_id: str, correct: bool) -> dict:
        now = _iso_now()
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO phrase_progress
                  (user_id, phrase_id, correct_count, incorrect_count, is_mastered, mastered_at, last_reviewed)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, phrase_id)
                DO UPDATE SET
                  correct_count = phrase_progress.correct_count + excluded.correct_count,
                  incorrect_count = phrase_progress.incorrect_count + excluded.incorrect_count,
                  is_mastered = MAX(phrase_progress.is_mastered, excluded.is_mastered),
                  in_progress = CASE WHEN excluded.is_mastered = 1 THEN 0 ELSE phrase_progress.in_progress END,
                  mastered_at = COALESCE(phrase_progress.mastered_at, excluded.mastered_at),
                  last_reviewed = excluded.last_reviewed,
                  updated_at = CURRENT_TIMESTAMP
                """,
                (
                    user_id,
                    phrase_id,
                    1 if correct else 0,
                    0 if correct else 1,
                    1 if correct else 0,
                    now if correct else None,
                    now,
                ),
            )
            row = conn.execute(
                "SELECT * FROM phrase_progress WHERE user_id = ? AND phrase_id = ?",
                (user_id, phrase_id),
            ).fetchone()
        return dict(row)

    def get_phrase_progress(self, user_id: int) -> list[dict]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM phrase_progress WHERE user_id = ? ORDER BY id ASC",
                (user_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def restore_phrase_progress(self, user_id: int, phrase_id: str, snapshot: dict | None) -> None:
        """Put a phrase row back to an earlier copy; None removes it."""
        with self.connect() as conn:
            if snapshot is None:
                conn.execute("DELETE FROM phrase_progress WHERE user_id = ? AND phrase_id = ?", (user_id, phrase_id))
                return
            conn.execute(
                """
                UPDATE phrase_progress
                SET correct_count = ?, incorrect_count = ?, is_mastered = ?, in_progress = ?,
                    mastered_at = ?, last_reviewed = ?, updated_at = CURRENT_TIMESTAMP
                WHERE user_id = ? AND phrase_id = ?
                """,
                (
                    snapshot["correct_count"],
                    snapshot["incorrect_count"],
                    snapshot["is_mastered"],
                    snapshot["in_progress"],
                    snapshot["mastered_at"],
                    snapshot["last_reviewed"],
                    user_id,
                    phrase_id,
                ),
            )

    # quiz history

    def record_quiz_attempt(self, user_id: int, attempt: QuizAttempt, *, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        with self.connect() as conn:
            row = conn.execute(
                """
                INSERT INTO quiz_attempts (
                  user_id, quiz_type, score, total_questions, difficulty, source_dialect,
                  target_dialect, time_spent, phrases_tested, correct_phrases, questions, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING id
                """,
                (
                    user_id,
                    attempt.quiz_type,
                    attempt.score,
                    attempt.total_questions,
                    attempt.difficulty,
                    attempt.source_dialect,
                    attempt.target_dialect,
                    max(0, int(attempt.time_spent)),
                    _json_dumps(list(attempt.phrases_tested)),
                    _json_dumps(list(attempt.correct_phrases)),
                    _json_dumps(list(attempt.questions)),
                    now.isoformat(),
                ),
            ).fetchone()
            attempt_id = int(row[0])
            self._touch_stats(conn, user_id, now=now)
            conn.execute(
                "UPDATE user_stats SET total_study_time = total_study_time + ? WHERE user_id = ?",
                (max(0, int(attempt.time_spent)), user_id),
            )
            conn.execute(
                "UPDATE user_stats SET streak_days = ? WHERE user_id = ?",
                (_day_streak(_attempt_days(conn, user_id), today=now.date()), user_id),
            )
        logger.info(
            "recorded quiz attempt %s for user %s: %s/%s",
            attempt_id,
            user_id,
            attempt.score,
            attempt.total_questions,
        )
        return attempt_id

    def delete_quiz_attempt(self, attempt_id: int, *, now: datetime | None = None) -> bool:
        """Remove an attempt and take back the study time and streak it added."""
        now = now or datetime.now(UTC)
        with self.connect() as conn:
            row = conn.execute("SELECT user_id, time_spent FROM quiz_attempts WHERE id = ?", (attempt_id,)).fetchone()
            if row is None:
                return False
            user_id = int(row["user_id"])
            conn.execute("DELETE FROM quiz_attempts WHERE id = ?", (attempt_id,))
            conn.execute(
                "UPDATE user_stats SET total_study_time = MAX(0, total_study_time - ?) WHERE user_id = ?",
                (int(row["time_spent"]), user_id),
            )
            conn.execute(
                "UPDATE user_stats SET streak_days = ? WHERE user_id = ?",
                (_day_streak(_attempt_days(conn, user_id), today=now.date()), user_id),
            )
        return True

    def list_quiz_attempts(self, user_id: int, limit: int = 50) -> list[dict]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM quiz_attempts
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [_decode_attempt(row) for row in rows]

    def record_study_session(
        self,
        user_id: int,
        *,
        session_type: str,
        duration_minutes: int,
        phrases_studied: int,
        accuracy_percentage: int | None = None,
        now: datetime | None = None,
    ) -> int:
        now = now or datetime.now(UTC)
        with self.connect() as conn:
            row = conn.execute(
                """
                INSERT INTO study_sessions (user_id, session_type, duration_minutes, phrases_studied, accuracy_percentage, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                RETURNING id
                """,
                (user_id, session_type, duration_minutes, phrases_studied, accuracy_percentage, now.isoformat()),
            ).fetchone()
            return int(row[0])

    def delete_study_session(self, session_id: int) -> bool:
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM study_sessions WHERE id = ?", (session_id,))
        return cur.rowcount > 0

    def export_quiz_history(self, user_id: int) -> list[dict]:
        attempts = self.list_quiz_attempts(user_id, limit=10_000)
        return [
            {
                "date": item["created_at"],
                "quiz_type": item["quiz_type"],
                "difficulty": item["difficulty"] or "",
                "target_dialect": item["target_dialect"] or "",
                "score": item["score"],
                "total": item["total_questions"],
                "percentage": _percentage(item["score"], item["total_questions"]),
                "time_spent": item["time_spent"],
            }
            for item in reversed(attempts)
        ]

    # spaced repetition

    def get_srs_item(self, user_id: int, phrase_id: str) -> SpacedRepetitionItem | None:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM srs_items WHERE user_id = ? AND phrase_id = ?",
                (user_id, phrase_id),
            ).fetchone()
        return item_from_row(dict(row)) if row else None

    def save_srs_item(self, user_id: int, item: SpacedRepetitionItem) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO srs_items (user_id, phrase_id, interval_days, repetitions, ease_factor, next_review_at, last_review_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, phrase_id)
                DO UPDATE SET
                  interval_days = excluded.interval_days,
                  repetitions = excluded.repetitions,
                  ease_factor = excluded.ease_factor,
                  next_review_at = excluded.next_review_at,
                  last_review_at = excluded.last_review_at
                """,
                (
                    user_id,
                    item.phrase_id,
                    item.interval,
                    item.repetitions,
                    item.ease_factor,
                    item.next_review_at,
                    item.last_review_at,
                ),
            )

    def list_srs_items(self, user_id: int) -> list[SpacedRepetitionItem]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM srs_items WHERE user_id = ? ORDER BY next_review_at ASC",
                (user_id,),
            ).fetchall()
        return [item_from_row(dict(row)) for row in rows]

    def due_srs_items(self, user_id: int, *, now: datetime | None = None, limit: int = 50) -> list[SpacedRepetitionItem]:
        now = now or datetime.now(UTC)
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM srs_items
                WHERE user_id = ? AND (next_review_at IS NULL OR next_review_at <= ?)
                ORDER BY next_review_at ASC
                LIMIT ?
                """,
                (user_id, now.isoformat(), limit),
            ).fetchall()
        return [item_from_row(dict(row)) for row in rows]

    # statistics

    def user_stats(self, user_id: int, *, now: datetime | None = None) -> dict:
        now = now or datetime.now(UTC)
        with self.connect() as conn:
            totals = conn.execute(
                """
                SELECT COUNT(*) AS quizzes,
                       COALESCE(SUM(score), 0) AS score_sum,
                       COALESCE(SUM(total_questions), 0) AS question_sum,
                       COALESCE(SUM(time_spent), 0) AS time_sum,
                       MAX(created_at) AS last_active
                FROM quiz_attempts WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            phrase_counts = conn.execute(
                """
                SELECT SUM(CASE WHEN is_mastered = 1 THEN 1 ELSE 0 END) AS mastered,
                       SUM(CASE WHEN is_mastered = 0 AND in_progress = 1 THEN 1 ELSE 0 END) AS in_progress
                FROM phrase_progress WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
            days = _attempt_days(conn, user_id)

        return {
            "total_quizzes": int(totals["quizzes"]),
            "average_score": _percentage(totals["score_sum"], totals["question_sum"]),
            "mastered_phrases": int(phrase_counts["mastered"] or 0),
            "in_progress_phrases": int(phrase_counts["in_progress"] or 0),
            "current_streak": _day_streak(days, today=now.date()),
            "total_study_time": int(totals["time_sum"]),
            "last_active_date": totals["last_active"],
        }

    def user_analytics(self, user_id: int, *, now: datetime | None = None) -> dict:
        now = now or datetime.now(UTC)
        week_start = (now - timedelta(days=7)).isoformat()
        with self.connect() as conn:
            favourite = conn.execute(
                """
                SELECT target_dialect, COUNT(*) AS n FROM quiz_attempts
                WHERE user_id = ? AND target_dialect IS NOT NULL AND target_dialect != 'all'
                GROUP BY target_dialect
                ORDER BY n DESC, target_dialect ASC
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
            best = conn.execute(
                "SELECT MAX(score) AS best FROM quiz_attempts WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            this_week = conn.execute(
                "SELECT COUNT(*) AS n FROM quiz_attempts WHERE user_id = ? AND created_at >= ?",
                (user_id, week_start),
            ).fetchone()
            study_minutes = conn.execute(
                "SELECT COALESCE(SUM(duration_minutes), 0) AS minutes FROM study_sessions WHERE user_id = ?",
                (user_id,),
            ).fetchone()

        stats = self.user_stats(user_id, now=now)
        return {
            "total_attempts": stats["total_quizzes"],
            "average_score": stats["average_score"],
            "best_score": int(best["best"] or 0),
            "favorite_dialect": favourite["target_dialect"] if favourite else None,
            "total_study_time": stats["total_study_time"],
            "study_minutes": int(study_minutes["minutes"]),
            "progress_this_week": int(this_week["n"]),
        }

    def _touch_stats(self, conn: sqlite3.Connection, user_id: int, *, now: datetime | None = None) -> None:
        stamp = (now or datetime.now(UTC)).isoformat()
        conn.execute(
            """
            INSERT INTO user_stats (user_id, last_active_at) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET last_active_at = excluded.last_active_at
            """,
            (user_id, stamp),
        )


def _attempt_days(conn: sqlite3.Connection, user_id: int) -> list[date]:
    rows = conn.execute(
        "SELECT DISTINCT substr(created_at, 1, 10) AS day FROM quiz_attempts WHERE user_id = ? ORDER BY day DESC",
        (user_id,),
    ).fetchall()
    days: list[date] = []
    for row in rows:
        try:
            days.append(date.fromisoformat(row["day"]))
        except (TypeError, ValueError):
            continue
    return days


def _day_streak(days: Iterable[date], *, today: date) -> int:
    """Consecutive days with a quiz, counting back from today."""
    seen = set(days)
    streak = 0
    cursor = today
    while cursor in seen:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def _score_from_attempt(item: dict) -> QuizScore:
    return QuizScore(
        date=item["created_at"],
        score=int(item["score"]),
        total=int(item["total_questions"]),
        time_spent=int(item["time_spent"] or 0),
        quiz_type=item["quiz_type"],
        difficulty=item["difficulty"],
        target_dialect=item["target_dialect"],
    )


def _decode_attempt(row: sqlite3.Row) -> dict:
    obj = dict(row)
    obj["phrases_tested"] = _json_loads(obj.get("phrases_tested"))
    obj["correct_phrases"] = _json_loads(obj.get("correct_phrases"))
    obj["questions"] = _json_loads(obj.get("questions"))
    return obj


def _percentage(part: object, whole: object) -> int:
    whole_n = int(whole or 0)
    if whole_n <= 0:
        return 0
    return round(int(part or 0) / whole_n * 100)


def _json_dumps(value: object) -> str:
    return json.dumps(value, ensure_ascii=False)


def _json_loads(value: str | None) -> list:
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


def _iso_now() -> str:
    return datetime.now(UTC).isoformat()


def _normalize_email(value: str | None) -> str | None:
    text = str(value or "").strip().lower()
    return text or None


def _normalize_theme(value: object) -> str:
    theme = str(value or "auto").strip().lower()
    return theme if theme in ALLOWED_THEMES else "auto"


def _normalize_target_dialect(value: object) -> str:
    dialect = str(value or "all").strip().lower()
    return dialect if dialect in ALLOWED_PREFERENCE_DIALECTS else "all"
