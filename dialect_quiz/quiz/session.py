from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable

from dialect_quiz.config import MAX_SESSIONS, SESSION_TTL_SEC
from dialect_quiz.exercises.generator import WORD_ORDER, QuizQuestion, QuizSettings
from dialect_quiz.services.progress import ProgressService
from dialect_quiz.storage.db import QuizAttempt

logger = logging.getLogger(__name__)

UTC = timezone.utc


class QuizStateError(ValueError):
    pass


def evaluate(question: QuizQuestion, answer: str) -> bool:
    return answer == question.correct_answer


@dataclass
class AnswerOutcome:
    phrase_id: str
    correct: bool
    user_answer: str
    correct_answer: str
    score: int
    streak: int
    next_review_at: str | None = None


@dataclass
class QuizSummary:
    score: int
    total: int
    percentage: int
    time_spent: int
    perfect: bool
    outcomes: list[dict] = field(default_factory=list)
    attempt_id: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class QuizSession:
    def __init__(
        self,
        *,
        user_id: int,
        settings: QuizSettings,
        questions: list[QuizQuestion],
        progress: ProgressService,
        skipped: int = 0,
        session_id: str | None = None,
        started_at: datetime | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.user_id = user_id
        self.settings = settings
        self.questions = questions
        self.progress = progress
        self.skipped = skipped
        self.started_at = started_at or datetime.now(UTC)
        self.index = 0
        self.score = 0
        self.streak = 0
        self.best_streak = 0
        self.finished = False
        self._lock = threading.Lock()

    @property
    def current(self) -> QuizQuestion | None:
        if self.index >= len(self.questions):
            return None
        return self.questions[self.index]

    def answer(self, text: str, *, now: datetime | None = None) -> AnswerOutcome:
        with self._lock:
            return self._answer_locked(self._require_open_question(), text, now=now)

    def _answer_locked(self, question: QuizQuestion, text: str, *, now: datetime | None) -> AnswerOutcome:
        correct = evaluate(question, text)
        # progress is written first so a failed write leaves the question open
        if correct:
            self.progress.mark_mastered(self.user_id, question.phrase.id)
        item = self.progress.record_review(self.user_id, question.phrase.id, correct, now=now)

        question.user_answer = text
        question.is_correct = correct
        if correct:
            self.score += 1
            self.streak += 1
            self.best_streak = max(self.best_streak, self.streak)
        else:
            self.streak = 0

        logger.debug("session %s question %d answered (%s)", self.id, self.index, "correct" if correct else "wrong")
        return AnswerOutcome(
            phrase_id=question.phrase.id,
            correct=correct,
            user_answer=text,
            correct_answer=question.correct_answer,
            score=self.score,
            streak=self.streak,
            next_review_at=item.next_review_at,
        )

    def select_token(self, index: int) -> QuizQuestion:
        with self._lock:
            question = self._require_word_order()
            if not 0 <= index < len(question.tokens):
                raise ValueError(f"no word at position {index}")
            question.selected.append(question.tokens.pop(index))
            return question

    def unselect_token(self, position: int) -> QuizQuestion:
        with self._lock:
            question = self._require_word_order()
            if not 0 <= position < len(question.selected):
                raise ValueError(f"no selected word at position {position}")
            question.tokens.append(question.selected.pop(position))
            return question

    def submit_selection(self, *, now: datetime | None = None) -> AnswerOutcome:
        with self._lock:
            question = self._require_word_order()
            if not question.selected:
                raise QuizStateError("select at least one word before submitting")
            return self._answer_locked(question, " ".join(question.selected), now=now)

    def next_question(self) -> QuizQuestion | None:
        with self._lock:
            if self.finished:
                raise QuizStateError("quiz already finished")
            question = self.current
            if question is not None and not question.answered:
                raise QuizStateError("answer the current question first")
            if self.index < len(self.questions):
                self.index += 1
            return self.current

    def finish(self, *, now: datetime | None = None) -> QuizSummary:
        now = now or datetime.now(UTC)
        with self._lock:
            if self.finished:
                raise QuizStateError("quiz already finished")
            self.finished = True

        answered = [question for question in self.questions if question.answered]
        total = len(self.questions)
        time_spent = max(0, int((now - self.started_at).total_seconds()))
        outcomes = [
            {
                "phrase_id": question.phrase.id,
                "target_dialect": question.target_dialect,
                "user_answer": question.user_answer,
                "correct_answer": question.correct_answer,
                "is_correct": bool(question.is_correct),
            }
            for question in answered
        ]
        attempt = QuizAttempt(
            quiz_type=self.settings.quiz_type,
            score=self.score,
            total_questions=total,
            difficulty=self.settings.difficulty,
            source_dialect=self.settings.source_dialect,
            target_dialect=self.settings.target_dialect,
            time_spent=time_spent,
            correct_phrases=[question.phrase.id for question in answered if question.is_correct],
            phrases_tested=[question.phrase.id for question in self.questions],
            questions=outcomes,
        )
        attempt_id = self.progress.record_quiz(
            self.user_id,
            attempt,
            [(question.phrase.id, bool(question.is_correct)) for question in answered],
            now=now,
        )
        logger.info("session %s finished: %d/%d", self.id, self.score, total)
        return QuizSummary(
            score=self.score,
            total=total,
            percentage=round(self.score / total * 100) if total else 0,
            time_spent=time_spent,
            perfect=total > 0 and self.score == total,
            outcomes=outcomes,
            attempt_id=attempt_id,
        )

    def public_dict(self) -> dict:
        return {
            "session_id": self.id,
            "user_id": self.user_id,
            "quiz_type": self.settings.quiz_type,
            "difficulty": self.settings.difficulty,
            "target_dialect": self.settings.target_dialect,
            "index": self.index,
            "total": len(self.questions),
            "score": self.score,
            "streak": self.streak,
            "skipped": self.skipped,
            "finished": self.finished,
            "questions": [question.public_dict() for question in self.questions],
        }

    def _require_open_question(self) -> QuizQuestion:
        if self.finished:
            raise QuizStateError("quiz already finished")
        question = self.current
        if question is None:
            raise QuizStateError("no question left to answer")
        if question.answered:
            raise QuizStateError("question already answered")
        return question

    def _require_word_order(self) -> QuizQuestion:
        question = self._require_open_question()
        if question.type != WORD_ORDER:
            raise QuizStateError("current question is not a word-order question")
        return question


class SessionRegistry:
    """Live quiz sessions; idle ones expire and the oldest go first at capacity."""

    def __init__(
        self,
        *,
        ttl: float = SESSION_TTL_SEC,
        max_sessions: int = MAX_SESSIONS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_sessions = max_sessions
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, QuizSession] = {}
        self._last_seen: dict[str, float] = {}

    def add(self, session: QuizSession) -> QuizSession:
        with self._lock:
            now = self._clock()
            self._prune(now)
            while self._sessions and len(self._sessions) >= self.max_sessions:
                oldest = min(self._last_seen, key=self._last_seen.__getitem__)
                logger.info("dropping session %s, registry full", oldest)
                self._discard(oldest)
            self._sessions[session.id] = session
            self._last_seen[session.id] = now
        return session

    def get(self, session_id: str) -> QuizSession | None:
        with self._lock:
            now = self._clock()
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if now - self._last_seen[session_id] > self.ttl:
                self._discard(session_id)
                return None
            self._last_seen[session_id] = now
            return session

    def remove(self, session_id: str) -> QuizSession | None:
        with self._lock:
            return self._discard(session_id)

    def prune(self) -> int:
        with self._lock:
            return self._prune(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._last_seen.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _prune(self, now: float) -> int:
        expired = [sid for sid, seen in self._last_seen.items() if now - seen > self.ttl]
        for sid in expired:
            self._discard(sid)
        if expired:
            logger.info("expired %d idle quiz session(s)", len(expired))
        return len(expired)

    def _discard(self, session_id: str) -> QuizSession | None:
        self._last_seen.pop(session_id, None)
        return self._sessions.pop(session_id, None)
