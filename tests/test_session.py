from __future__ import annotations

import random
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from dialect_quiz.exercises.generator import (
    WORD_ORDER,
    QuizSettings,
    build_multiple_choice_question,
    build_word_order_question,
)
from dialect_quiz.quiz.session import QuizSession, QuizStateError, SessionRegistry, evaluate

UTC = timezone.utc
START = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)


def _mc_session(progress, phrase, phrases, ids=("greet_001",)):
    rng = random.Random(3)
    questions = [build_multiple_choice_question(phrase(pid), "lebanese", phrases, rng=rng) for pid in ids]
    return QuizSession(
        user_id=1,
        settings=QuizSettings(difficulty="beginner", target_dialect="lebanese"),
        questions=questions,
        progress=progress,
        started_at=START,
    )


def _word_order_session(progress, phrase):
    question = build_word_order_question(phrase("want_001"), "lebanese", rng=random.Random(9), noise_count=3)
    return QuizSession(
        user_id=1,
        settings=QuizSettings(quiz_type=WORD_ORDER, target_dialect="lebanese"),
        questions=[question],
        progress=progress,
        started_at=START,
    )


def test_evaluate_is_exact_match(phrase, phrases):
    question = build_multiple_choice_question(phrase("greet_001"), "lebanese", phrases, rng=random.Random(1))

    assert evaluate(question, "مرحبا")
    assert not evaluate(question, "شو")
    assert not evaluate(question, " مرحبا")


def test_correct_answer_scores_and_marks_mastered(progress, temp_db, phrase, phrases):
    session = _mc_session(progress, phrase, phrases)

    outcome = session.answer("مرحبا", now=START)

    assert outcome.correct
    assert outcome.score == 1
    assert outcome.streak == 1
    assert temp_db.get_mastered_ids(1) == ["greet_001"]
    item = temp_db.get_srs_item(1, "greet_001")
    assert item.repetitions == 1
    assert item.next_review_at == (START + timedelta(days=1)).isoformat()


def test_wrong_answer_resets_streak_without_touching_mastery(progress, temp_db, phrase, phrases):
    session = _mc_session(progress, phrase, phrases, ids=("greet_001", "greet_002"))
    session.answer("مرحبا")
    session.next_question()

    outcome = session.answer("شو")

    assert not outcome.correct
    assert outcome.correct_answer == "كيفك إنت"
    assert outcome.score == 1
    assert outcome.streak == 0
    assert temp_db.get_mastered_ids(1) == ["greet_001"]
    assert temp_db.get_in_progress_ids(1) == []
    assert temp_db.get_srs_item(1, "greet_002").repetitions == 0


def test_wrong_answer_never_demotes_mastered_phrase(progress, temp_db, phrase, phrases):
    temp_db.mark_mastered(1, "greet_001")
    session = _mc_session(progress, phrase, phrases)

    session.answer("شو")

    assert temp_db.get_mastered_ids(1) == ["greet_001"]


def test_failed_progress_write_leaves_question_open(progress, temp_db, phrase, phrases):
    session = _mc_session(progress, phrase, phrases)
    session.user_id = 42

    with pytest.raises(sqlite3.IntegrityError):
        session.answer("مرحبا")

    assert session.score == 0
    assert session.streak == 0
    assert not session.current.answered

    session.user_id = 1
    assert session.answer("مرحبا").correct
    assert session.score == 1


def test_answering_twice_is_rejected(progress, phrase, phrases):
    session = _mc_session(progress, phrase, phrases)
    session.answer("مرحبا")

    with pytest.raises(QuizStateError):
        session.answer("مرحبا")


def test_next_requires_an_answer(progress, phrase, phrases):
    session = _mc_session(progress, phrase, phrases, ids=("greet_001", "greet_002"))

    with pytest.raises(QuizStateError):
        session.next_question()

    session.answer("مرحبا")
    nxt = session.next_question()
    assert nxt.phrase.id == "greet_002"


def test_word_order_selection_in_click_order(progress, temp_db, phrase):
    session = _word_order_session(progress, phrase)
    question = session.current
    assert len(question.tokens) == 6

    for word in ("أنا", "بدي", "روح"):
        session.select_token(question.tokens.index(word))
    assert question.selected == ["أنا", "بدي", "روح"]
    assert len(question.tokens) == 3

    outcome = session.submit_selection(now=START)

    assert outcome.correct
    assert outcome.user_answer == "أنا بدي روح"
    assert temp_db.get_mastered_ids(1) == ["want_001"]


def test_word_order_unselect_returns_token(progress, phrase):
    session = _word_order_session(progress, phrase)
    question = session.current
    noise = question.noise_tokens[0]

    session.select_token(question.tokens.index("بدي"))
    session.select_token(question.tokens.index(noise))
    session.unselect_token(1)

    assert question.selected == ["بدي"]
    assert noise in question.tokens
    assert len(question.tokens) == 5


def test_word_order_wrong_order_is_incorrect(progress, phrase):
    session = _word_order_session(progress, phrase)
    question = session.current
    for word in ("بدي", "أنا", "روح"):
        session.select_token(question.tokens.index(word))

    assert not session.submit_selection().correct


def test_word_order_helpers_reject_bad_input(progress, phrase, phrases):
    session = _word_order_session(progress, phrase)
    with pytest.raises(QuizStateError):
        session.submit_selection()
    with pytest.raises(ValueError):
        session.select_token(99)
    with pytest.raises(ValueError):
        session.unselect_token(0)

    mc = _mc_session(progress, phrase, phrases)
    with pytest.raises(QuizStateError):
        mc.select_token(0)


def test_finish_writes_attempt_and_summary(progress, temp_db, phrase, phrases):
    session = _mc_session(progress, phrase, phrases, ids=("greet_001", "greet_002"))
    session.answer("مرحبا", now=START)
    session.next_question()
    session.answer("شو", now=START)

    summary = session.finish(now=START + timedelta(seconds=95))

    assert summary.score == 1
    assert summary.total == 2
    assert summary.percentage == 50
    assert summary.time_spent == 95
    assert not summary.perfect
    assert [o["is_correct"] for o in summary.outcomes] == [True, False]

    attempts = temp_db.list_quiz_attempts(1)
    assert len(attempts) == 1
    assert attempts[0]["id"] == summary.attempt_id
    assert attempts[0]["correct_phrases"] == ["greet_001"]
    assert attempts[0]["phrases_tested"] == ["greet_001", "greet_002"]
    rows = {row["phrase_id"]: row for row in temp_db.get_phrase_progress(1)}
    assert rows["greet_001"]["correct_count"] == 1
    assert rows["greet_002"]["incorrect_count"] == 1
    assert rows["greet_002"]["is_mastered"] == 0

    with pytest.raises(QuizStateError):
        session.finish()
    with pytest.raises(QuizStateError):
        session.answer("anything")


def test_perfect_quiz(progress, phrase, phrases):
    session = _mc_session(progress, phrase, phrases)
    session.answer("مرحبا")

    summary = session.finish()

    assert summary.perfect
    assert summary.percentage == 100


def test_registry_tracks_sessions(progress, phrase, phrases):
    registry = SessionRegistry()
    session = registry.add(_mc_session(progress, phrase, phrases))

    assert registry.get(session.id) is session
    assert len(registry) == 1
    assert registry.remove(session.id) is session
    assert registry.get(session.id) is None


def test_submit_selection_evaluates_under_the_session_lock(progress, phrase, monkeypatch):
    session = _word_order_session(progress, phrase)
    question = session.current
    for word in ("أنا", "بدي", "روح"):
        session.select_token(question.tokens.index(word))

    held = []
    record_review = progress.record_review

    def checking_review(*args, **kwargs):
        held.append(session._lock.locked())
        return record_review(*args, **kwargs)

    monkeypatch.setattr(progress, "record_review", checking_review)

    assert session.submit_selection().correct
    assert held == [True]


def test_registry_expires_idle_sessions(progress, phrase, phrases):
    now = [0.0]
    registry = SessionRegistry(ttl=60, clock=lambda: now[0])
    idle = registry.add(_mc_session(progress, phrase, phrases))
    active = registry.add(_mc_session(progress, phrase, phrases))

    now[0] = 50
    assert registry.get(active.id) is active
    now[0] = 100
    assert registry.get(idle.id) is None
    assert registry.get(active.id) is active

    now[0] = 200
    registry.add(_mc_session(progress, phrase, phrases))
    assert registry.get(active.id) is None
    assert len(registry) == 1


def test_registry_drops_oldest_at_capacity(progress, phrase, phrases):
    now = [0.0]
    registry = SessionRegistry(max_sessions=2, clock=lambda: now[0])
    first = registry.add(_mc_session(progress, phrase, phrases))
    now[0] = 1
    second = registry.add(_mc_session(progress, phrase, phrases))
    now[0] = 2
    registry.get(first.id)
    now[0] = 3
    third = registry.add(_mc_session(progress, phrase, phrases))

    assert len(registry) == 2
    assert registry.get(second.id) is None
    assert registry.get(first.id) is first
    assert registry.get(third.id) is third
