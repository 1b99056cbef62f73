from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from dialect_quiz.config import DIALECT_KEYS, DIFFICULTIES, SOURCE_DIALECT, TARGET_DIALECTS, QuizDefaults
from dialect_quiz.exercises.distractors import select_distractors, tokenize
from dialect_quiz.phrases.dictionary import word_bank
from dialect_quiz.phrases.models import Phrase
from dialect_quiz.scheduler.srs import SpacedRepetitionItem, due_phrase_ids

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE = "multiple-choice"
WORD_ORDER = "word-order"
SPACED = "spaced"
QUIZ_TYPES = (MULTIPLE_CHOICE, WORD_ORDER, SPACED)
DEFAULTS = QuizDefaults()


@dataclass(frozen=True)
class QuizSettings:
    difficulty: str = "all"
    quiz_type: str = MULTIPLE_CHOICE
    length: int = DEFAULTS.length
    source_dialect: str = SOURCE_DIALECT
    target_dialect: str = "all"

    def validate(self) -> None:
        if self.difficulty != "all" and self.difficulty not in DIFFICULTIES:
            raise ValueError(f"unsupported difficulty: {self.difficulty}")
        if self.quiz_type not in QUIZ_TYPES:
            raise ValueError(f"unsupported quiz type: {self.quiz_type}")
        if self.target_dialect != "all" and self.target_dialect not in DIALECT_KEYS:
            raise ValueError(f"unsupported target dialect: {self.target_dialect}")
        if self.target_dialect == self.source_dialect:
            raise ValueError("target dialect must differ from the source dialect")
        if self.length < 1:
            raise ValueError("quiz length must be at least 1")


@dataclass
class QuizQuestion:
    phrase: Phrase
    type: str
    target_dialect: str
    correct_answer: str
    options: list[str] = field(default_factory=list)
    tokens: list[str] = field(default_factory=list)
    noise_tokens: list[str] = field(default_factory=list)
    selected: list[str] = field(default_factory=list)
    user_answer: str | None = None
    is_correct: bool | None = None

    @property
    def answered(self) -> bool:
        return self.is_correct is not None

    def public_dict(self) -> dict:
        payload = {
            "phrase_id": self.phrase.id,
            "type": self.type,
            "target_dialect": self.target_dialect,
            "prompt": self.phrase.darija,
            "prompt_latin": self.phrase.darija_latin,
            "literal_english": self.phrase.literal_english,
        }
        if self.type == WORD_ORDER:
            payload["available_words"] = list(self.tokens)
            payload["selected_words"] = list(self.selected)
        else:
            payload["options"] = list(self.options)
        if self.answered:
            payload["user_answer"] = self.user_answer
            payload["is_correct"] = self.is_correct
            payload["correct_answer"] = self.correct_answer
        return payload


@dataclass
class QuizBuild:
    questions: list[QuizQuestion]
    skipped: int = 0
    eligible: int = 0


def eligible_phrases(pool: Sequence[Phrase], difficulty: str) -> list[Phrase]:
    return [phrase for phrase in pool if difficulty == "all" or phrase.difficulty == difficulty]


def candidate_dialects(phrase: Phrase, settings: QuizSettings) -> list[str]:
    if settings.target_dialect != "all":
        return [settings.target_dialect] if phrase.text_for(settings.target_dialect) else []
    return [
        dialect
        for dialect in TARGET_DIALECTS
        if dialect != settings.source_dialect and phrase.text_for(dialect)
    ]


def generate_quiz(
    pool: Sequence[Phrase],
    settings: QuizSettings,
    *,
    srs_items: Sequence[SpacedRepetitionItem] | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> QuizBuild:
    settings.validate()
    rng = rng or random.Random()
    eligible = eligible_phrases(pool, settings.difficulty)

    if settings.quiz_type == SPACED:
        candidates = spaced_candidates(eligible, srs_items or [], now=now)
    else:
        candidates = eligible

    usable = [phrase for phrase in candidates if candidate_dialects(phrase, settings)]
    skipped = len(candidates) - len(usable)
    if skipped:
        logger.warning(
            "skipping %d phrase(s) without text for target dialect %s",
            skipped,
            settings.target_dialect,
        )
    if not usable:
        logger.warning(
            "no phrases available for quiz (difficulty=%s, type=%s, target=%s)",
            settings.difficulty,
            settings.quiz_type,
            settings.target_dialect,
        )
        return QuizBuild(questions=[], skipped=skipped, eligible=len(candidates))

    selected = list(usable)
    rng.shuffle(selected)
    selected = selected[: min(settings.length, len(selected))]

    distractor_pool = eligible or list(pool)
    questions: list[QuizQuestion] = []
    for phrase in selected:
        dialect = rng.choice(candidate_dialects(phrase, settings))
        if settings.quiz_type == WORD_ORDER:
            questions.append(build_word_order_question(phrase, dialect, rng=rng))
        else:
            questions.append(build_multiple_choice_question(phrase, dialect, distractor_pool, rng=rng))

    logger.info(
        "generated %d %s question(s) from %d eligible phrase(s)",
        len(questions),
        settings.quiz_type,
        len(candidates),
    )
    return QuizBuild(questions=questions, skipped=skipped, eligible=len(candidates))


def spaced_candidates(
    eligible: Sequence[Phrase],
    srs_items: Sequence[SpacedRepetitionItem],
    *,
    now: datetime | None = None,
) -> list[Phrase]:
    """Due phrases within the difficulty filter first; otherwise the first starter phrases."""
    by_id = {phrase.id: phrase for phrase in eligible}
    due = [by_id[pid] for pid in due_phrase_ids(srs_items, now) if pid in by_id]
    if due:
        return due
    return list(eligible[: DEFAULTS.starter_phrases])


def build_multiple_choice_question(
    phrase: Phrase,
    dialect: str,
    pool: Sequence[Phrase],
    *,
    rng: random.Random,
    option_count: int = DEFAULTS.distractors + 1,
) -> QuizQuestion:
    correct = phrase.text_for(dialect)
    if not correct:
        raise ValueError(f"phrase {phrase.id} has no {dialect} text")

    wanted = option_count - 1
    distractors = select_distractors(correct, phrase, pool, dialect, limit=wanted, rng=rng)
    if len(distractors) < wanted:
        others = [other for other in pool if other.id != phrase.id]
        rng.shuffle(others)
        for other in others:
            if len(distractors) >= wanted:
                break
            text = other.text_for(dialect)
            if text and text != correct and text not in distractors:
                distractors.append(text)
    if len(distractors) < wanted:
        logger.debug("phrase %s only has %d distractor(s) for %s", phrase.id, len(distractors), dialect)

    options = [correct, *distractors]
    rng.shuffle(options)
    return QuizQuestion(
        phrase=phrase,
        type=MULTIPLE_CHOICE,
        target_dialect=dialect,
        correct_answer=correct,
        options=options,
    )


def build_word_order_question(
    phrase: Phrase,
    dialect: str,
    *,
    rng: random.Random,
    noise_count: int | None = None,
) -> QuizQuestion:
    correct = phrase.text_for(dialect)
    if not correct:
        raise ValueError(f"phrase {phrase.id} has no {dialect} text")

    words = tokenize(correct)
    shuffled = list(words)
    rng.shuffle(shuffled)

    available: list[str] = []
    for word in word_bank(dialect):
        if word not in words and word not in available:
            available.append(word)
    if noise_count is None:
        noise_count = rng.randint(DEFAULTS.min_noise_tokens, DEFAULTS.max_noise_tokens)
    noise = rng.sample(available, min(noise_count, len(available)))

    bag = shuffled + noise
    rng.shuffle(bag)
    return QuizQuestion(
        phrase=phrase,
        type=WORD_ORDER,
        target_dialect=dialect,
        correct_answer=" ".join(words),
        tokens=bag,
        noise_tokens=noise,
    )
