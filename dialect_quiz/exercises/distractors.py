"""Plausible wrong answers for multiple-choice questions.

Strategies run in order until enough distractors are collected:

1. swap one word for a same-category word (dialect word bank first, then a
   prefix dictionary built from the pool and the bank),
2. real phrases from the pool that differ from the answer by one or two words,
3. swap two adjacent words,
4. borrow one differing word from a phrase in the same category or sharing a tag.

The result is best effort: zero to ``limit`` strings, none equal to the correct
answer and no duplicates. The quiz generator pads any shortfall.
"""
from __future__ import annotations

import random
from typing import Sequence

from dialect_quiz.phrases.dictionary import similar_words, word_bank
from dialect_quiz.phrases.models import Phrase

PREFIX_LENGTH = 2
MAX_LENGTH_GAP = 2


def select_distractors(
    correct_answer: str,
    phrase: Phrase,
    pool: Sequence[Phrase],
    dialect: str,
    *,
    limit: int = 3,
    rng: random.Random | None = None,
) -> list[str]:
    rng = rng or random.Random()
    words = tokenize(correct_answer)
    if len(words) < 2:
        return []

    chosen: list[str] = []

    def accept(candidate: str) -> bool:
        if candidate == correct_answer or candidate in chosen or len(chosen) >= limit:
            return False
        chosen.append(candidate)
        return True

    _substitute_similar_words(words, pool, dialect, accept, rng=rng, limit=limit, chosen=chosen)
    if len(chosen) < limit:
        _mine_near_misses(words, correct_answer, pool, dialect, accept)
    if len(chosen) < limit:
        _swap_adjacent(words, accept)
    if len(chosen) < limit:
        _substitute_semantic_field(words, correct_answer, phrase, pool, dialect, accept, limit=limit, chosen=chosen)
    return chosen[:limit]


def tokenize(text: str) -> list[str]:
    return [word for word in text.split() if word]


def build_prefix_dictionary(pool: Sequence[Phrase], dialect: str) -> dict[str, list[str]]:
    """Group known dialect words by their first two letters."""
    prefixes: dict[str, list[str]] = {}

    def add(word: str) -> None:
        key = word[:PREFIX_LENGTH]
        bucket = prefixes.setdefault(key, [])
        if word not in bucket:
            bucket.append(word)

    for other in pool:
        text = other.text_for(dialect)
        if not text:
            continue
        for word in tokenize(text):
            add(word)
    for word in word_bank(dialect):
        add(word)
    return prefixes


def _substitute_similar_words(words, pool, dialect, accept, *, rng, limit, chosen) -> None:
    prefixes: dict[str, list[str]] | None = None
    for idx, word in enumerate(words):
        if len(chosen) >= limit:
            return
        alternatives = similar_words(dialect, word)
        if alternatives and accept(_replace(words, idx, rng.choice(alternatives))):
            continue

        if prefixes is None:
            prefixes = build_prefix_dictionary(pool, dialect)
        candidates = [
            candidate
            for candidate in prefixes.get(word[:PREFIX_LENGTH], [])
            if candidate != word and abs(len(candidate) - len(word)) <= MAX_LENGTH_GAP
        ]
        if candidates:
            accept(_replace(words, idx, rng.choice(candidates)))


def _mine_near_misses(words, correct_answer, pool, dialect, accept) -> None:
    min_shared = max(1, len(words) - 2)
    for other in pool:
        text = other.text_for(dialect)
        if not text or text == correct_answer:
            continue
        other_words = tokenize(text)
        if abs(len(other_words) - len(words)) > 1:
            continue
        shared = sum(1 for word in words if word in other_words)
        if shared >= min_shared:
            accept(text)


def _swap_adjacent(words, accept) -> None:
    if len(words) < 3:
        return
    for idx in range(len(words) - 1):
        swapped = list(words)
        swapped[idx], swapped[idx + 1] = swapped[idx + 1], swapped[idx]
        if accept(" ".join(swapped)):
            return


def _substitute_semantic_field(words, correct_answer, phrase, pool, dialect, accept, *, limit, chosen) -> None:
    tags = set(phrase.tags)
    related = [
        other
        for other in pool
        if (phrase.category and other.category == phrase.category) or tags.intersection(other.tags)
    ]
    for other in related:
        if len(chosen) >= limit:
            return
        text = other.text_for(dialect)
        if not text or text == correct_answer:
            continue
        other_words = tokenize(text)
        for idx, word in enumerate(words):
            if idx < len(other_words) and other_words[idx] != word:
                if accept(_replace(words, idx, other_words[idx])):
                    break


def _replace(words: list[str], idx: int, replacement: str) -> str:
    updated = list(words)
    updated[idx] = replacement
    return " ".join(updated)
