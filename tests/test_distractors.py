from __future__ import annotations

import random

from dialect_quiz.exercises.distractors import build_prefix_dictionary, select_distractors, tokenize
from dialect_quiz.phrases.models import Phrase, Translation


def _phrase(pid: str, lebanese: str, *, category: str = "", tags: tuple[str, ...] = ()) -> Phrase:
    return Phrase(
        id=pid,
        darija=pid,
        translations={"lebanese": Translation(phrase=lebanese)},
        category=category,
        tags=tags,
    )


def test_single_word_answer_has_no_generated_distractors(phrase, phrases):
    greet = phrase("greet_001")

    assert select_distractors("مرحبا", greet, phrases, "lebanese", rng=random.Random(1)) == []


def test_distractors_are_distinct_and_never_the_answer(phrases):
    for seed in range(20):
        rng = random.Random(seed)
        for item in phrases:
            answer = item.text_for("lebanese")
            if not answer:
                continue
            picked = select_distractors(answer, item, phrases, "lebanese", limit=3, rng=rng)
            assert answer not in picked
            assert len(picked) == len(set(picked))
            assert len(picked) <= 3


def test_similar_word_substitution_keeps_shape(phrase, phrases):
    want = phrase("want_001")

    picked = select_distractors("أنا بدي روح", want, phrases, "lebanese", rng=random.Random(3))

    assert len(picked) == 3
    for text in picked:
        assert len(tokenize(text)) == 3


def test_adjacent_swap_used_when_nothing_else_matches():
    target = _phrase("p1", "alpha beta gamma")
    picked = select_distractors("alpha beta gamma", target, [target], "lebanese", limit=2, rng=random.Random(0))

    assert "beta alpha gamma" in picked


def test_near_miss_phrases_from_pool():
    target = _phrase("p1", "pen book chair")
    near = _phrase("p2", "pen book table")
    far = _phrase("p3", "car road")

    picked = select_distractors("pen book chair", target, [target, near, far], "lebanese", rng=random.Random(0))

    assert "pen book table" in picked
    assert "car road" not in picked


def test_prefix_dictionary_groups_by_first_letters():
    pool = [_phrase("p1", "مرحبا مرحبتين"), _phrase("p2", "كتاب")]

    prefixes = build_prefix_dictionary(pool, "lebanese")

    assert "مرحبا" in prefixes["مر"]
    assert "مرحبتين" in prefixes["مر"]
    assert prefixes["كت"].count("كتاب") == 1
