"""Common dialect words used for distractors and word-order noise."""
from __future__ import annotations

from dataclasses import dataclass

WORD_CATEGORIES = {"verb", "noun", "adjective", "pronoun", "adverb", "preposition", "particle"}
FALLBACK_DIALECT = "lebanese"


@dataclass(frozen=True)
class DialectWord:
    arabic: str
    latin: str
    meaning: str
    category: str


def _bank(rows: list[tuple[str, str, str, str]]) -> tuple[DialectWord, ...]:
    return tuple(DialectWord(arabic=a, latin=l, meaning=m, category=c) for a, l, m, c in rows)


DIALECT_DICTIONARY: dict[str, tuple[DialectWord, ...]] = {
    "lebanese": _bank(
        [
            ("أنا", "ana", "I", "pronoun"),
            ("إنت", "inte", "you (m)", "pronoun"),
            ("إنتي", "inti", "you (f)", "pronoun"),
            ("هو", "huwwe", "he", "pronoun"),
            ("هي", "hiyye", "she", "pronoun"),
            ("نحنا", "nehna", "we", "pronoun"),
            ("بدي", "biddi", "I want", "verb"),
            ("بده", "biddo", "he wants", "verb"),
            ("بدها", "bidda", "she wants", "verb"),
            ("بدك", "biddak", "you want", "verb"),
            ("بروح", "bruh", "I go", "verb"),
            ("بيجي", "biji", "he comes", "verb"),
            ("بقول", "b2ul", "I say", "verb"),
            ("بشوف", "bshuf", "I see", "verb"),
            ("بعرف", "ba3ref", "I know", "verb"),
            ("بحب", "bheb", "I love", "verb"),
            ("بيت", "bayt", "house", "noun"),
            ("ولد", "walad", "boy", "noun"),
            ("بنت", "bint", "girl", "noun"),
            ("أكل", "akel", "food", "noun"),
            ("مي", "mayy", "water", "noun"),
            ("شغل", "shoghl", "work", "noun"),
            ("كبير", "kbir", "big", "adjective"),
            ("صغير", "zghir", "small", "adjective"),
            ("حلو", "helw", "nice/sweet", "adjective"),
            ("منيح", "mnih", "good", "adjective"),
            ("سخن", "sukhn", "hot", "adjective"),
            ("بارد", "bared", "cold", "adjective"),
            ("كتير", "ktir", "very/a lot", "adverb"),
            ("شوي", "shway", "a little", "adverb"),
            ("هيك", "heek", "like this", "adverb"),
            ("هلق", "hal2", "now", "adverb"),
            ("بكرا", "bukra", "tomorrow", "adverb"),
            ("امبارح", "mbereh", "yesterday", "adverb"),
            ("شو", "shu", "what", "particle"),
            ("وين", "wayn", "where", "particle"),
            ("كيف", "kif", "how", "particle"),
            ("ليش", "laysh", "why", "particle"),
            ("مين", "min", "who", "particle"),
            ("يلا", "yalla", "let's go", "particle"),
            ("خلاص", "khalas", "finished/enough", "particle"),
            ("ماشي", "mashi", "okay/fine", "particle"),
        ]
    ),
    "syrian": _bank(
        [
            ("كثير", "ktir", "very/a lot", "adverb"),
            ("شوية", "shwayye", "a little", "adverb"),
            ("هدا", "hada", "this (m)", "pronoun"),
            ("هدي", "hadi", "this (f)", "pronoun"),
            ("بعرف", "ba3ref", "I know", "verb"),
            ("بحكي", "bahki", "I speak", "verb"),
            ("منيح", "mnih", "good", "adjective"),
            ("زلمة", "zalame", "man", "noun"),
            ("مرا", "mara", "woman", "noun"),
        ]
    ),
    "emirati": _bank(
        [
            ("وايد", "wayd", "very/a lot", "adverb"),
            ("شوي", "shway", "a little", "adverb"),
            ("جي", "chi", "like this", "adverb"),
            ("هني", "hni", "here", "adverb"),
            ("ويه", "wayh", "there", "adverb"),
            ("شلون", "shlon", "how", "particle"),
            ("شنو", "shinu", "what", "particle"),
            ("منو", "minu", "who", "particle"),
            ("أبا", "aba", "I want", "verb"),
            ("تبا", "taba", "you want", "verb"),
            ("يبا", "yaba", "he wants", "verb"),
            ("زين", "zayn", "good/nice", "adjective"),
            ("حار", "harr", "hot", "adjective"),
            ("باچر", "bachar", "tomorrow", "adverb"),
            ("الحين", "alhin", "now", "adverb"),
        ]
    ),
    "saudi": _bank(
        [
            ("كثير", "kathir", "very/a lot", "adverb"),
            ("شوي", "shway", "a little", "adverb"),
            ("كذا", "kida", "like this", "adverb"),
            ("هنا", "hina", "here", "adverb"),
            ("هناك", "hinak", "there", "adverb"),
            ("كيف", "kayf", "how", "particle"),
            ("إيش", "aysh", "what", "particle"),
            ("مين", "min", "who", "particle"),
            ("متى", "mata", "when", "particle"),
            ("أبي", "abi", "I want", "verb"),
            ("تبي", "tabi", "you want", "verb"),
            ("يبي", "yabi", "he wants", "verb"),
            ("زين", "zayn", "good/nice", "adjective"),
            ("حار", "harr", "hot", "adjective"),
            ("بكرة", "bukra", "tomorrow", "adverb"),
            ("الحين", "alhin", "now", "adverb"),
        ]
    ),
}


def dialect_entries(dialect: str) -> tuple[DialectWord, ...]:
    return DIALECT_DICTIONARY.get(dialect) or DIALECT_DICTIONARY[FALLBACK_DIALECT]


def word_bank(dialect: str) -> list[str]:
    return [word.arabic for word in dialect_entries(dialect)]


def words_by_category(dialect: str, category: str) -> list[str]:
    if category not in WORD_CATEGORIES:
        raise ValueError(f"unknown word category: {category}")
    return [word.arabic for word in dialect_entries(dialect) if word.category == category]


def similar_words(dialect: str, word: str) -> list[str]:
    """Same-category alternatives for ``word``; empty when the word is unknown."""
    entries = dialect_entries(dialect)
    target = next((entry for entry in entries if entry.arabic == word), None)
    if target is None:
        return []
    return [entry.arabic for entry in entries if entry.category == target.category and entry.arabic != word]
