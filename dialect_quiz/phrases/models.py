from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Translation:
    phrase: str
    latin: str = ""
    literal: str = ""
    usage_note: str | None = None
    alternatives: tuple[str, ...] = ()


@dataclass(frozen=True)
class Usage:
    formality: str = "neutral"
    frequency: str = "medium"
    context: tuple[str, ...] = ()


@dataclass(frozen=True)
class Phrase:
    id: str
    darija: str
    darija_latin: str = ""
    literal_english: str = ""
    translations: dict[str, Translation] = field(default_factory=dict)
    difficulty: str = "beginner"
    category: str = ""
    tags: tuple[str, ...] = ()
    usage: Usage = field(default_factory=Usage)
    cultural_notes: str | None = None
    common_mistakes: tuple[str, ...] = ()

    def text_for(self, dialect: str) -> str | None:
        translation = self.translations.get(dialect)
        if translation is None:
            return None
        text = translation.phrase.strip()
        return text or None

    def dialects(self) -> list[str]:
        return [key for key in self.translations if self.text_for(key)]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "darija": self.darija,
            "darija_latin": self.darija_latin,
            "literal_english": self.literal_english,
            "translations": {
                key: {
                    "phrase": value.phrase,
                    "latin": value.latin,
                    "literal": value.literal,
                    "usage_note": value.usage_note,
                    "alternatives": list(value.alternatives),
                }
                for key, value in self.translations.items()
            },
            "difficulty": self.difficulty,
            "category": self.category,
            "tags": list(self.tags),
            "usage": {
                "formality": self.usage.formality,
                "frequency": self.usage.frequency,
                "context": list(self.usage.context),
            },
            "cultural_notes": self.cultural_notes,
            "common_mistakes": list(self.common_mistakes),
        }
