"""Load the bundled phrase collection into immutable records."""
from __future__ import annotations

import json
import logging
from pathlib import Path

from dialect_quiz.config import DIFFICULTIES, PHRASES_PATH
from dialect_quiz.phrases.models import Phrase, Translation, Usage

logger = logging.getLogger(__name__)


def load_phrases(path: Path | None = None) -> list[Phrase]:
    source = Path(path or PHRASES_PATH)
    payload = json.loads(source.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("phrases")
    if not isinstance(payload, list):
        raise ValueError(f"phrase file {source} must hold a list of phrases")

    phrases: list[Phrase] = []
    seen: set[str] = set()
    for raw in payload:
        phrase = phrase_from_dict(raw)
        if phrase.id in seen:
            logger.warning("duplicate phrase id %s in %s, keeping the first", phrase.id, source)
            continue
        seen.add(phrase.id)
        phrases.append(phrase)
    logger.info("loaded %d phrases from %s", len(phrases), source)
    return phrases


def phrase_from_dict(raw: dict) -> Phrase:
    translations: dict[str, Translation] = {}
    for key, value in (raw.get("translations") or {}).items():
        translation = _translation_from_value(value)
        if translation is not None:
            translations[str(key)] = translation

    usage_raw = raw.get("usage") or {}
    difficulty = str(raw.get("difficulty") or "beginner").strip().lower()
    if difficulty not in DIFFICULTIES:
        difficulty = "beginner"

    return Phrase(
        id=str(raw["id"]),
        darija=str(raw.get("darija") or ""),
        darija_latin=str(raw.get("darija_latin") or ""),
        literal_english=str(raw.get("literal_english") or ""),
        translations=translations,
        difficulty=difficulty,
        category=str(raw.get("category") or ""),
        tags=tuple(str(tag) for tag in raw.get("tags") or []),
        usage=Usage(
            formality=str(usage_raw.get("formality") or "neutral"),
            frequency=str(usage_raw.get("frequency") or "medium"),
            context=tuple(str(item) for item in usage_raw.get("context") or []),
        ),
        cultural_notes=raw.get("cultural_notes"),
        common_mistakes=tuple(str(item) for item in raw.get("common_mistakes") or []),
    )


def _translation_from_value(value: object) -> Translation | None:
    # Older data files store some translations as bare strings.
    if isinstance(value, str):
        return Translation(phrase=value) if value.strip() else None
    if not isinstance(value, dict):
        return None
    text = str(value.get("phrase") or "").strip()
    if not text:
        return None
    return Translation(
        phrase=text,
        latin=str(value.get("latin") or ""),
        literal=str(value.get("literal") or ""),
        usage_note=value.get("usage_note"),
        alternatives=tuple(str(item) for item in value.get("alternatives") or []),
    )


class PhraseStore:
    """Read-only phrase collection, loaded once per process."""

    def __init__(self, phrases: list[Phrase]) -> None:
        self._phrases = list(phrases)
        self._by_id = {phrase.id: phrase for phrase in self._phrases}

    @classmethod
    def from_file(cls, path: Path | None = None) -> "PhraseStore":
        return cls(load_phrases(path))

    def __len__(self) -> int:
        return len(self._phrases)

    def all(self) -> list[Phrase]:
        return list(self._phrases)

    def get(self, phrase_id: str) -> Phrase | None:
        return self._by_id.get(phrase_id)

    def filter(self, *, difficulty: str | None = None, category: str | None = None) -> list[Phrase]:
        results = self._phrases
        if difficulty and difficulty != "all":
            results = [p for p in results if p.difficulty == difficulty]
        if category:
            results = [p for p in results if p.category == category]
        return list(results)

    def categories(self) -> list[str]:
        return sorted({p.category for p in self._phrases if p.category})
