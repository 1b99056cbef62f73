from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent
DATA_DIR = PACKAGE_ROOT / "data"
TEMPLATES_DIR = PACKAGE_ROOT / "templates"
PHRASES_PATH = Path(os.getenv("DIALECT_QUIZ_PHRASES_PATH") or DATA_DIR / "phrases.json")
ARTIFACTS_DIR = Path(os.getenv("DIALECT_QUIZ_ARTIFACTS_DIR") or PROJECT_ROOT / "artifacts")
EXPORTS_DIR = ARTIFACTS_DIR / "exports"
DB_PATH = Path(os.getenv("DIALECT_QUIZ_DB_PATH") or PROJECT_ROOT / "dialect_quiz.db")

REMOTE_URL = os.getenv("DIALECT_QUIZ_REMOTE_URL")
REMOTE_KEY = os.getenv("DIALECT_QUIZ_REMOTE_KEY")
REMOTE_TIMEOUT_SEC = 5.0
SYNC_INTERVAL_SEC = max(1.0, float(os.getenv("DIALECT_QUIZ_SYNC_INTERVAL_SEC", "30")))
SESSION_TTL_SEC = max(60.0, float(os.getenv("DIALECT_QUIZ_SESSION_TTL_SEC", "7200")))
MAX_SESSIONS = max(1, int(os.getenv("DIALECT_QUIZ_MAX_SESSIONS", "1000")))

SOURCE_DIALECT = "darija"
TARGET_DIALECTS = ("lebanese", "syrian", "emirati", "saudi")
DIALECT_KEYS = (*TARGET_DIALECTS, "formal_msa")
DIFFICULTIES = ("beginner", "intermediate", "advanced")


@dataclass(frozen=True)
class QuizDefaults:
    length: int = 10
    distractors: int = 3
    min_noise_tokens: int = 3
    max_noise_tokens: int = 5
    starter_phrases: int = 10


def ensure_dirs() -> None:
    for path in [ARTIFACTS_DIR, EXPORTS_DIR]:
        path.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str | None = None) -> None:
    name = (level or os.getenv("DIALECT_QUIZ_LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
