from dialect_quiz.phrases.loader import PhraseStore, load_phrases
from dialect_quiz.phrases.models import Phrase, Translation, Usage

__all__ = ["Phrase", "PhraseStore", "Translation", "Usage", "load_phrases"]
