"""Text normalization shared by the intent analyzer and the delivery zone resolver.

Examples:
    "  Thiès "        -> "thies"
    "SAINT-LOUIS"     -> "saint-louis"
    "Je  veux l’acheter" -> "je veux l'acheter"
"""
import re
import unicodedata
from functools import lru_cache

_WHITESPACE = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Lowercase, strip accents, unify apostrophes and collapse whitespace."""
    if not text:
        return ""
    text = text.replace("’", "'").replace(" ", " ")
    return _WHITESPACE.sub(" ", strip_accents(text).lower()).strip()


@lru_cache(maxsize=512)
def _phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(normalize_text(phrase)) + r"(?!\w)")


def contains_phrase(normalized_text: str, phrase: str) -> bool:
    """Whole-word / whole-phrase match on already-normalized text."""
    return _phrase_pattern(phrase).search(normalized_text) is not None


def matches_any(normalized_text: str, phrases) -> bool:
    return any(contains_phrase(normalized_text, phrase) for phrase in phrases)
