import logging
import re
from typing import Dict, FrozenSet, List, Optional

from ..config import NormalizeOptions
from .base import load_json

logger = logging.getLogger(__name__)


def _load_stopwords() -> Dict[str, FrozenSet[str]]:
    data = load_json("stopwords.json")
    return {lang: frozenset(w.lower() for w in words) for lang, words in data.items()}


_STOPWORDS: Dict[str, FrozenSet[str]] = _load_stopwords()

_MARKUP_RE = re.compile(r"<[^>]*>")
_LINK_RE = re.compile(r"https?://\S+")
_ADDRESS_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_DECORATIVE_RE = re.compile(
    "["
    "\U0001F300-\U0001F5FF"
    "\U0001F600-\U0001F64F"
    "\U0001F680-\U0001F6FF"
    "\U0001F700-\U0001F77F"
    "\U0001F780-\U0001F7FF"
    "\U0001F800-\U0001F8FF"
    "\U0001F900-\U0001F9FF"
    "\U0001FA00-\U0001FA6F"
    "\U0001FA70-\U0001FAFF"
    "\u2600-\u26FF"
    "\u2700-\u27BF"
    "]"
)
# Combining accents are kept so decomposed letters survive a second pass.
_SPECIAL_CHARS_RE = re.compile(r"[^\w\s.,!?;:()\[\]{}'\"\u0300-\u036f]")
_NUMBER_RE = re.compile(r"\b\d+\b")
_WHITESPACE_RE = re.compile(r"\s+")
_EDGE_PUNCT_RE = re.compile(r"^[^\w]+|[^\w]+$")


def strip_edge_punctuation(token: str) -> str:
    return _EDGE_PUNCT_RE.sub("", token)


class TextNormalizer:
    """
    Cleans raw scraped text before analysis.

    Steps run in a fixed order: markup, links, e-mail addresses, decorative
    symbols (emoji), special characters, numbers (optional), whitespace,
    stopwords (optional), lowercase, trim. Each step except whitespace
    collapse and trim is toggled through NormalizeOptions.

    normalize() never raises: non-string input gives "", and an internal
    failure returns the input unchanged.
    """

    def __init__(self, stopwords: Optional[Dict[str, FrozenSet[str]]] = None):
        self._stopwords = stopwords if stopwords is not None else _STOPWORDS

    def normalize(self, text, options: Optional[NormalizeOptions] = None) -> str:
        if not isinstance(text, str) or not text:
            return ""

        options = options or NormalizeOptions()
        try:
            cleaned = text
            if options.remove_markup:
                cleaned = _MARKUP_RE.sub(" ", cleaned)
            if options.remove_links:
                cleaned = _LINK_RE.sub(" ", cleaned)
            if options.remove_addresses:
                cleaned = _ADDRESS_RE.sub(" ", cleaned)
            if options.remove_decorative:
                cleaned = _DECORATIVE_RE.sub("", cleaned)
            if options.remove_special_chars:
                cleaned = _SPECIAL_CHARS_RE.sub(" ", cleaned)
            if options.remove_numbers:
                cleaned = _NUMBER_RE.sub(" ", cleaned)

            cleaned = _WHITESPACE_RE.sub(" ", cleaned)

            if options.remove_stopwords:
                cleaned = self.remove_stopwords(cleaned, options.language)
            if options.lowercase:
                cleaned = cleaned.lower()

            return cleaned.strip()
        except Exception as e:
            logger.error(f"Normalization failed, returning input unchanged: {e}")
            return text

    def stopwords(self, language: str = "en") -> FrozenSet[str]:
        return self._stopwords.get(language) or self._stopwords.get("en", frozenset())

    def remove_stopwords(self, text: str, language: str = "en") -> str:
        """Drop stopwords, matching on the token without attached punctuation."""
        stopwords = self.stopwords(language)
        kept = [
            word
            for word in text.split(" ")
            if word and strip_edge_punctuation(word).lower() not in stopwords
        ]
        return " ".join(kept)

    @staticmethod
    def tokenize(text: str) -> List[str]:
        if not text:
            return []
        return [t for t in _WHITESPACE_RE.split(text) if t]
