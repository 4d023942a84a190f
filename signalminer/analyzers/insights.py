import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Optional, Pattern, Tuple

from ..utils.decorators import fail_open
from .base import Insight, InsightResult, SentimentResult, load_json
from .language import LanguageIdentifier
from .normalizer import TextNormalizer
from .sentiment import DEFAULT_LANGUAGE, SentimentAnalyzer, intensity_level, split_sentences

logger = logging.getLogger(__name__)

GENERAL = "general"
OTHER = "other"
MIN_KEYWORD_LENGTH = 4
MIN_PART_LENGTH = 3
HIGH_SCORE = 0.7
MEDIUM_SCORE = 0.3
SENTIMENT_WEIGHT = 5

LEVELS = ("high", "medium", "low")
LEVEL_WEIGHTS = {"high": 3, "medium": 2, "low": 1}

_NONWORD_RE = re.compile(r"[^\w]")


@dataclass(frozen=True)
class _Category:
    name: str
    parts: Tuple[str, ...]
    pattern: Pattern


@dataclass(frozen=True)
class _LanguageTables:
    pain: Tuple[Pattern, ...]
    desire: Tuple[Pattern, ...]
    negative: Pattern
    positive: Pattern
    intensity: Tuple[Tuple[str, Pattern], ...]
    frequency: Tuple[Tuple[str, Pattern], ...]


def _word_pattern(words) -> Pattern:
    alternatives = "|".join(re.escape(w.lower()) for w in sorted(words, key=len, reverse=True))
    return re.compile(r"\b(?:" + (alternatives or r"(?!x)x") + r")\b")


def _ladder(table: dict) -> Tuple[Tuple[str, Pattern], ...]:
    return tuple((level, _word_pattern(table.get(level, []))) for level in LEVELS)


def _category(name: str) -> _Category:
    parts = tuple(p for p in name.split("_") if len(p) >= MIN_PART_LENGTH)
    phrases = [name.replace("_", " "), *parts]
    pattern = re.compile(r"\b(?:" + "|".join(re.escape(p) for p in phrases) + ")")
    return _Category(name=name, parts=parts, pattern=pattern)


def _load_tables():
    data = load_json("pain_points.json")
    languages = set(data.get("pain_patterns", {})) | set(data.get("desire_patterns", {}))

    def _per_language(key, lang):
        table = data.get(key, {})
        return table.get(lang, table.get(DEFAULT_LANGUAGE, []))

    tables = {
        lang: _LanguageTables(
            pain=tuple(re.compile(p, re.IGNORECASE) for p in _per_language("pain_patterns", lang)),
            desire=tuple(re.compile(p, re.IGNORECASE) for p in _per_language("desire_patterns", lang)),
            negative=_word_pattern(_per_language("negative_keywords", lang)),
            positive=_word_pattern(_per_language("positive_keywords", lang)),
            intensity=_ladder(_per_language("intensity", lang) or {}),
            frequency=_ladder(_per_language("frequency", lang) or {}),
        )
        for lang in languages
    }
    categories = {
        domain: tuple(_category(name) for name in names)
        for domain, names in data.get("categories", {}).items()
    }
    return MappingProxyType(tables), MappingProxyType(categories)


_TABLES, _CATEGORIES = _load_tables()


def _empty_result(error, self, text, language=None, domain=None):
    return InsightResult(
        language=language or DEFAULT_LANGUAGE, domain=domain, error=f"{type(error).__name__}: {error}"
    )


def _first_level(sentence: str, ladder) -> Optional[str]:
    for level, pattern in ladder:
        if pattern.search(sentence):
            return level
    return None


class PainPointExtractor:
    """
    Finds pain points (complaints, frustrations) and desires (wishes,
    suggestions) sentence by sentence.

    A sentence is a pain point when a complaint pattern matches and the
    sentence scores negative or holds a negative keyword. It is a desire
    when a wish pattern matches and the sentence is not negative, or holds
    a positive keyword. One sentence can be both.

    Each insight gets an intensity (marker words, else the sentence score),
    a frequency when a frequency word is present, keywords, a category from
    the domain's category table, and a rank score. Both lists are ordered
    by rank score, highest first.
    """

    def __init__(
        self,
        sentiment_analyzer: Optional[SentimentAnalyzer] = None,
        normalizer: Optional[TextNormalizer] = None,
        language_identifier: Optional[LanguageIdentifier] = None,
    ):
        self.sentiment_analyzer = sentiment_analyzer or SentimentAnalyzer()
        self.normalizer = normalizer or TextNormalizer()
        self.language_identifier = language_identifier or LanguageIdentifier()
        self.tables = _TABLES
        self.categories = _CATEGORIES

    def table_language(self, language: Optional[str]) -> str:
        return language if language in self.tables else DEFAULT_LANGUAGE

    @fail_open(_empty_result)
    def extract(
        self,
        text,
        language: Optional[str] = None,
        domain: Optional[str] = None,
    ) -> InsightResult:
        if not isinstance(text, str):
            logger.warning(f"Insight input is {type(text).__name__}, not text")
            return InsightResult(language=self.table_language(language), domain=domain, error="invalid input")
        text = text.strip()
        if not text:
            return InsightResult(language=self.table_language(language), domain=domain)

        lang = self.table_language(language or self.language_identifier.identify(text))
        tables = self.tables[lang]
        sentences = split_sentences(text)

        pain_points: List[Insight] = []
        desires: List[Insight] = []
        for index, sentence in enumerate(sentences):
            is_pain = any(p.search(sentence) for p in tables.pain)
            is_desire = any(p.search(sentence) for p in tables.desire)
            if not (is_pain or is_desire):
                continue

            lowered = sentence.lower()
            sentiment = self.sentiment_analyzer.analyze(sentence, language=lang, domain=domain)
            negative = sentiment.label == "negative" or sentiment.score < 0
            if is_pain and (negative or tables.negative.search(lowered)):
                pain_points.append(self._insight(sentence, index, sentiment, tables, lang, domain))
            if is_desire and (sentiment.label != "negative" or tables.positive.search(lowered)):
                desires.append(self._insight(sentence, index, sentiment, tables, lang, domain))

        logger.debug(
            f"Found {len(pain_points)} pain point(s) and {len(desires)} desire(s) "
            f"in {len(sentences)} sentence(s)"
        )
        return InsightResult(
            pain_points=self.rank(pain_points),
            desires=self.rank(desires),
            language=lang,
            domain=domain,
            sentence_count=len(sentences),
        )

    def _insight(
        self,
        sentence: str,
        index: int,
        sentiment: SentimentResult,
        tables: _LanguageTables,
        language: str,
        domain: Optional[str],
    ) -> Insight:
        lowered = sentence.lower()
        intensity = _first_level(lowered, tables.intensity) or self.intensity_from_score(sentiment.score)
        frequency = _first_level(lowered, tables.frequency)
        keywords = self.keywords(sentence, language)
        score = (
            LEVEL_WEIGHTS[intensity]
            + LEVEL_WEIGHTS.get(frequency, 0)
            + abs(sentiment.score) * SENTIMENT_WEIGHT
        )
        return Insight(
            text=sentence,
            sentence_index=index,
            sentiment=sentiment.label,
            sentiment_score=sentiment.score,
            sentiment_level=intensity_level(sentiment.score),
            intensity=intensity,
            frequency=frequency,
            keywords=keywords,
            category=self.categorize(keywords, sentence, domain),
            score=round(score, 2),
        )

    @staticmethod
    def intensity_from_score(score: float) -> str:
        magnitude = abs(score)
        if magnitude > HIGH_SCORE:
            return "high"
        if magnitude > MEDIUM_SCORE:
            return "medium"
        return "low"

    def keywords(self, sentence: str, language: str) -> List[str]:
        """Distinct lowercased words longer than three characters, minus stopwords."""
        stopwords = self.normalizer.stopwords(language)
        seen: Dict[str, None] = {}
        for word in sentence.lower().split():
            word = _NONWORD_RE.sub("", word)
            if len(word) >= MIN_KEYWORD_LENGTH and word not in stopwords:
                seen.setdefault(word, None)
        return list(seen)

    def categorize(self, keywords: List[str], sentence: str, domain: Optional[str] = None) -> str:
        """
        Best scoring category of the domain's table, or "other".

        A keyword contained in (or containing) the category name scores 2,
        one overlapping a name part scores 1; the name or a part appearing
        in the sentence scores 3.
        """
        lowered = sentence.lower()
        best, best_score = OTHER, 0
        for category in self.categories.get(domain) or self.categories.get(GENERAL, ()):
            score = 0
            for keyword in keywords:
                if keyword in category.name or category.name in keyword:
                    score += 2
                elif any(part in keyword or keyword in part for part in category.parts):
                    score += 1
            if category.pattern.search(lowered):
                score += 3
            if score > best_score:
                best, best_score = category.name, score
        return best

    @staticmethod
    def rank(insights: List[Insight]) -> List[Insight]:
        return sorted(insights, key=lambda i: (-i.score, i.sentence_index))
