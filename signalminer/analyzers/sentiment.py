import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from ..utils.decorators import fail_open
from .base import (
    AspectSentiment,
    SentenceSentiment,
    SentimentResult,
    load_json,
)

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

NEGATION = -1.0
INTENSITY = 2.0
EMPHASIS = 1.5
BEFORE_CONTRAST = 0.5
AFTER_CONTRAST = 1.5
AFTER_CONDITION = 0.7
SENTENCE_LABEL_THRESHOLD = 0.1
MIN_DOMAIN_HITS = 2
MIN_ASPECT_LENGTH = 4

INTENSITY_LEVELS = {
    "positive": (
        (0.2, "slightly positive"),
        (0.5, "moderately positive"),
        (0.8, "very positive"),
        (1.0, "extremely positive"),
    ),
    "negative": (
        (-0.2, "slightly negative"),
        (-0.5, "moderately negative"),
        (-0.8, "very negative"),
        (-1.0, "extremely negative"),
    ),
}

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")
_EDGE_NONWORD_RE = re.compile(r"^[^\w]+|[^\w]+$")
_NONWORD_RE = re.compile(r"[^\w]")


@dataclass(frozen=True)
class LexiconEntry:
    score: float
    emotions: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class _MarkerSet:
    intensifiers: FrozenSet[str]
    negators: FrozenSet[str]
    contrast: FrozenSet[str]
    condition: FrozenSet[str]
    emphasis: FrozenSet[str]


@dataclass(frozen=True)
class _Hit:
    """One lexicon match inside a sentence."""

    term: str
    index: int
    length: int
    entry: LexiconEntry


def _to_lexicon(table: dict) -> Mapping[str, LexiconEntry]:
    return MappingProxyType(
        {
            term.lower(): LexiconEntry(
                score=float(info.get("score", 0.0)),
                emotions=MappingProxyType(dict(info.get("emotions", {}))),
            )
            for term, info in table.items()
        }
    )


def _load_tables():
    lexicons = {lang: _to_lexicon(t) for lang, t in load_json("lexicons.json").items()}
    domain_lexicons = {d: _to_lexicon(t) for d, t in load_json("domain_lexicons.json").items()}

    markers_data = load_json("sentiment_markers.json")
    kinds = ("intensifiers", "negators", "contrast", "condition", "emphasis")
    languages = set(lexicons)
    for kind in kinds:
        languages.update(markers_data.get(kind, {}))

    def _words(kind, lang):
        table = markers_data.get(kind, {})
        words = table.get(lang, table.get(DEFAULT_LANGUAGE, []))
        return frozenset(w.lower() for w in words)

    markers = {
        lang: _MarkerSet(**{kind: _words(kind, lang) for kind in kinds})
        for lang in languages
    }
    emotions = tuple(markers_data.get("emotions", []))
    domain_patterns = {
        domain: tuple(re.compile(r"\b" + re.escape(kw) + r"\b") for kw in keywords)
        for domain, keywords in markers_data.get("domains", {}).items()
    }
    return lexicons, domain_lexicons, markers, emotions, domain_patterns


(
    _LEXICONS,
    _DOMAIN_LEXICONS,
    _MARKERS,
    EMOTIONS,
    _DOMAIN_PATTERNS,
) = _load_tables()


def intensity_level(score: float) -> str:
    """Map a score in [-1, 1] onto the four-step ladder for its polarity."""
    if score > 0:
        for threshold, level in INTENSITY_LEVELS["positive"]:
            if score <= threshold:
                return level
        return INTENSITY_LEVELS["positive"][-1][1]
    if score < 0:
        for threshold, level in INTENSITY_LEVELS["negative"]:
            if score >= threshold:
                return level
        return INTENSITY_LEVELS["negative"][-1][1]
    return "neutral"


def polarity(score: float) -> str:
    if score > 0:
        return "positive"
    if score < 0:
        return "negative"
    return "neutral"


def confidence_for(score: float) -> float:
    return round(0.5 + min(abs(score) / 2, 0.45), 2)


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


def _normalize_token(token: str) -> str:
    return _EDGE_NONWORD_RE.sub("", token.lower())


def _max_phrase_length(*vocabularies) -> int:
    longest = 1
    for vocabulary in vocabularies:
        for term in vocabulary:
            longest = max(longest, len(term.split()))
    return longest


def _invalid_input_result(error, self, text, language=None, domain=None):
    return SentimentResult.neutral(
        language=self.lexicon_language(language), error=f"{type(error).__name__}: {error}"
    )


class SentimentAnalyzer:
    """
    Lexicon based sentiment scoring with sentence context.

    Per sentence, a negator flips and an intensifier doubles the next
    lexicon hit; emphasis markers boost the whole sentence; contrast
    markers damp hits before the marker and boost hits after it;
    condition markers damp hits after the marker. Terms may be single
    words or fixed phrases, matched longest first.

    A domain lexicon (e-commerce, finance, healthcare, hospitality,
    technology) is merged over the language lexicon when a domain is given
    or detected. The result also carries a normalized emotion distribution
    and per-aspect scores.

    analyze() never raises. Empty or non-text input, and any internal
    failure, give SentimentResult.neutral() with `error` set.
    """

    def __init__(
        self,
        lexicons: Optional[Mapping[str, Mapping[str, LexiconEntry]]] = None,
        domain_lexicons: Optional[Mapping[str, Mapping[str, LexiconEntry]]] = None,
    ):
        self.lexicons = MappingProxyType(dict(lexicons or _LEXICONS))
        self.domain_lexicons = MappingProxyType(dict(domain_lexicons or _DOMAIN_LEXICONS))
        self.emotions = frozenset(EMOTIONS)
        self._combined: Dict[Tuple[str, Optional[str]], Mapping[str, LexiconEntry]] = {}
        for language, base in self.lexicons.items():
            self._combined[(language, None)] = base
            for domain, extra in self.domain_lexicons.items():
                self._combined[(language, domain)] = MappingProxyType({**base, **extra})

    def lexicon_language(self, language: Optional[str]) -> str:
        return language if language in self.lexicons else DEFAULT_LANGUAGE

    def lexicon_for(self, language: Optional[str], domain: Optional[str]) -> Mapping[str, LexiconEntry]:
        language = self.lexicon_language(language)
        return self._combined.get((language, domain), self._combined[(language, None)])

    def detect_domain(self, text) -> Optional[str]:
        """Domain with the most keyword hits, if it has at least two."""
        if not isinstance(text, str) or not text:
            return None
        lowered = text.lower()
        best_domain, best_hits = None, 0
        for domain, patterns in _DOMAIN_PATTERNS.items():
            hits = sum(len(p.findall(lowered)) for p in patterns)
            if hits > best_hits:
                best_domain, best_hits = domain, hits
        return best_domain if best_hits >= MIN_DOMAIN_HITS else None

    @fail_open(_invalid_input_result)
    def analyze(
        self,
        text,
        language: Optional[str] = None,
        domain: Optional[str] = None,
    ) -> SentimentResult:
        lang = self.lexicon_language(language)
        if not isinstance(text, str):
            logger.warning(f"Sentiment input is {type(text).__name__}, not text")
            return SentimentResult.neutral(language=lang, error="invalid input")
        text = text.strip()
        if not text:
            return SentimentResult.neutral(language=lang, error="empty input")

        domain = domain or self.detect_domain(text)
        lexicon = self.lexicon_for(lang, domain)
        markers = _MARKERS.get(lang, _MARKERS[DEFAULT_LANGUAGE])
        max_len = _max_phrase_length(
            lexicon,
            markers.intensifiers,
            markers.negators,
            markers.contrast,
            markers.condition,
            markers.emphasis,
        )

        total = 0.0
        hits_total = 0
        positive_count = 0
        negative_count = 0
        emotion_totals: Dict[str, float] = {e: 0.0 for e in EMOTIONS}
        sentences: List[SentenceSentiment] = []
        aspects: List[AspectSentiment] = []
        position_offset = 0

        for raw_sentence in split_sentences(text):
            raw_tokens = raw_sentence.split()
            sentence_index = len(sentences)
            tokens = [_normalize_token(t) for t in raw_tokens]

            contrast_at = self._first_marker(tokens, markers.contrast, max_len)
            condition_at = self._first_marker(tokens, markers.condition, max_len)
            has_emphasis = self._first_marker(tokens, markers.emphasis, max_len) is not None
            emphasis = EMPHASIS if has_emphasis else 1.0

            sentence_total = 0.0
            sentence_hits: List[_Hit] = []
            negation = 1.0
            intensity = 1.0

            i = 0
            while i < len(tokens):
                kind, length, term = self._match(tokens, i, lexicon, markers, max_len)
                if kind is None:
                    i += 1
                    continue
                if kind == "intensifier":
                    intensity = INTENSITY
                elif kind == "negator":
                    negation = NEGATION
                elif kind == "lexicon":
                    entry = lexicon[term]
                    score = entry.score * negation * intensity * emphasis
                    if contrast_at is not None:
                        if i < contrast_at:
                            score *= BEFORE_CONTRAST
                        elif i > contrast_at:
                            score *= AFTER_CONTRAST
                    if condition_at is not None and i > condition_at:
                        score *= AFTER_CONDITION

                    sentence_total += score
                    sentence_hits.append(_Hit(term=term, index=i, length=length, entry=entry))
                    total += score
                    hits_total += 1
                    if score > 0:
                        positive_count += 1
                    elif score < 0:
                        negative_count += 1

                    for emotion, weight in entry.emotions.items():
                        if emotion in emotion_totals:
                            emotion_totals[emotion] += weight * abs(negation) * intensity

                    negation = 1.0
                    intensity = 1.0
                i += length

            mean = sentence_total / len(sentence_hits) if sentence_hits else 0.0
            if mean > SENTENCE_LABEL_THRESHOLD:
                label = "positive"
            elif mean < -SENTENCE_LABEL_THRESHOLD:
                label = "negative"
            else:
                label = "neutral"
            sentences.append(
                SentenceSentiment(
                    text=raw_sentence,
                    label=label,
                    score=round(mean, 2),
                    confidence=confidence_for(mean),
                    has_contrast=contrast_at is not None,
                    has_condition=condition_at is not None,
                    has_emphasis=has_emphasis,
                )
            )

            aspects.extend(
                self._sentence_aspects(raw_tokens, sentence_hits, markers, position_offset, sentence_index)
            )
            position_offset += len(raw_tokens)

        score = total / hits_total if hits_total else 0.0
        score = max(-1.0, min(1.0, score))

        return SentimentResult(
            label=polarity(score),
            intensity_level=intensity_level(score),
            score=round(score, 2),
            confidence=confidence_for(score),
            emotions=self._normalize_emotions(emotion_totals),
            aspects=aspects,
            sentences=sentences,
            domain=domain,
            language=lang,
            word_count=hits_total,
            positive_count=positive_count,
            negative_count=negative_count,
        )

    @staticmethod
    def _match(tokens, i, lexicon, markers: _MarkerSet, max_len):
        """Longest vocabulary entry starting at token i as (kind, length, term)."""
        for length in range(min(max_len, len(tokens) - i), 0, -1):
            term = " ".join(tokens[i:i + length])
            if not term or "" in tokens[i:i + length]:
                continue
            if term in markers.intensifiers:
                return "intensifier", length, term
            if term in markers.negators:
                return "negator", length, term
            if term in lexicon:
                return "lexicon", length, term
            if term in markers.contrast or term in markers.condition or term in markers.emphasis:
                return "marker", length, term
        return None, 1, None

    @staticmethod
    def _first_marker(tokens: List[str], vocabulary: FrozenSet[str], max_len: int) -> Optional[int]:
        for i in range(len(tokens)):
            for length in range(min(max_len, len(tokens) - i), 0, -1):
                if " ".join(tokens[i:i + length]) in vocabulary:
                    return i
        return None

    def _normalize_emotions(self, totals: Dict[str, float]) -> Dict[str, float]:
        total = sum(totals.values())
        if total <= 0:
            return {}
        normalized = {e: round(v / total, 2) for e, v in totals.items()}
        # Rounding can push the sum past 1; the largest weight absorbs the excess.
        excess = round(sum(normalized.values()) - 1.0, 2)
        if excess > 0:
            largest = max(normalized, key=normalized.get)
            normalized[largest] = round(normalized[largest] - excess, 2)
        ranked = sorted(
            ((e, v) for e, v in normalized.items() if v > 0),
            key=lambda item: item[1],
            reverse=True,
        )
        return dict(ranked)

    @staticmethod
    def _sentence_aspects(
        raw_tokens: List[str],
        hits: List[_Hit],
        markers: _MarkerSet,
        position_offset: int,
        sentence_index: int,
    ) -> List[AspectSentiment]:
        """
        Candidate aspects are tokens longer than three characters that are
        not negators or intensifiers. There is no part-of-speech signal, so
        plenty of non-aspect words qualify.
        """
        aspects = []
        for j, raw in enumerate(raw_tokens):
            term = _NONWORD_RE.sub("", raw.lower())
            if (
                len(term) < MIN_ASPECT_LENGTH
                or term in markers.negators
                or term in markers.intensifiers
            ):
                continue

            weighted: Dict[str, float] = {}
            for hit in hits:
                if term in {_NONWORD_RE.sub("", t) for t in hit.term.split()}:
                    continue
                distance = min(abs(k - j) for k in range(hit.index, hit.index + hit.length))
                value = hit.entry.score / (1 + distance * 0.5)
                if hit.term not in weighted or abs(value) > abs(weighted[hit.term]):
                    weighted[hit.term] = value

            score = sum(weighted.values()) / len(weighted) if weighted else 0.0
            aspects.append(
                AspectSentiment(
                    term=term,
                    label=polarity(score),
                    intensity_level=intensity_level(score),
                    score=round(score, 2),
                    position=position_offset + j,
                    sentence_index=sentence_index,
                    related_terms=list(weighted),
                )
            )
        return aspects
