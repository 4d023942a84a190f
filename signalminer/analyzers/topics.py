import logging
from collections import Counter
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from sklearn.feature_extraction.text import CountVectorizer

from ..config import NormalizeOptions
from ..utils.decorators import fail_open
from .base import Keyword, NGram, Topic, TopicResult, load_json
from .normalizer import TextNormalizer, strip_edge_punctuation

logger = logging.getLogger(__name__)

TOP_TOPICS = 5
TOP_NGRAMS = 10
TOP_KEYWORDS = 15
MIN_TERM_LENGTH = 2
PHRASE_WEIGHT = 2
PARTIAL_WEIGHT = 0.5

_TOPIC_OPTIONS = NormalizeOptions(remove_stopwords=True, lowercase=True)

TopicTable = Mapping[str, Tuple[str, ...]]


def _load_topic_tables() -> Tuple[Mapping[str, TopicTable], Mapping[str, Tuple[str, ...]]]:
    data = load_json("topics.json")
    tables = {
        domain: MappingProxyType({name: tuple(kws) for name, kws in topics.items()})
        for domain, topics in data.get("tables", {}).items()
    }
    detection = {domain: tuple(kws) for domain, kws in data.get("detection", {}).items()}
    return MappingProxyType(tables), MappingProxyType(detection)


_TOPIC_TABLES, _DETECTION_KEYWORDS = _load_topic_tables()


def _empty_result(error, self, text, domain=None):
    return TopicResult(domain=domain, error=f"{type(error).__name__}: {error}")


class TopicExtractor:
    """
    Scores fixed topic keyword tables against a text.

    Topics come from the table for the given or detected domain
    (ecommerce, social_media, reviews), or from every table when no domain
    applies. Alongside the topics the result lists the most frequent 2 and
    3 word n-grams and a frequency keyword ranking.
    """

    def __init__(self, normalizer: Optional[TextNormalizer] = None):
        self.normalizer = normalizer or TextNormalizer()
        self.tables = _TOPIC_TABLES

    def detect_domain(self, text: str) -> Optional[str]:
        lowered = text.lower()
        best_domain, best_hits = None, 0
        for domain, keywords in _DETECTION_KEYWORDS.items():
            hits = sum(1 for kw in keywords if kw in lowered)
            if hits > best_hits:
                best_domain, best_hits = domain, hits
        return best_domain

    def table_for(self, domain: Optional[str]) -> Dict[str, Tuple[str, ...]]:
        if domain in self.tables:
            return dict(self.tables[domain])
        combined: Dict[str, Tuple[str, ...]] = {}
        for table in self.tables.values():
            combined.update(table)
        return combined

    @fail_open(_empty_result)
    def extract_topics(self, text, domain: Optional[str] = None) -> TopicResult:
        if not isinstance(text, str) or not text.strip():
            return TopicResult(domain=domain)

        cleaned = self.normalizer.normalize(text, _TOPIC_OPTIONS)
        tokens = [t for t in (strip_edge_punctuation(w) for w in self.normalizer.tokenize(cleaned)) if t]
        frequencies = Counter(t for t in tokens if len(t) >= MIN_TERM_LENGTH)

        domain = domain or self.detect_domain(text)
        topics = self._score_topics(self.table_for(domain), frequencies, " ".join(tokens))

        return TopicResult(
            topics=topics[:TOP_TOPICS],
            keywords=self.rank_keywords(frequencies),
            ngrams=self.top_ngrams(tokens),
            domain=domain,
        )

    @staticmethod
    def _score_topics(table, frequencies: Counter, cleaned: str) -> List[Topic]:
        scored = []
        for name, keywords in table.items():
            score = 0.0
            count = 0
            matched: List[str] = []

            for keyword in keywords:
                parts = keyword.split()
                found = False
                if len(parts) == 1:
                    tf = frequencies.get(keyword, 0)
                    if tf:
                        score += tf
                        count += tf
                        matched.append(keyword)
                        found = True
                elif keyword in cleaned:
                    score += len(parts) * PHRASE_WEIGHT
                    count += 1
                    matched.append(keyword)
                    found = True

                if not found and len(parts) > 1:
                    for part in parts:
                        tf = frequencies.get(part, 0)
                        if tf:
                            score += tf * PARTIAL_WEIGHT
                            count += tf
                            matched.append(part)

            if score > 0:
                scored.append(
                    Topic(name=name, score=score, keywords=list(dict.fromkeys(matched)), count=count)
                )

        scored.sort(key=lambda t: t.score, reverse=True)
        return scored

    @staticmethod
    def top_ngrams(tokens: List[str], limit: int = TOP_NGRAMS) -> List[NGram]:
        if len(tokens) < 2:
            return []
        vectorizer = CountVectorizer(
            ngram_range=(2, 3),
            tokenizer=str.split,
            lowercase=False,
            token_pattern=None,
        )
        counts = vectorizer.fit_transform([" ".join(tokens)]).toarray()[0]
        ranked = sorted(
            zip(vectorizer.get_feature_names_out(), counts),
            key=lambda item: (-item[1], item[0]),
        )
        return [NGram(phrase=str(p), frequency=int(f)) for p, f in ranked[:limit]]

    @staticmethod
    def rank_keywords(frequencies: Counter, limit: int = TOP_KEYWORDS) -> List[Keyword]:
        ranked = sorted(frequencies.items(), key=lambda item: (-item[1], item[0]))
        return [Keyword(term=term, score=float(freq)) for term, freq in ranked[:limit]]
