import json
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

FDATA_DIR = Path(__file__).parent.parent / "fdata"


def load_json(filename: str) -> dict:
    """Load a table from fdata/. Returns {} (and logs) when the file is unusable."""
    data_path = FDATA_DIR / filename
    try:
        with open(data_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except Exception as e:
        logger.error(f"Could not load {filename}: {e}")
        return {}


@dataclass(frozen=True)
class AnalysisItem:
    text: Any
    source_type: Optional[str] = None
    source_id: Optional[str] = None
    source_result_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LanguageResult:
    language: str
    processed_text: str
    translated_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EntityType(str, Enum):
    EMAIL = "EMAIL"
    URL = "URL"
    PHONE_NUMBER = "PHONE_NUMBER"
    IP_ADDRESS = "IP_ADDRESS"
    MONEY = "MONEY"
    DATE = "DATE"
    TIME = "TIME"
    HASHTAG = "HASHTAG"
    MENTION = "MENTION"
    ORGANIZATION = "ORGANIZATION"
    LOCATION = "LOCATION"
    PRODUCT = "PRODUCT"
    PERSON = "PERSON"
    MISC = "MISC"


class ExtractionMethod(str, Enum):
    PATTERN = "pattern"
    GAZETTEER = "gazetteer"
    EXTERNAL = "external"


@dataclass(frozen=True)
class Entity:
    text: str
    type: EntityType
    start: int
    end: int
    confidence: float
    method: ExtractionMethod

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "type": self.type.value,
            "start": self.start,
            "end": self.end,
            "confidence": self.confidence,
            "method": self.method.value,
        }


@dataclass
class SentenceSentiment:
    text: str
    label: str
    score: float
    confidence: float
    has_contrast: bool = False
    has_condition: bool = False
    has_emphasis: bool = False


@dataclass
class AspectSentiment:
    term: str
    label: str
    intensity_level: str
    score: float
    position: int
    sentence_index: int
    related_terms: List[str] = field(default_factory=list)


@dataclass
class SentimentResult:
    label: str = "neutral"
    intensity_level: str = "neutral"
    score: float = 0.0
    confidence: float = 0.5
    emotions: Dict[str, float] = field(default_factory=dict)
    aspects: List[AspectSentiment] = field(default_factory=list)
    sentences: List[SentenceSentiment] = field(default_factory=list)
    domain: Optional[str] = None
    language: str = "en"
    word_count: int = 0
    positive_count: int = 0
    negative_count: int = 0
    error: Optional[str] = None

    @classmethod
    def neutral(cls, language: str = "en", error: Optional[str] = None) -> "SentimentResult":
        """Placeholder for empty or unusable input; `error` marks an unavailable answer."""
        return cls(language=language, error=error)

    @property
    def available(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Topic:
    name: str
    score: float
    keywords: List[str]
    count: int


@dataclass
class Keyword:
    term: str
    score: float


@dataclass
class NGram:
    phrase: str
    frequency: int


@dataclass
class TopicResult:
    topics: List[Topic] = field(default_factory=list)
    keywords: List[Keyword] = field(default_factory=list)
    ngrams: List[NGram] = field(default_factory=list)
    domain: Optional[str] = None
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Insight:
    """A pain point or desire found in one sentence."""

    text: str
    sentence_index: int
    sentiment: str
    sentiment_score: float
    sentiment_level: str
    intensity: str
    frequency: Optional[str]
    keywords: List[str]
    category: str
    score: float


@dataclass
class InsightResult:
    pain_points: List[Insight] = field(default_factory=list)
    desires: List[Insight] = field(default_factory=list)
    language: str = "en"
    domain: Optional[str] = None
    sentence_count: int = 0
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
