from .base import (
    AnalysisItem,
    Entity,
    EntityType,
    InsightResult,
    LanguageResult,
    SentimentResult,
    TopicResult,
)
from .normalizer import TextNormalizer
from .language import LanguageIdentifier
from .entities import EntityExtractor
from .sentiment import SentimentAnalyzer
from .topics import TopicExtractor
from .insights import PainPointExtractor

__all__ = [
    "AnalysisItem",
    "Entity",
    "EntityType",
    "InsightResult",
    "LanguageResult",
    "SentimentResult",
    "TopicResult",
    "TextNormalizer",
    "LanguageIdentifier",
    "EntityExtractor",
    "SentimentAnalyzer",
    "TopicExtractor",
    "PainPointExtractor",
]
