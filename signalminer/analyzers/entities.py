import logging
import re
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from ..backends import BaseEntityBackend
from .base import Entity, EntityType, ExtractionMethod, load_json

logger = logging.getLogger(__name__)

PATTERN_CONFIDENCE = 0.8
GAZETTEER_CONFIDENCE = 0.9

_DATE_RE = re.compile(r"\b(?:\d{1,2}[-/]\d{1,2}[-/]\d{2,4}|\d{4}[-/]\d{1,2}[-/]\d{1,2})\b")

_PATTERNS: Tuple[Tuple[EntityType, Pattern], ...] = (
    (EntityType.EMAIL, re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")),
    # Trailing sentence punctuation is not part of the link.
    (EntityType.URL, re.compile(r"https?://[^\s<>\"']*[^\s<>\"'.,;:!?)]")),
    (
        EntityType.PHONE_NUMBER,
        re.compile(
            r"(?<![\w.])(?:\+\d{1,3}[\s-]?)?(?:\(\d{1,4}\)[\s-]?)?"
            r"\d{2,4}[\s-]\d{2,4}[\s-]?\d{2,9}(?![\w.])"
        ),
    ),
    (EntityType.IP_ADDRESS, re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")),
    (
        EntityType.MONEY,
        re.compile(r"\$\s?\d+(?:\.\d{2})?|€\s?\d+(?:,\d{2})?|£\s?\d+(?:\.\d{2})?"),
    ),
    (EntityType.DATE, _DATE_RE),
    (EntityType.TIME, re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?(?:\s?[ap]\.?m\.?)?\b", re.I)),
    (EntityType.HASHTAG, re.compile(r"(?<![\w#])#\w+")),
    (EntityType.MENTION, re.compile(r"(?<![\w.@])@[A-Za-z0-9_]+")),
)

# Dates and short digit runs also fit the phone shape.
_VALIDATORS = {
    EntityType.PHONE_NUMBER: lambda s: sum(c.isdigit() for c in s) >= 7 and not _DATE_RE.fullmatch(s),
}


def _compile_gazetteers(data: Dict[str, List[str]]) -> Tuple[Tuple[EntityType, Pattern], ...]:
    compiled = []
    for type_name, names in data.items():
        try:
            entity_type = EntityType(type_name)
        except ValueError:
            logger.warning(f"Skipping gazetteer with unknown entity type {type_name}")
            continue
        for name in names:
            compiled.append(
                (entity_type, re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE))
            )
    return tuple(compiled)


_GAZETTEERS = _compile_gazetteers(load_json("gazetteers.json"))


def deduplicate(entities: Iterable[Entity]) -> List[Entity]:
    """
    Keep one entity per (lowercased text, type), the most confident one
    (earliest on ties), then order by confidence descending.
    """
    best: Dict[Tuple[str, EntityType], Entity] = {}
    for entity in entities:
        key = (entity.text.lower(), entity.type)
        current = best.get(key)
        if current is None or entity.confidence > current.confidence:
            best[key] = entity
    return sorted(best.values(), key=lambda e: e.confidence, reverse=True)


class EntityExtractor:
    """
    Finds structured spans and known names in text.

    Pattern rules (e-mail, URL, phone, IP, money, date, time, hashtag,
    mention) and gazetteer lookups (organizations, locations, products)
    always run. An optional external backend adds its own entities; if it
    is missing or fails, only the built-in results are returned.
    """

    def __init__(self, backend: Optional[BaseEntityBackend] = None):
        self.backend = backend
        self._patterns = _PATTERNS
        self._gazetteers = _GAZETTEERS

    def extract(self, text) -> List[Entity]:
        if not isinstance(text, str) or not text:
            return []
        entities = self.extract_builtin(text)
        entities.extend(self.extract_external(text))
        return deduplicate(entities)

    def extract_builtin(self, text: str) -> List[Entity]:
        entities: List[Entity] = []
        for entity_type, pattern in self._patterns:
            entities.extend(
                self._from_matches(pattern, text, entity_type, PATTERN_CONFIDENCE, ExtractionMethod.PATTERN)
            )
        for entity_type, pattern in self._gazetteers:
            entities.extend(
                self._from_matches(pattern, text, entity_type, GAZETTEER_CONFIDENCE, ExtractionMethod.GAZETTEER)
            )
        return entities

    def extract_external(self, text: str) -> List[Entity]:
        """Entities from the configured backend; [] when absent or failing."""
        if self.backend is None:
            return []
        if not self.backend.is_available():
            logger.debug(f"Entity backend {self.backend.name} unavailable, using rules only")
            return []

        try:
            raw = self.backend.extract(text)
        except Exception as e:
            logger.warning(f"Entity backend {self.backend.name} failed: {e}")
            return []

        entities = []
        for item in raw or []:
            entity = self._coerce_external(item, text)
            if entity is not None:
                entities.append(entity)
        return entities

    @staticmethod
    def _from_matches(pattern, text, entity_type, confidence, method) -> List[Entity]:
        valid = _VALIDATORS.get(entity_type, bool)
        return [
            Entity(
                text=m.group(0),
                type=entity_type,
                start=m.start(),
                end=m.end(),
                confidence=confidence,
                method=method,
            )
            for m in pattern.finditer(text)
            if valid(m.group(0))
        ]

    @staticmethod
    def _coerce_external(item: dict, text: str) -> Optional[Entity]:
        try:
            start, end = int(item["start"]), int(item["end"])
            entity_type = EntityType(item.get("type", "MISC"))
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Dropping malformed external entity {item!r}: {e}")
            return None

        if not 0 <= start < end <= len(text):
            logger.debug(f"Dropping external entity with offsets {start}-{end}")
            return None

        confidence = float(item.get("confidence", GAZETTEER_CONFIDENCE))
        return Entity(
            text=item.get("text") or text[start:end],
            type=entity_type,
            start=start,
            end=end,
            confidence=min(1.0, max(0.0, confidence)),
            method=ExtractionMethod.EXTERNAL,
        )
