from abc import ABC, abstractmethod
from typing import Dict, List, Optional


class BaseTranslator(ABC):
    """Abstract base class for translation capabilities."""

    name: str = "base"

    def __init__(self, config: Optional[dict] = None):
        self.config = config or {}

    @classmethod
    @abstractmethod
    def is_available(cls) -> bool:
        """Check if the translation capability can be used."""
        pass

    @abstractmethod
    def translate(self, text: str, source: str, target: str) -> str:
        """Translate text from `source` to `target` (two-letter codes).

        Raises:
            Any exception on failure; callers wrap it in ExternalCapabilityError.
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(available={self.is_available()})"


class BaseEntityBackend(ABC):
    """Abstract base class for external entity extractors."""

    name: str = "base"

    def __init__(self, config: Optional[dict] = None):
        self.config = config or {}

    @classmethod
    @abstractmethod
    def is_available(cls) -> bool:
        pass

    @abstractmethod
    def extract(self, text: str) -> List[Dict]:
        """Return raw entity dicts.

        Each dict carries text, type, start, end and optionally confidence;
        offsets are character offsets into `text`.
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(available={self.is_available()})"
