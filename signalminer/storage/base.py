from abc import ABC, abstractmethod
from typing import List

from ..sources import SourceResult


class ResultStore(ABC):
    """Abstract base class for analysis result persistence."""

    name: str = "base"

    @abstractmethod
    def save(self, result) -> str:
        """Persist one AnalysisResult and return its stored id.

        Raises:
            Any exception on failure; the pipeline decides whether it propagates.
        """
        pass

    @abstractmethod
    def link_results(self, source_result_id: str, result_ids: List[str]) -> None:
        """Record which analysis results were produced from a source result."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SourceResultStore(ABC):
    """Abstract base class for reading scraped source results."""

    name: str = "base"

    @abstractmethod
    def fetch_results_for_job(self, job_id: str) -> List[SourceResult]:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
