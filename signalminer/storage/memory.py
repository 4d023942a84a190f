import logging
import threading
from typing import Dict, Iterable, List, Optional

from ..sources import SourceResult
from .base import ResultStore, SourceResultStore

logger = logging.getLogger(__name__)


class InMemoryResultStore(ResultStore):
    name = "memory"

    def __init__(self):
        self.results: Dict[str, object] = {}
        self.links: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def save(self, result) -> str:
        with self._lock:
            self.results[result.result_id] = result
        return result.result_id

    def link_results(self, source_result_id: str, result_ids: List[str]) -> None:
        with self._lock:
            linked = self.links.setdefault(source_result_id, [])
            linked.extend(r for r in result_ids if r not in linked)

    def __len__(self) -> int:
        return len(self.results)


class InMemorySourceStore(SourceResultStore):
    name = "memory"

    def __init__(self, results: Optional[Iterable[SourceResult]] = None):
        self._by_job: Dict[str, List[SourceResult]] = {}
        for result in results or []:
            self.add(result)

    def add(self, result: SourceResult) -> None:
        self._by_job.setdefault(result.job_id, []).append(result)

    def fetch_results_for_job(self, job_id: str) -> List[SourceResult]:
        results = list(self._by_job.get(job_id, []))
        logger.debug(f"Fetched {len(results)} source result(s) for job {job_id}")
        return results
