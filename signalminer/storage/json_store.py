import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Union

from ..sources import SourceResult
from .base import ResultStore, SourceResultStore

logger = logging.getLogger(__name__)

LINKS_FILE = "links.json"


def _save_json(path: Path, payload) -> None:
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


class JsonResultStore(ResultStore):
    """
    Writes one `<result_id>.json` file per analysis result into output_dir,
    and the source result -> result id links into links.json.
    """

    name = "json"

    def __init__(self, output_dir: Union[str, Path] = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def save(self, result) -> str:
        out_path = self.output_dir / f"{result.result_id}.json"
        _save_json(out_path, result.to_dict())
        logger.debug(f"Saved analysis to {out_path}")
        return result.result_id

    def load_links(self) -> Dict[str, List[str]]:
        links_path = self.output_dir / LINKS_FILE
        if not links_path.exists():
            return {}
        return json.loads(links_path.read_text(encoding="utf-8"))

    def link_results(self, source_result_id: str, result_ids: List[str]) -> None:
        with self._lock:
            links = self.load_links()
            linked = links.setdefault(source_result_id, [])
            linked.extend(r for r in result_ids if r not in linked)
            _save_json(self.output_dir / LINKS_FILE, links)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(output_dir={str(self.output_dir)!r})"


class JsonSourceStore(SourceResultStore):
    """
    Reads source results from `<directory>/<job_id>.json`.

    The file holds either a list of result objects or {"results": [...]};
    each object has id, platform and payload (or result_data).
    """

    name = "json"

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def fetch_results_for_job(self, job_id: str) -> List[SourceResult]:
        path = self.directory / f"{job_id}.json"
        if not path.exists():
            logger.warning(f"No source results file for job {job_id} at {path}")
            return []

        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get("results", [])

        results = []
        for entry in data:
            entry = dict(entry)
            entry.setdefault("job_id", job_id)
            results.append(SourceResult.from_dict(entry))
        logger.debug(f"Loaded {len(results)} source result(s) from {path}")
        return results

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(directory={str(self.directory)!r})"
