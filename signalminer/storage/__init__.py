from typing import Optional

from .base import ResultStore, SourceResultStore
from .json_store import JsonResultStore, JsonSourceStore
from .memory import InMemoryResultStore, InMemorySourceStore

__all__ = [
    "ResultStore",
    "SourceResultStore",
    "InMemoryResultStore",
    "InMemorySourceStore",
    "JsonResultStore",
    "JsonSourceStore",
    "get_result_store",
]


def get_result_store(name: str, config: Optional[dict] = None) -> ResultStore:
    """Factory function to get a result store by name."""
    config = config or {}
    stores = {
        "memory": lambda: InMemoryResultStore(),
        "json": lambda: JsonResultStore(config.get("output_dir", "output")),
    }

    factory = stores.get(name.lower())
    if not factory:
        raise ValueError(f"Unknown result store: {name}. Available: {list(stores.keys())}")

    return factory()
