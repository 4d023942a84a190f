import copy
import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SIGNALMINER_CONFIG"

DEFAULT_CONFIG: Dict[str, Any] = {
    "normalizer": {
        "remove_markup": True,
        "remove_links": True,
        "remove_addresses": True,
        "remove_decorative": True,
        "remove_special_chars": True,
        "remove_numbers": False,
        "remove_stopwords": False,
        "lowercase": True,
        "language": "en",
    },
    "language": {
        "min_tokens": 3,
        "translator": "passthrough",
    },
    "entities": {
        "backend": None,
        "backend_config": {},
    },
    "pipeline": {
        "language": None,
        "domain": None,
        "translate_to": None,
        "use_translated_text": False,
        "perform_topic_modeling": False,
        "extract_insights": False,
        "save_results": False,
        "persistence_required": False,
        "project_id": None,
    },
    "batch": {
        "batch_size": 10,
        "concurrency": 5,
        "rate_limit": {"calls": 10, "interval_ms": 1000},
        "inter_batch_pause_ms": 0,
        "progress_every": 10,
    },
    "storage": {
        "results": "memory",
        "output_dir": "output",
        "source_dir": None,
    },
}


def _from_dict(cls, data: Optional[Dict[str, Any]]):
    """Build a dataclass from a dict, ignoring keys it does not declare."""
    names = {f.name for f in dataclasses.fields(cls)}
    return cls(**{k: v for k, v in (data or {}).items() if k in names})


@dataclass(frozen=True)
class NormalizeOptions:
    remove_markup: bool = True
    remove_links: bool = True
    remove_addresses: bool = True
    remove_decorative: bool = True
    remove_special_chars: bool = True
    remove_numbers: bool = False
    remove_stopwords: bool = False
    lowercase: bool = True
    language: str = "en"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NormalizeOptions":
        return _from_dict(cls, data)


@dataclass(frozen=True)
class RateLimit:
    """At most `calls` processor starts per `interval_ms` milliseconds."""

    calls: int = 10
    interval_ms: int = 1000

    def __post_init__(self):
        if self.calls < 1 or self.interval_ms < 0:
            raise ConfigurationError(
                f"Invalid rate limit: {self.calls} calls / {self.interval_ms} ms"
            )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RateLimit":
        return _from_dict(cls, data)

    @classmethod
    def parse(cls, value: str) -> "RateLimit":
        """Parse a 'CALLS/MS' string, e.g. '10/1000'."""
        try:
            calls, interval = value.split("/", 1)
            return cls(calls=int(calls), interval_ms=int(interval))
        except ValueError as e:
            raise ConfigurationError(f"Invalid rate limit '{value}': {e}") from e


@dataclass(frozen=True)
class BatchOptions:
    batch_size: int = 10
    concurrency: int = 5
    rate_limit: Optional[RateLimit] = field(default_factory=RateLimit)
    inter_batch_pause_ms: int = 0
    progress_every: int = 10

    def __post_init__(self):
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be >= 1, got {self.concurrency}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BatchOptions":
        data = dict(data or {})
        rate = data.get("rate_limit")
        if isinstance(rate, dict):
            data["rate_limit"] = RateLimit.from_dict(rate)
        return _from_dict(cls, data)


@dataclass(frozen=True)
class PipelineOptions:
    normalize: NormalizeOptions = field(default_factory=NormalizeOptions)
    language: Optional[str] = None
    domain: Optional[str] = None
    translate_to: Optional[str] = None
    use_translated_text: bool = False
    perform_topic_modeling: bool = False
    extract_insights: bool = False
    save_results: bool = False
    persistence_required: bool = False
    project_id: Optional[str] = None
    batch: BatchOptions = field(default_factory=BatchOptions)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "PipelineOptions":
        data = dict(config.get("pipeline", {}))
        data["normalize"] = NormalizeOptions.from_dict(config.get("normalizer"))
        data["batch"] = BatchOptions.from_dict(config.get("batch"))
        return _from_dict(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load a YAML config file and merge it over DEFAULT_CONFIG.

    When no path is given the SIGNALMINER_CONFIG environment variable is
    consulted; with neither, the defaults are returned.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return copy.deepcopy(DEFAULT_CONFIG)

    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not load config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {path} must be a mapping, got {type(data).__name__}")

    logger.debug(f"Loaded config from {path}")
    return _deep_merge(DEFAULT_CONFIG, data)
