from typing import Optional

from .base import BaseEntityBackend, BaseTranslator
from .passthrough import PassthroughTranslator

__all__ = [
    "BaseEntityBackend",
    "BaseTranslator",
    "PassthroughTranslator",
    "get_translator",
    "get_entity_backend",
    "register_translator",
    "register_entity_backend",
]

_TRANSLATORS = {
    "passthrough": PassthroughTranslator,
}

_ENTITY_BACKENDS = {}


def register_translator(name: str, translator_class) -> None:
    _TRANSLATORS[name.lower()] = translator_class


def get_translator(name: str, config: Optional[dict] = None) -> BaseTranslator:
    """Factory function to get a translator by name."""
    translator_class = _TRANSLATORS.get(name.lower())
    if not translator_class:
        raise ValueError(
            f"Unknown translator: {name}. Available: {list(_TRANSLATORS.keys())}"
        )
    return translator_class(config if config else {})


def register_entity_backend(name: str, backend_class) -> None:
    _ENTITY_BACKENDS[name.lower()] = backend_class


def get_entity_backend(name: str, config: Optional[dict] = None) -> BaseEntityBackend:
    """Factory function to get an external entity backend by name."""
    backend_class = _ENTITY_BACKENDS.get(name.lower())
    if not backend_class:
        raise ValueError(
            f"Unknown entity backend: {name}. Available: {list(_ENTITY_BACKENDS.keys())}"
        )
    return backend_class(config if config else {})
