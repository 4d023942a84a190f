from typing import Any, Optional


class SignalMinerError(Exception):
    """Base class for all signalminer errors."""


class InvalidInput(SignalMinerError):
    """Empty or non-text input handed to an analyzer or the pipeline."""


class UnsupportedLanguage(SignalMinerError):
    def __init__(self, language: str):
        super().__init__(f"Unsupported target language: {language}")
        self.language = language


class ItemProcessingError(SignalMinerError):
    """
    Raised (and captured) when the per-item processor of a batch fails.

    Carries the failing item and its input index; the original exception
    is available as __cause__.
    """

    def __init__(self, message: str, item: Any = None, index: Optional[int] = None):
        super().__init__(message)
        self.item = item
        self.index = index


class ExternalCapabilityError(SignalMinerError):
    """A pluggable capability (translator, entity backend, store) failed."""

    def __init__(self, capability: str, message: str):
        super().__init__(f"{capability}: {message}")
        self.capability = capability


class ConfigurationError(SignalMinerError):
    pass
