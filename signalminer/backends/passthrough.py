import logging

from .base import BaseTranslator

logger = logging.getLogger(__name__)


class PassthroughTranslator(BaseTranslator):
    """Translator stand-in that returns the text unchanged."""

    name = "passthrough"

    @classmethod
    def is_available(cls) -> bool:
        return True

    def translate(self, text: str, source: str, target: str) -> str:
        logger.debug(f"Passthrough translation {source} -> {target} ({len(text)} chars)")
        return text
