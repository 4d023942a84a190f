import logging
from types import MappingProxyType
from typing import Mapping, Optional

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

from ..backends import BaseTranslator, PassthroughTranslator
from ..errors import ExternalCapabilityError, UnsupportedLanguage
from .base import LanguageResult, load_json

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

# langdetect is non-deterministic on short text unless seeded.
DetectorFactory.seed = 0

_LANGUAGE_DATA = load_json("languages.json")
SUPPORTED_LANGUAGES: Mapping[str, str] = MappingProxyType(
    dict(_LANGUAGE_DATA.get("supported", {}))
)
_DETECTOR_CODES: Mapping[str, str] = MappingProxyType(
    dict(_LANGUAGE_DATA.get("detector_codes", {}))
)


class LanguageIdentifier:
    """
    Detects the language of a text and optionally translates it.

    Detection uses langdetect and maps its codes onto the two-letter table
    in fdata/languages.json; anything it cannot place is "unknown".
    Translation goes through a pluggable BaseTranslator.
    """

    def __init__(
        self,
        translator: Optional[BaseTranslator] = None,
        min_tokens: int = 3,
    ):
        self.translator = translator or PassthroughTranslator()
        self.min_tokens = min_tokens

    def identify(self, text) -> str:
        """Return a two-letter language code, or "unknown"."""
        if not isinstance(text, str) or len(text.split()) < self.min_tokens:
            return UNKNOWN

        try:
            candidates = detect_langs(text)
        except LangDetectException as e:
            logger.debug(f"Language detection gave no answer: {e}")
            return UNKNOWN

        if not candidates:
            return UNKNOWN
        return self.canonical_code(candidates[0].lang)

    @staticmethod
    def canonical_code(code: str) -> str:
        code = _DETECTOR_CODES.get(code, code)
        return code if code in SUPPORTED_LANGUAGES else UNKNOWN

    @staticmethod
    def is_supported(code: Optional[str]) -> bool:
        return code in SUPPORTED_LANGUAGES

    @staticmethod
    def language_name(code: str) -> str:
        return SUPPORTED_LANGUAGES.get(code, "Unknown")

    def translate(self, text: str, source: str, target: str) -> str:
        """
        Translate text from `source` to `target`.

        Same source and target returns the text without calling the
        translator. Raises UnsupportedLanguage for an unknown target and
        ExternalCapabilityError when the translator itself fails.
        """
        if source == target:
            return text
        if not self.is_supported(target):
            raise UnsupportedLanguage(target)

        try:
            return self.translator.translate(text, source, target)
        except Exception as e:
            raise ExternalCapabilityError(self.translator.name, str(e)) from e

    def resolve(
        self,
        text: str,
        translate_to: Optional[str] = None,
        use_translated_text: bool = False,
    ) -> LanguageResult:
        """
        Detect the language and translate when a different target is requested.

        A failing translator is logged and leaves translated_text empty;
        an unsupported target propagates.
        """
        if not text:
            return LanguageResult(language=UNKNOWN, processed_text="")

        language = self.identify(text)
        translated = None

        if translate_to and language != translate_to:
            try:
                translated = self.translate(text, language, translate_to)
            except ExternalCapabilityError as e:
                logger.warning(f"Translation to {translate_to} unavailable: {e}")

        processed = translated if (use_translated_text and translated is not None) else text
        return LanguageResult(
            language=language,
            processed_text=processed,
            translated_text=translated,
        )
