"""Fail-soft source language detection."""

from __future__ import annotations

from typing import Optional, Sequence

from .logger import get_logger
from .providers import SUPPORTED_LANGUAGES, LanguageDetectorFactory, LanguageDetectorHandle

logger = get_logger(__name__)

DEFAULT_SOURCE_LANGUAGE = "en"


class LanguageDetectionAdapter:
    """Guesses a source language; any failure yields ``None``."""

    def __init__(
        self,
        factory: Optional[LanguageDetectorFactory],
        expected_languages: Sequence[str] = SUPPORTED_LANGUAGES,
    ) -> None:
        self.factory = factory
        self.expected_languages = list(expected_languages)

    def available(self) -> bool:
        if self.factory is None:
            return False
        try:
            return bool(self.factory.available())
        except Exception as exc:
            logger.debug("Language detector availability check failed: %s", exc)
            return False

    async def detect(self, text: str) -> Optional[str]:
        if not text or not text.strip() or not self.available():
            return None

        detector: Optional[LanguageDetectorHandle] = None
        try:
            detector = await self.factory.create(self.expected_languages)  # type: ignore[union-attr]
            results = await detector.detect(text)
        except Exception as exc:
            logger.warning("Language detection failed: %s", exc)
            return None
        finally:
            if detector is not None:
                try:
                    detector.destroy()
                except Exception as exc:
                    logger.debug("Ignoring detector destroy failure: %s", exc)

        if results:
            return results[0].language or None
        return None

    async def detect_or_default(self, text: str, default: str = DEFAULT_SOURCE_LANGUAGE) -> str:
        return await self.detect(text) or default
