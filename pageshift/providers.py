"""Translator and language-detector capability adapters."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from langdetect import DetectorFactory, LangDetectException, detect_langs

from .errors import (
    CapabilityUnavailableError,
    TranslationProviderConfigurationError,
    TranslationProviderError,
    UnsupportedLanguagePairError,
)
from .logger import get_logger
from .structures import LanguageGuess

logger = get_logger(__name__)

SUPPORTED_LANGUAGES = (
    "en",
    "zh-Hans",
    "zh-Hant",
    "ja",
    "ko",
    "fr",
    "de",
    "es",
    "ru",
    "it",
    "pt",
)

LANGUAGE_NAMES = {
    "en": "English",
    "zh-Hans": "Simplified Chinese",
    "zh-Hant": "Traditional Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "ru": "Russian",
    "it": "Italian",
    "pt": "Portuguese",
}


class TranslatorHandle(ABC):
    """A live translator bound to one language pair."""

    def __init__(self, source: str, target: str) -> None:
        self.source = source
        self.target = target

    @abstractmethod
    async def translate(self, text: str) -> str:
        """Translate one piece of text."""

    def destroy(self) -> None:
        """Release the handle. The default handle owns nothing."""


class TranslatorFactory(ABC):
    """Creates translator handles for normalized language pairs."""

    def available(self) -> bool:
        return True

    @abstractmethod
    async def create(self, source: str, target: str) -> TranslatorHandle:
        """Build a handle or raise ``UnsupportedLanguagePairError``."""


class LanguageDetectorHandle(ABC):
    """A live language detector."""

    @abstractmethod
    async def detect(self, text: str) -> List[LanguageGuess]:
        """Return guesses ranked from most to least likely."""

    def destroy(self) -> None:
        """Release the handle. The default handle owns nothing."""


class LanguageDetectorFactory(ABC):
    """Creates language detectors restricted to candidate languages."""

    def available(self) -> bool:
        return True

    @abstractmethod
    async def create(self, expected_languages: Sequence[str]) -> LanguageDetectorHandle:
        """Build a detector for the given candidate languages."""


class _EchoTranslator(TranslatorHandle):
    async def translate(self, text: str) -> str:
        return text


class EchoTranslatorFactory(TranslatorFactory):
    """A provider that returns the original text (useful for testing)."""

    def __init__(self, supported: Sequence[str] = SUPPORTED_LANGUAGES) -> None:
        self.supported = tuple(supported)

    async def create(self, source: str, target: str) -> TranslatorHandle:
        if source == target or target not in self.supported:
            raise UnsupportedLanguagePairError(source, target)
        return _EchoTranslator(source, target)


class _OpenAITranslator(TranslatorHandle):
    """Sends one text node per request and keeps its surrounding whitespace."""

    def __init__(self, factory: "OpenAITranslatorFactory", source: str, target: str) -> None:
        super().__init__(source, target)
        self._factory = factory
        self._destroyed = False

    async def translate(self, text: str) -> str:
        if self._destroyed:
            raise TranslationProviderError("Translator was destroyed.")
        core = text.strip()
        if not core:
            return text
        leading = text[: len(text) - len(text.lstrip())]
        trailing = text[len(text.rstrip()) :]
        translated = await self._factory.complete(core, self.source, self.target)
        return f"{leading}{translated}{trailing}"

    def destroy(self) -> None:
        self._destroyed = True


class OpenAITranslatorFactory(TranslatorFactory):
    """Translation provider that uses OpenAI chat models."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        *,
        provider_kind: str = "openai",
        api_key: str | None = None,
        model: str | None = None,
        azure_endpoint: str | None = None,
        azure_api_version: str | None = None,
        azure_deployment: str | None = None,
        supported: Sequence[str] = SUPPORTED_LANGUAGES,
        debug: bool = False,
        client: Any = None,
    ) -> None:
        self.provider_kind = provider_kind
        self.api_key = api_key
        self.model = model
        self.azure_endpoint = azure_endpoint
        self.azure_api_version = azure_api_version
        self.azure_deployment = azure_deployment
        self.supported = tuple(supported)
        self.debug = debug
        self._client = client

    def available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    async def create(self, source: str, target: str) -> TranslatorHandle:
        if not self.available():
            raise CapabilityUnavailableError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        if source == target or target not in self.supported:
            raise UnsupportedLanguagePairError(source, target)
        if self._client is None:
            self._client, default_model = self._build_client()
            self.model = self.model or default_model
        return _OpenAITranslator(self, source, target)

    def _build_client(self) -> tuple[Any, str]:
        try:
            from openai import AsyncAzureOpenAI, AsyncOpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        if self.provider_kind == "azure_openai":
            client = AsyncAzureOpenAI(
                api_key=self.api_key,
                api_version=self.azure_api_version,
                azure_endpoint=self.azure_endpoint,
            )
            return client, self.azure_deployment or self.DEFAULT_MODEL
        return AsyncOpenAI(api_key=self.api_key), self.DEFAULT_MODEL

    async def complete(self, text: str, source: str, target: str) -> str:
        """Call the Chat Completions API for one text fragment."""

        system_prompt = (
            "You are a professional translator. "
            f"Translate the user's text from {LANGUAGE_NAMES.get(source, source)} "
            f"into {LANGUAGE_NAMES.get(target, target)}. "
            "Preserve numbers, placeholders, and punctuation style. "
            "Reply with the translation only, without quotes or commentary."
        )
        self._log_debug("provider.request", {"source": source, "target": target, "text": text})
        try:
            response = await self._client.chat.completions.create(
                model=self.model or self.DEFAULT_MODEL,
                temperature=0,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": text},
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise TranslationProviderError(
                f"Translation service temporarily unavailable: {exc}"
            ) from exc

        content: Optional[str] = None
        for choice in getattr(response, "choices", None) or []:
            message = getattr(choice, "message", None)
            message_content = getattr(message, "content", None)
            if message_content:
                content = str(message_content)
                break
        if content is None:
            raise TranslationProviderError(
                "Translation provider response empty or unrecognised."
            )
        self._log_debug("provider.response", content)
        return content.strip()

    def _log_debug(self, label: str, payload: Any) -> None:
        if not self.debug:
            return
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2)
        else:
            message = str(payload)
        logger.debug("%s:\n%s", label, message)


# langdetect is non-deterministic unless seeded.
DetectorFactory.seed = 0

_LANGDETECT_CODES = {
    "zh-cn": "zh-Hans",
    "zh-tw": "zh-Hant",
}


class _LangdetectDetector(LanguageDetectorHandle):
    def __init__(self, expected_languages: Sequence[str]) -> None:
        self.expected = set(expected_languages)

    async def detect(self, text: str) -> List[LanguageGuess]:
        try:
            raw = await asyncio.to_thread(detect_langs, text)
        except LangDetectException as exc:
            logger.debug("langdetect could not classify sample: %s", exc)
            return []
        guesses = []
        for item in raw:
            code = _LANGDETECT_CODES.get(item.lang, item.lang)
            if self.expected and code not in self.expected:
                continue
            guesses.append(LanguageGuess(language=code, confidence=float(item.prob)))
        guesses.sort(key=lambda guess: guess.confidence, reverse=True)
        return guesses


class LangdetectDetectorFactory(LanguageDetectorFactory):
    """Language detection backed by the ``langdetect`` package."""

    async def create(self, expected_languages: Sequence[str]) -> LanguageDetectorHandle:
        return _LangdetectDetector(expected_languages)


def build_translator_factory(
    name: str | None,
    *,
    settings: Any = None,
    debug: bool = False,
) -> TranslatorFactory:
    """Factory to create translator providers by name."""

    normalized = (name or "openai").strip().lower()
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslatorFactory()
    if normalized in {"openai", "gpt", "default", "azure_openai", "azure-openai"}:
        kind = getattr(settings, "LLM_PROVIDER", None) or "openai"
        if normalized in {"azure_openai", "azure-openai"}:
            kind = "azure_openai"
        if kind == "azure_openai":
            return OpenAITranslatorFactory(
                provider_kind="azure_openai",
                api_key=getattr(settings, "AZURE_OPENAI_API_KEY", None),
                azure_endpoint=getattr(settings, "AZURE_OPENAI_ENDPOINT", None),
                azure_api_version=getattr(settings, "AZURE_OPENAI_API_VERSION", None),
                azure_deployment=getattr(settings, "AZURE_OPENAI_DEPLOYMENT_NAME", None),
                debug=debug,
            )
        return OpenAITranslatorFactory(
            api_key=getattr(settings, "OPENAI_API_KEY", None),
            model=getattr(settings, "OPENAI_MODEL", None),
            debug=debug,
        )
    raise TranslationProviderConfigurationError(
        f"Unknown translation provider '{name}'."
    )


def build_detector_factory(name: str | None) -> LanguageDetectorFactory | None:
    """Factory to create language detectors by name; ``none`` disables detection."""

    normalized = (name or "langdetect").strip().lower()
    if normalized in {"langdetect", "default"}:
        return LangdetectDetectorFactory()
    if normalized in {"none", "off", "disabled"}:
        return None
    raise TranslationProviderConfigurationError(
        f"Unknown language detector '{name}'."
    )
