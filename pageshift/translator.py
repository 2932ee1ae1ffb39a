"""Ownership of a single live translator instance."""

from __future__ import annotations

from typing import Optional, Tuple

from .errors import (
    CapabilityUnavailableError,
    PageshiftError,
    TranslationProviderError,
)
from .logger import get_logger
from .providers import TranslatorFactory, TranslatorHandle

logger = get_logger(__name__)

DEFAULT_TARGET_LANGUAGE = "zh-Hans"


def normalize_language(code: str | None) -> str | None:
    """Map the ``zh`` macro-language to ``zh-Hans``; pass everything else through."""

    if not code:
        return code
    if code == "zh":
        return "zh-Hans"
    return code


class TranslatorSession:
    """Holds at most one translator handle, rebuilt when the language pair changes."""

    def __init__(self, factory: Optional[TranslatorFactory]) -> None:
        self.factory = factory
        self.handle: Optional[TranslatorHandle] = None
        self.pair: Optional[Tuple[str, str]] = None
        self._requests = 0

    @property
    def is_open(self) -> bool:
        return self.handle is not None

    @property
    def source(self) -> Optional[str]:
        return self.pair[0] if self.pair else None

    @property
    def target(self) -> Optional[str]:
        return self.pair[1] if self.pair else None

    def available(self) -> bool:
        if self.factory is None:
            return False
        try:
            return bool(self.factory.available())
        except Exception as exc:
            logger.debug("Translator availability check failed: %s", exc)
            return False

    async def ensure(self, source: str | None, target: str | None) -> TranslatorHandle:
        """Return a handle for the pair, reusing the open one when the pair matches."""

        pair = (
            normalize_language(source or "en"),
            normalize_language(target or DEFAULT_TARGET_LANGUAGE),
        )
        if self.handle is not None and self.pair == pair:
            return self.handle
        if not self.available():
            raise CapabilityUnavailableError(
                "The translator is not available in this context."
            )

        self.close()
        self._requests += 1
        ticket = self._requests
        logger.debug("Creating translator: %s -> %s", *pair)
        handle = await self.factory.create(*pair)  # type: ignore[union-attr]
        if ticket != self._requests:
            # A newer ensure() started while this one was creating; it owns the slot.
            self._destroy(handle)
            raise TranslationProviderError(
                f"Translator request for {pair[0]} -> {pair[1]} was superseded."
            )
        self.close()
        self.handle = handle
        self.pair = pair
        return handle

    async def translate(self, text: str) -> str:
        handle = self.handle
        if handle is None:
            raise TranslationProviderError("No translator is open.")
        try:
            return await handle.translate(text)
        except PageshiftError:
            raise
        except Exception as exc:
            raise TranslationProviderError(f"Translation failed: {exc}") from exc

    def close(self) -> None:
        """Destroy the current handle and void any creation still in flight.

        Destroy failures are logged and ignored.
        """

        self._requests += 1
        handle, self.handle, self.pair = self.handle, None, None
        if handle is not None:
            self._destroy(handle)

    @staticmethod
    def _destroy(handle: TranslatorHandle) -> None:
        try:
            handle.destroy()
        except Exception as exc:
            logger.debug("Ignoring translator destroy failure: %s", exc)
