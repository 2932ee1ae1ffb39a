"""Deterministic fallback across target languages for rejected pairs."""

from __future__ import annotations

from typing import Awaitable, Callable, Iterator, List, Sequence, Tuple, TypeVar

from .errors import LanguagePairExhaustedError, UnsupportedLanguagePairError
from .logger import get_logger
from .translator import TranslatorSession, normalize_language

logger = get_logger(__name__)

T = TypeVar("T")

FALLBACK_RING = (
    "en",
    "zh-Hans",
    "ja",
    "ko",
    "fr",
    "de",
    "es",
    "ru",
    "it",
    "pt",
    "zh-Hant",
)


class FallbackPolicy:
    """Walks a fixed ring of target languages until a pair is accepted."""

    def __init__(self, ring: Sequence[str] = FALLBACK_RING) -> None:
        ordered: List[str] = []
        for code in ring:
            normalized = normalize_language(code)
            if normalized and normalized not in ordered:
                ordered.append(normalized)
        if not ordered:
            raise ValueError("The fallback ring needs at least one language.")
        self.ring = tuple(ordered)

    def next_candidate(self, language: str | None) -> str:
        """Return the code after ``language`` in the ring, wrapping to the start."""

        language = normalize_language(language)
        if language not in self.ring:
            return self.ring[0]
        index = self.ring.index(language)
        return self.ring[(index + 1) % len(self.ring)]

    def candidates(self, source: str | None, target: str | None) -> Iterator[str]:
        """Yield each distinct target at most once, never the source.

        A requested target outside the ring is tried first, then the whole ring.
        """

        source = normalize_language(source)
        current = normalize_language(target) or self.ring[0]
        steps = len(self.ring) if current in self.ring else len(self.ring) + 1
        seen = set()
        for _ in range(steps):
            if current != source and current not in seen:
                yield current
            seen.add(current)
            current = self.next_candidate(current)

    async def run(
        self,
        session: TranslatorSession,
        source: str | None,
        target: str | None,
        attempt: Callable[[str], Awaitable[T]],
    ) -> Tuple[T, str]:
        """Call ``attempt`` per candidate; return its result and the target used.

        Only ``UnsupportedLanguagePairError`` moves on to the next candidate; the
        failed translator is destroyed first. Anything else propagates.
        """

        requested = normalize_language(target)
        attempted: List[str] = []
        for candidate in self.candidates(source, target):
            attempted.append(candidate)
            try:
                result = await attempt(candidate)
            except UnsupportedLanguagePairError as exc:
                logger.info(
                    "Language pair %s -> %s unsupported (%s), trying the next target.",
                    source,
                    candidate,
                    exc,
                )
                session.close()
                continue
            if candidate != requested:
                logger.info(
                    "Translated using fallback language: %s -> %s", source, candidate
                )
            return result, candidate
        raise LanguagePairExhaustedError(source, target, attempted)

    async def open(
        self,
        session: TranslatorSession,
        source: str | None,
        target: str | None,
    ) -> str:
        """Open a translator for the first accepted pair and return its target."""

        async def attempt(candidate: str):
            return await session.ensure(source, candidate)

        _, used = await self.run(session, source, target, attempt)
        return used

    async def translate(
        self,
        session: TranslatorSession,
        text: str,
        source: str | None,
        target: str | None,
    ) -> Tuple[str, str]:
        """Translate ``text`` with the first accepted pair; return text and target."""

        async def attempt(candidate: str) -> str:
            await session.ensure(source, candidate)
            return await session.translate(text)

        return await self.run(session, source, target, attempt)
