from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

import pytest

from pageshift.documents import parse_html
from pageshift.errors import UnsupportedLanguagePairError
from pageshift.providers import (
    LanguageDetectorFactory,
    LanguageDetectorHandle,
    TranslatorFactory,
    TranslatorHandle,
)
from pageshift.structures import LanguageGuess

PAGE = (
    "<html><head><title>Title</title><style>p { color: red; }</style></head>"
    "<body>"
    "<h1>Welcome</h1>"
    "<p>Hello <b>brave</b> world</p>"
    "<pre>raw block</pre>"
    "<p><code>x = 1</code></p>"
    '<div id="translator-floating-button">Translate</div>'
    '<div class="translation-tooltip"><span>Tooltip</span></div>'
    "<p>   </p>"
    "</body></html>"
)


class FakeTranslator(TranslatorHandle):
    def __init__(self, factory: "FakeTranslatorFactory", source: str, target: str) -> None:
        super().__init__(source, target)
        self.factory = factory
        self.destroyed = False

    async def translate(self, text: str) -> str:
        self.factory.calls.append((self.source, self.target, text))
        if self.factory.gate is not None:
            await self.factory.gate.wait()
        await asyncio.sleep(0)
        if self.target in self.factory.reject_on_translate:
            raise UnsupportedLanguagePairError(self.source, self.target)
        if text.strip() in self.factory.failing:
            raise RuntimeError(f"cannot translate {text!r}")
        return f"[{self.target}] {text}"

    def destroy(self) -> None:
        self.destroyed = True
        if self.factory.destroy_fails:
            raise RuntimeError("destroy failed")


class FakeTranslatorFactory(TranslatorFactory):
    def __init__(
        self,
        *,
        unsupported: Sequence[str] = (),
        reject_on_translate: Sequence[str] = (),
        available: bool = True,
    ) -> None:
        self.unsupported = set(unsupported)
        self.reject_on_translate = set(reject_on_translate)
        self.failing: set = set()
        self.is_available = available
        self.destroy_fails = False
        self.gate: Optional[asyncio.Event] = None
        self.created: List[FakeTranslator] = []
        self.create_attempts: List[tuple] = []
        self.calls: List[tuple] = []

    def available(self) -> bool:
        return self.is_available

    async def create(self, source: str, target: str) -> TranslatorHandle:
        self.create_attempts.append((source, target))
        await asyncio.sleep(0)
        if source == target or target in self.unsupported:
            raise UnsupportedLanguagePairError(source, target)
        handle = FakeTranslator(self, source, target)
        self.created.append(handle)
        return handle

    @property
    def live(self) -> List[FakeTranslator]:
        return [handle for handle in self.created if not handle.destroyed]


class FakeDetector(LanguageDetectorHandle):
    def __init__(self, factory: "FakeDetectorFactory") -> None:
        self.factory = factory

    async def detect(self, text: str) -> List[LanguageGuess]:
        self.factory.samples.append(text)
        if self.factory.fail:
            raise RuntimeError("detector crashed")
        if self.factory.language is None:
            return []
        return [LanguageGuess(self.factory.language, 0.9)]

    def destroy(self) -> None:
        self.factory.destroyed += 1


class FakeDetectorFactory(LanguageDetectorFactory):
    def __init__(self, language: Optional[str] = "en", *, fail: bool = False) -> None:
        self.language = language
        self.fail = fail
        self.samples: List[str] = []
        self.created = 0
        self.destroyed = 0

    async def create(self, expected_languages: Sequence[str]) -> LanguageDetectorHandle:
        self.created += 1
        return FakeDetector(self)


@pytest.fixture
def translator_factory() -> FakeTranslatorFactory:
    return FakeTranslatorFactory()


@pytest.fixture
def detector_factory() -> FakeDetectorFactory:
    return FakeDetectorFactory("en")


@pytest.fixture
def page():
    return parse_html(PAGE)
