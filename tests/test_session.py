import asyncio

import pytest

from conftest import FakeDetectorFactory, FakeTranslatorFactory
from pageshift.dom import Element, TextNode
from pageshift.errors import (
    CapabilityUnavailableError,
    ErrorCategory,
    LanguagePairExhaustedError,
)
from pageshift.policy import FALLBACK_RING
from pageshift.scanner import iter_text_nodes
from pageshift.session import PageTranslationSession
from pageshift.structures import SessionPhase

ORIGINALS = ["Welcome", "Hello ", "brave", " world"]


def values(page):
    return [node.value for node in iter_text_nodes(page.body)]


async def wait_for_calls(factory, count=1):
    while len(factory.calls) < count:
        await asyncio.sleep(0)


def test_start_then_stop_restores_every_node(page, translator_factory, detector_factory):
    session = PageTranslationSession(page, translator_factory, detector_factory)

    async def scenario():
        status = await session.start("fr")
        translated = values(page)
        assert session.watcher.running
        response = session.stop()
        return status, translated, response

    status, translated, response = asyncio.run(scenario())
    assert status == {"enabled": True, "targetLang": "fr", "phase": "active"}
    assert translated == [f"[fr] {text}" for text in ORIGINALS]
    assert response == {"ok": True}
    assert values(page) == ORIGINALS
    assert len(session.registry) == 0
    assert translator_factory.live == []
    assert session.phase is SessionPhase.IDLE
    assert not session.watcher.running


def test_start_twice_with_same_target_is_ignored(page, translator_factory, detector_factory):
    session = PageTranslationSession(page, translator_factory, detector_factory)

    async def scenario():
        await session.start("fr")
        await session.start("fr")
        session.stop()

    asyncio.run(scenario())
    assert len(translator_factory.created) == 1
    assert len(translator_factory.calls) == len(ORIGINALS)


def test_repeated_start_after_fallback_is_ignored(page, translator_factory, detector_factory):
    session = PageTranslationSession(page, translator_factory, detector_factory)

    async def scenario():
        first = await session.start("en")
        calls = len(translator_factory.calls)
        second = await session.start("en")
        result = (first, second, calls, session.progress.done, session.phase)
        session.stop()
        return result

    first, second, calls, done, phase = asyncio.run(scenario())
    assert first == second == {"enabled": True, "targetLang": "zh-Hans", "phase": "active"}
    assert calls == len(translator_factory.calls) == len(ORIGINALS)
    assert done == len(ORIGINALS)
    assert phase is SessionPhase.ACTIVE
    assert len(translator_factory.created) == 1


def test_concurrent_page_edit_wins_over_translation(page, translator_factory, detector_factory):
    session = PageTranslationSession(page, translator_factory, detector_factory)
    first = next(iter_text_nodes(page.body))

    async def scenario():
        translator_factory.gate = asyncio.Event()
        task = asyncio.ensure_future(session.start("fr"))
        await wait_for_calls(translator_factory)
        first.value = "Edited by the page"
        translator_factory.gate.set()
        await task
        result = values(page)
        session.stop()
        return result

    result = asyncio.run(scenario())
    assert result == ["Edited by the page", "[fr] Hello ", "[fr] brave", "[fr]  world"]


def test_stop_interrupts_a_running_pass(page, translator_factory, detector_factory):
    session = PageTranslationSession(page, translator_factory, detector_factory)

    async def scenario():
        translator_factory.gate = asyncio.Event()
        task = asyncio.ensure_future(session.start("fr"))
        await wait_for_calls(translator_factory)
        session.stop()
        translator_factory.gate.set()
        return await task

    status = asyncio.run(scenario())
    assert len(translator_factory.calls) == 1
    assert values(page) == ORIGINALS
    assert status["enabled"] is False
    assert session.phase is SessionPhase.IDLE
    assert not session.watcher.running


def test_new_target_retranslates_from_originals(page, translator_factory, detector_factory):
    session = PageTranslationSession(page, translator_factory, detector_factory)

    async def scenario():
        await session.start("fr")
        status = await session.start("de")
        result = values(page)
        session.stop()
        return status, result

    status, result = asyncio.run(scenario())
    assert status["targetLang"] == "de"
    assert result == [f"[de] {text}" for text in ORIGINALS]
    texts = [text for _, target, text in translator_factory.calls if target == "de"]
    assert texts == ORIGINALS
    assert values(page) == ORIGINALS


def test_same_source_and_target_falls_back(page, translator_factory, detector_factory):
    session = PageTranslationSession(page, translator_factory, detector_factory)
    messages = []
    session.status_callback = messages.append

    async def scenario():
        status = await session.start("en")
        session.stop()
        return status

    status = asyncio.run(scenario())
    assert status["targetLang"] == "zh-Hans"
    assert translator_factory.create_attempts[0] == ("en", "zh-Hans")
    assert "Target language en unsupported; using zh-Hans." in messages


def test_exhausted_fallback_resets_the_session(page, detector_factory):
    factory = FakeTranslatorFactory(unsupported=FALLBACK_RING)
    session = PageTranslationSession(page, factory, detector_factory)

    with pytest.raises(LanguagePairExhaustedError):
        asyncio.run(session.start("fr"))
    assert len(factory.create_attempts) <= len(FALLBACK_RING)
    assert session.state.enabled is False
    assert session.phase is SessionPhase.IDLE
    assert session.errors.records[0].category is ErrorCategory.UNSUPPORTED_PAIR
    assert values(page) == ORIGINALS


def test_missing_translator_resets_the_session(page, detector_factory):
    session = PageTranslationSession(
        page, FakeTranslatorFactory(available=False), detector_factory
    )
    with pytest.raises(CapabilityUnavailableError):
        asyncio.run(session.start("fr"))
    assert session.status()["enabled"] is False


def test_failed_node_is_skipped(page, translator_factory):
    translator_factory.failing = {"brave"}
    session = PageTranslationSession(page, translator_factory, FakeDetectorFactory(fail=True))

    async def scenario():
        await session.start("fr")
        result = values(page)
        session.stop()
        return result

    result = asyncio.run(scenario())
    assert result == ["[fr] Welcome", "[fr] Hello ", "brave", "[fr]  world"]
    assert len(session.errors) == 1
    assert session.source_lang == "en"


def test_progress_is_reported(page, translator_factory, detector_factory):
    messages = []
    session = PageTranslationSession(
        page, translator_factory, detector_factory, status_callback=messages.append
    )

    async def scenario():
        await session.start("fr")
        session.stop()

    asyncio.run(scenario())
    assert messages[0] == "Preparing page translation..."
    assert "Translating page (4/4)..." in messages
    assert messages[-1] == "Page translation complete."
    assert detector_factory.samples == ["Welcome\nHello\nbrave\nworld"]


def test_stop_without_start_is_harmless(page, translator_factory):
    session = PageTranslationSession(page, translator_factory)
    assert session.stop() == {"ok": True}
    assert session.status()["enabled"] is False


def test_stop_during_retarget_restores_everything(page, translator_factory, detector_factory):
    session = PageTranslationSession(page, translator_factory, detector_factory)

    async def scenario():
        await session.start("fr")
        translator_factory.gate = asyncio.Event()
        task = asyncio.ensure_future(session.start("de"))
        while not any(target == "de" for _, target, _ in translator_factory.calls):
            await asyncio.sleep(0)
        session.stop()
        translator_factory.gate.set()
        status = await task
        await asyncio.sleep(0)
        return status

    status = asyncio.run(scenario())
    assert status["enabled"] is False
    assert values(page) == ORIGINALS
    assert [target for _, target, _ in translator_factory.calls].count("de") == 1
    assert translator_factory.live == []
    assert len(session.registry) == 0


def test_cached_originals_survive_every_pass(page, translator_factory, detector_factory):
    session = PageTranslationSession(page, translator_factory, detector_factory)

    async def scenario():
        await session.start("fr")
        inserted = page.body.append_child(Element("p", children=[TextNode("Fresh")]))
        await session.watcher.wait_idle()
        await session.start("de")
        await session.watcher.wait_idle()
        originals = {node.value: original for node, original in session.registry.items()}
        session.stop()
        return originals, inserted.children[0].value

    originals, restored = asyncio.run(scenario())
    assert originals == {f"[de] {text}": text for text in ORIGINALS + ["Fresh"]}
    assert restored == "Fresh"
    assert values(page) == ORIGINALS + ["Fresh"]
