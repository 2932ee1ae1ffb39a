import asyncio

from conftest import FakeTranslatorFactory
from pageshift.policy import FALLBACK_RING
from pageshift.selection import SelectionStatus, SelectionTranslationPipeline, TooltipState
from pageshift.structures import SingleFlightLock


class Selection:
    def __init__(self, text="Hello world"):
        self.text = text

    def __call__(self):
        return self.text


def build_pipeline(translator_factory, detector_factory=None, **kwargs):
    selection = kwargs.pop("selection", None) or Selection()
    kwargs.setdefault("enabled", True)
    pipeline = SelectionTranslationPipeline(
        translator_factory,
        detector_factory,
        selection_provider=selection,
        **kwargs,
    )
    return pipeline, selection


def test_translates_and_skips_duplicates(translator_factory, detector_factory):
    pipeline, selection = build_pipeline(translator_factory, detector_factory)

    async def scenario():
        first = await pipeline.evaluate()
        second = await pipeline.evaluate()
        pipeline.on_selection_cleared()
        third = await pipeline.evaluate()
        pipeline.close()
        return first, second, third

    first, second, third = asyncio.run(scenario())
    assert first.status is SelectionStatus.TRANSLATED
    assert first.translation == "[zh-Hans] Hello world"
    assert first.source_lang == "en"
    assert first.target_lang == "zh-Hans"
    assert second.status is SelectionStatus.DUPLICATE
    assert third.status is SelectionStatus.TRANSLATED
    assert len(translator_factory.calls) == 2
    assert len(translator_factory.created) == 1


def test_guards(translator_factory):
    lock = SingleFlightLock()
    pipeline, selection = build_pipeline(translator_factory, lock=lock)

    async def evaluate(text):
        selection.text = text
        return (await pipeline.evaluate()).status

    assert asyncio.run(evaluate("a")) is SelectionStatus.EMPTY
    assert asyncio.run(evaluate(None)) is SelectionStatus.EMPTY
    assert asyncio.run(evaluate("x" * 501)) is SelectionStatus.TOO_LONG
    assert asyncio.run(evaluate("1234 !!")) is SelectionStatus.NO_SCRIPT

    assert lock.try_acquire()
    assert asyncio.run(evaluate("Hello world")) is SelectionStatus.BUSY
    pipeline.close()
    assert lock.locked
    lock.release()

    pipeline.set_enabled(False)
    assert asyncio.run(evaluate("Hello world")) is SelectionStatus.DISABLED
    assert translator_factory.calls == []


def test_selection_bounds_are_inclusive(translator_factory):
    pipeline, selection = build_pipeline(translator_factory, target_lang="fr")
    selection.text = "ab"
    assert asyncio.run(pipeline.evaluate()).status is SelectionStatus.TRANSLATED
    selection.text = "y" * 500
    assert asyncio.run(pipeline.evaluate()).status is SelectionStatus.TRANSLATED


def test_unavailable_translator():
    pipeline, _ = build_pipeline(FakeTranslatorFactory(available=False))
    assert asyncio.run(pipeline.evaluate()).status is SelectionStatus.UNAVAILABLE
    pipeline, _ = build_pipeline(None)
    assert asyncio.run(pipeline.evaluate()).status is SelectionStatus.UNAVAILABLE


def test_exhausted_pair_shows_error_then_hides(detector_factory):
    factory = FakeTranslatorFactory(unsupported=FALLBACK_RING)
    pipeline, _ = build_pipeline(factory, detector_factory)
    pipeline.ERROR_TOOLTIP_SECONDS = 0.01

    async def scenario():
        outcome = await pipeline.evaluate()
        shown = (pipeline.tooltip, pipeline.tooltip_text)
        await asyncio.sleep(0.05)
        return outcome, shown

    outcome, shown = asyncio.run(scenario())
    assert outcome.status is SelectionStatus.UNSUPPORTED_PAIR
    assert shown == (TooltipState.ERROR, pipeline.UNSUPPORTED_MESSAGE)
    assert pipeline.tooltip is TooltipState.HIDDEN
    assert len(factory.create_attempts) <= len(FALLBACK_RING)
    assert not pipeline.state.is_translating
    assert not pipeline.state.global_lock.locked


def test_failure_releases_the_lock(translator_factory, detector_factory):
    translator_factory.failing = {"Hello world"}
    pipeline, _ = build_pipeline(translator_factory, detector_factory)
    outcome = asyncio.run(pipeline.evaluate())
    assert outcome.status is SelectionStatus.FAILED
    assert not pipeline.state.global_lock.locked
    assert pipeline.tooltip is TooltipState.HIDDEN


def test_shared_lock_admits_one_translation(translator_factory):
    lock = SingleFlightLock()
    first, _ = build_pipeline(translator_factory, lock=lock, target_lang="fr")
    second, _ = build_pipeline(translator_factory, lock=lock, target_lang="de")

    async def scenario():
        translator_factory.gate = asyncio.Event()
        running = asyncio.ensure_future(first.evaluate())
        while not translator_factory.calls:
            await asyncio.sleep(0)
        dropped = await second.evaluate()
        translator_factory.gate.set()
        return await running, dropped

    done, dropped = asyncio.run(scenario())
    assert done.status is SelectionStatus.TRANSLATED
    assert dropped.status is SelectionStatus.BUSY
    assert not lock.locked


def test_debounce_collapses_bursts(translator_factory, detector_factory):
    transitions = []
    pipeline, _ = build_pipeline(
        translator_factory,
        detector_factory,
        debounce_seconds=0.01,
        tooltip_listener=lambda state, text: transitions.append((state, text)),
    )

    async def scenario():
        for _ in range(3):
            pipeline.on_selection_change()
        await asyncio.sleep(0.05)
        outcome = await pipeline.wait_pending()
        pipeline.on_scroll()
        return outcome

    outcome = asyncio.run(scenario())
    assert outcome.status is SelectionStatus.TRANSLATED
    assert len(translator_factory.calls) == 1
    assert transitions == [
        (TooltipState.LOADING, None),
        (TooltipState.RESULT, "[zh-Hans] Hello world"),
        (TooltipState.HIDDEN, None),
    ]


def test_closed_pipeline_does_not_free_a_lock_it_lost():
    lock = SingleFlightLock()
    factory_a, factory_b, factory_c = (FakeTranslatorFactory() for _ in range(3))
    first, _ = build_pipeline(factory_a, lock=lock, target_lang="fr")
    second, _ = build_pipeline(factory_b, lock=lock, target_lang="de")
    third, _ = build_pipeline(factory_c, lock=lock, target_lang="es")

    async def scenario():
        factory_a.gate = asyncio.Event()
        factory_b.gate = asyncio.Event()
        pending_a = asyncio.ensure_future(first.evaluate())
        while not factory_a.calls:
            await asyncio.sleep(0)
        first.close()

        pending_b = asyncio.ensure_future(second.evaluate())
        while not factory_b.calls:
            await asyncio.sleep(0)

        factory_a.gate.set()
        closed_outcome = await pending_a
        held_while_b_runs = lock.locked
        blocked = await third.evaluate()

        factory_b.gate.set()
        done = await pending_b
        return closed_outcome, held_while_b_runs, blocked, done

    closed_outcome, held_while_b_runs, blocked, done = asyncio.run(scenario())
    assert closed_outcome.status is SelectionStatus.DISABLED
    assert first.tooltip is TooltipState.HIDDEN
    assert first.state.last_translated_text is None
    assert factory_a.live == []
    assert held_while_b_runs
    assert blocked.status is SelectionStatus.BUSY
    assert factory_c.calls == []
    assert done.status is SelectionStatus.TRANSLATED
    assert not lock.locked
