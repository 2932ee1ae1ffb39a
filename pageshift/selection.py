"""Debounced translation of user-selected text fragments."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .detection import DEFAULT_SOURCE_LANGUAGE, LanguageDetectionAdapter
from .errors import (
    CapabilityUnavailableError,
    LanguagePairExhaustedError,
    PageshiftError,
)
from .logger import get_logger
from .policy import FallbackPolicy
from .providers import LanguageDetectorFactory, TranslatorFactory
from .scanner import contains_script
from .structures import SelectionPipelineState, SingleFlightLock
from .translator import TranslatorSession, normalize_language

logger = get_logger(__name__)

SelectionProvider = Callable[[], Optional[str]]


class TooltipState(Enum):
    HIDDEN = "hidden"
    LOADING = "loading"
    RESULT = "result"
    ERROR = "error"


TooltipListener = Callable[[TooltipState, Optional[str]], None]


class SelectionStatus(Enum):
    DISABLED = "disabled"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"
    EMPTY = "empty"
    DUPLICATE = "duplicate"
    TOO_LONG = "too_long"
    NO_SCRIPT = "no_script"
    TRANSLATED = "translated"
    UNCHANGED = "unchanged"
    UNSUPPORTED_PAIR = "unsupported_pair"
    FAILED = "failed"


@dataclass
class SelectionOutcome:
    """What one evaluation of the current selection did."""

    status: SelectionStatus
    text: Optional[str] = None
    translation: Optional[str] = None
    source_lang: Optional[str] = None
    target_lang: Optional[str] = None
    message: Optional[str] = None


class SelectionTranslationPipeline:
    """Translates the current selection after a quiet period.

    Evaluations are single-flight: a trigger that arrives while another
    translation holds the lock is dropped, not queued. The lock and the
    ``is_translating`` flag are released on every exit path.
    """

    DEBOUNCE_SECONDS = 0.5
    MIN_SELECTION_LENGTH = 2
    MAX_SELECTION_LENGTH = 500
    ERROR_TOOLTIP_SECONDS = 3.0
    UNSUPPORTED_MESSAGE = "This language pair is not supported."

    def __init__(
        self,
        translator_factory: Optional[TranslatorFactory],
        detector_factory: Optional[LanguageDetectorFactory] = None,
        *,
        selection_provider: SelectionProvider,
        target_lang: str = "en",
        enabled: bool = False,
        lock: Optional[SingleFlightLock] = None,
        policy: Optional[FallbackPolicy] = None,
        debounce_seconds: float | None = None,
        tooltip_listener: Optional[TooltipListener] = None,
    ) -> None:
        self.selection_provider = selection_provider
        self.target_lang = normalize_language(target_lang) or "en"
        self.enabled = enabled
        self.state = SelectionPipelineState(global_lock=lock or SingleFlightLock())
        self.translator = TranslatorSession(translator_factory)
        self.detection = LanguageDetectionAdapter(detector_factory)
        self.policy = policy or FallbackPolicy()
        self.debounce_seconds = (
            self.DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self.tooltip_listener = tooltip_listener
        self.tooltip = TooltipState.HIDDEN
        self.tooltip_text: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._hide_timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[asyncio.Future] = None
        self._holds_lock = False
        self.closed = False

    # --- Triggers -----------------------------------------------------------

    def on_selection_change(self) -> None:
        """Restart the debounce timer; bursts collapse into one evaluation."""

        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._timer = None
        self._pending = asyncio.ensure_future(self.evaluate())

    async def wait_pending(self) -> Optional[SelectionOutcome]:
        """Await the evaluation started by the last debounce, if any."""

        pending = self._pending
        if pending is None:
            return None
        return await pending

    def invalidate(self) -> None:
        """Selection cleared, page scrolled or viewport resized: drop the result."""

        self._set_tooltip(TooltipState.HIDDEN)
        self.state.last_translated_text = None

    on_selection_cleared = invalidate
    on_scroll = invalidate
    on_resize = invalidate

    def set_enabled(self, enabled: bool) -> bool:
        self.enabled = bool(enabled)
        if not self.enabled:
            self.invalidate()
        logger.info("Selection translation %s.", "enabled" if self.enabled else "disabled")
        return self.enabled

    def close(self) -> None:
        """Tear the pipeline down and release everything it holds."""

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._cancel_hide_timer()
        self.invalidate()
        self.closed = True
        self.translator.close()
        self.state.is_translating = False
        self._release_lock()

    # --- Evaluation -----------------------------------------------------------

    async def evaluate(self) -> SelectionOutcome:
        """Run the guard sequence and translate the selection if it passes."""

        if self.closed or not self.enabled:
            self._set_tooltip(TooltipState.HIDDEN)
            return SelectionOutcome(SelectionStatus.DISABLED)
        if self.state.is_translating or self.state.global_lock.locked:
            logger.debug("Selection translation already in progress, skipping.")
            return SelectionOutcome(SelectionStatus.BUSY)
        if not self.translator.available():
            return SelectionOutcome(SelectionStatus.UNAVAILABLE)

        selected = self.selection_provider()
        text = (selected or "").strip()
        if len(text) < self.MIN_SELECTION_LENGTH:
            self.invalidate()
            return SelectionOutcome(SelectionStatus.EMPTY)
        if text == self.state.last_translated_text:
            logger.debug("Same text as last translation, skipping.")
            return SelectionOutcome(SelectionStatus.DUPLICATE, text=text)
        if len(text) > self.MAX_SELECTION_LENGTH:
            self._set_tooltip(TooltipState.HIDDEN)
            return SelectionOutcome(SelectionStatus.TOO_LONG, text=text)
        if not contains_script(text):
            self._set_tooltip(TooltipState.HIDDEN)
            return SelectionOutcome(SelectionStatus.NO_SCRIPT, text=text)

        if not self.state.global_lock.try_acquire():
            return SelectionOutcome(SelectionStatus.BUSY)
        self._holds_lock = True
        self.state.is_translating = True
        try:
            return await self._translate(text)
        finally:
            self.state.is_translating = False
            self._release_lock()

    def _release_lock(self) -> None:
        # The lock may be shared; only the pipeline that acquired it releases it.
        if self._holds_lock:
            self._holds_lock = False
            self.state.global_lock.release()

    async def _translate(self, text: str) -> SelectionOutcome:
        self._set_tooltip(TooltipState.LOADING)
        target = self.target_lang
        source = DEFAULT_SOURCE_LANGUAGE
        try:
            source = await self.detection.detect_or_default(text)
            logger.debug("Translating selection (%s -> %s): %r", source, target, text)
            translation, used = await self.policy.translate(
                self.translator, text, source, target
            )
        except LanguagePairExhaustedError as exc:
            logger.warning("Selection translation failed: %s", exc)
            self.state.last_translated_text = None
            if self.closed:
                return SelectionOutcome(SelectionStatus.DISABLED, text=text)
            self._show_error(self.UNSUPPORTED_MESSAGE)
            return SelectionOutcome(
                SelectionStatus.UNSUPPORTED_PAIR,
                text=text,
                source_lang=source,
                target_lang=target,
                message=self.UNSUPPORTED_MESSAGE,
            )
        except CapabilityUnavailableError as exc:
            logger.info("Selection translation unavailable: %s", exc)
            self.invalidate()
            return SelectionOutcome(SelectionStatus.UNAVAILABLE, text=text, message=str(exc))
        except PageshiftError as exc:
            logger.warning("Selection translation failed: %s", exc)
            self.invalidate()
            return SelectionOutcome(SelectionStatus.FAILED, text=text, message=str(exc))

        if self.closed or not self.enabled:
            if self.closed:
                # A fallback retry may have reopened a translator after close().
                self.translator.close()
            self.invalidate()
            return SelectionOutcome(SelectionStatus.DISABLED, text=text)
        if translation and translation != text:
            self.state.last_translated_text = text
            self._set_tooltip(TooltipState.RESULT, translation)
            return SelectionOutcome(
                SelectionStatus.TRANSLATED,
                text=text,
                translation=translation,
                source_lang=source,
                target_lang=used,
            )
        self.invalidate()
        return SelectionOutcome(
            SelectionStatus.UNCHANGED, text=text, source_lang=source, target_lang=used
        )

    # --- Tooltip lifecycle ----------------------------------------------------

    def _show_error(self, message: str) -> None:
        self._cancel_hide_timer()
        self._set_tooltip(TooltipState.ERROR, message)
        loop = asyncio.get_running_loop()
        self._hide_timer = loop.call_later(self.ERROR_TOOLTIP_SECONDS, self._hide_error)

    def _hide_error(self) -> None:
        self._hide_timer = None
        if self.tooltip is TooltipState.ERROR:
            self._set_tooltip(TooltipState.HIDDEN)

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.cancel()
            self._hide_timer = None

    def _set_tooltip(self, state: TooltipState, text: Optional[str] = None) -> None:
        if state is not TooltipState.ERROR:
            self._cancel_hide_timer()
        if state is self.tooltip and text == self.tooltip_text:
            return
        self.tooltip = state
        self.tooltip_text = text
        if self.tooltip_listener is not None:
            self.tooltip_listener(state, text)
