"""Page translation session: scan, detect, translate, observe, restore."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from .detection import DEFAULT_SOURCE_LANGUAGE, LanguageDetectionAdapter
from .dom import Document, TextNode
from .errors import (
    CapabilityUnavailableError,
    ErrorCategory,
    ErrorLog,
    LanguagePairExhaustedError,
    PageshiftError,
)
from .logger import get_logger
from .policy import FallbackPolicy
from .providers import LanguageDetectorFactory, TranslatorFactory
from .scanner import iter_text_nodes, sample_text
from .structures import (
    OriginalTextRegistry,
    PageSessionState,
    SessionPhase,
    TranslationProgress,
)
from .translator import DEFAULT_TARGET_LANGUAGE, TranslatorSession, normalize_language
from .watcher import MutationWatcher

logger = get_logger(__name__)

StatusCallback = Callable[[str], None]

PROGRESS_INTERVAL = 20


class PageTranslationSession:
    """State machine for translating one live document in place.

    ``start`` runs the first pass (Idle -> Translating -> Active), ``start`` or
    ``retarget`` with a new language re-translates from the cached originals
    (Active -> Retargeting -> Active) and ``stop`` restores every node
    (any -> Idle).

    Each pass captures the session generation when it begins. ``stop`` and any
    superseding pass bump the generation, so an older pass notices at its next
    await and stops writing instead of draining its node list.
    """

    def __init__(
        self,
        document: Document,
        translator_factory: Optional[TranslatorFactory],
        detector_factory: Optional[LanguageDetectorFactory] = None,
        *,
        policy: Optional[FallbackPolicy] = None,
        default_target: str = DEFAULT_TARGET_LANGUAGE,
        status_callback: Optional[StatusCallback] = None,
        sample_chars: int = 2000,
    ) -> None:
        self.document = document
        self.root = document.body
        self.state = PageSessionState(
            current_target_lang=normalize_language(default_target) or DEFAULT_TARGET_LANGUAGE
        )
        self.phase = SessionPhase.IDLE
        self.registry = OriginalTextRegistry()
        self.translator = TranslatorSession(translator_factory)
        self.detection = LanguageDetectionAdapter(detector_factory)
        self.policy = policy or FallbackPolicy()
        self.watcher = MutationWatcher(self)
        self.progress = TranslationProgress()
        self.errors = ErrorLog()
        self.status_callback = status_callback
        self.sample_chars = sample_chars
        self.source_lang: Optional[str] = None
        # Last target asked for; differs from the state target after a fallback.
        self.requested_target: Optional[str] = None
        self.generation = 0

    # --- Public operations ------------------------------------------------

    def status(self) -> Dict[str, Any]:
        return {
            "enabled": self.state.enabled,
            "targetLang": self.state.current_target_lang,
            "phase": self.phase.value,
        }

    def is_current(self, generation: int) -> bool:
        return self.state.enabled and generation == self.generation

    async def start(self, target_lang: str | None = None) -> Dict[str, Any]:
        """Translate the page, or retarget it when already enabled."""

        target = normalize_language(target_lang) or self.state.current_target_lang
        if self.state.enabled:
            if self._is_current_target(target):
                logger.debug("Page already translated into %s; ignoring start.", target)
                return self.status()
            return await self.retarget(target)

        self.state.enabled = True
        self.state.current_target_lang = target
        self.requested_target = target
        self.phase = SessionPhase.TRANSLATING
        self.generation += 1
        generation = self.generation
        self._report("Preparing page translation...")

        if not await self._open_translator(generation, target):
            return self.status()

        nodes = list(iter_text_nodes(self.root))
        self.progress.reset(len(nodes))
        self._report_progress()
        for node in nodes:
            if not self.is_current(generation):
                logger.info("Page translation interrupted at %s/%s.", self.progress.done, self.progress.total)
                return self.status()
            await self.translate_node(node, generation)
            self.progress.advance()
            self._report_progress()

        if self.is_current(generation):
            self._activate("Page translation complete.")
        return self.status()

    async def retarget(self, target_lang: str) -> Dict[str, Any]:
        """Re-translate every eligible node from its original for a new target."""

        target = normalize_language(target_lang) or self.state.current_target_lang
        if not self.state.enabled:
            return await self.start(target)
        if self._is_current_target(target):
            return self.status()

        self.state.current_target_lang = target
        self.requested_target = target
        self.phase = SessionPhase.RETARGETING
        self.generation += 1
        generation = self.generation
        self._report("Switching target language...")

        if not await self._open_translator(generation, target):
            return self.status()

        nodes = list(iter_text_nodes(self.root))
        self.progress.reset(len(nodes))
        for node in nodes:
            if not self.is_current(generation):
                return self.status()
            current = node.value
            if current.strip():
                original = self.registry.remember(node, current)
                try:
                    translated = await self.translator.translate(original)
                except PageshiftError as exc:
                    self.errors.record(
                        ErrorCategory.TRANSLATION,
                        "Could not translate a text node. Skipping it.",
                        str(exc),
                    )
                else:
                    if self.is_current(generation):
                        node.value = translated
            self.progress.advance()

        if self.is_current(generation):
            self._activate("Target language switched.")
        return self.status()

    def stop(self) -> Dict[str, Any]:
        """Restore every translated node and tear the translator down."""

        self.state.enabled = False
        self.generation += 1
        self.watcher.stop()
        restored = self.registry.restore_all()
        self.translator.close()
        self.phase = SessionPhase.IDLE
        if restored:
            logger.info("Restored %s text nodes.", restored)
        return {"ok": True}

    # --- Node translation ---------------------------------------------------

    async def translate_node(self, node: TextNode, generation: int) -> bool:
        """Translate one node, writing only if its content is unchanged or empty."""

        original = node.value or ""
        if not original.strip():
            return False
        self.registry.remember(node, original)
        try:
            translated = await self.translator.translate(original)
        except PageshiftError as exc:
            self.errors.record(
                ErrorCategory.TRANSLATION,
                "Could not translate a text node. Skipping it.",
                str(exc),
            )
            return False
        if self.is_current(generation) and (node.value == original or not node.value):
            node.value = translated
            return True
        return False

    # --- Internal helpers -------------------------------------------------

    def _is_current_target(self, target: str) -> bool:
        return target in (self.requested_target, self.state.current_target_lang)

    async def _detect_source(self) -> str:
        sample = sample_text(self.root, self.sample_chars)
        return await self.detection.detect_or_default(sample, DEFAULT_SOURCE_LANGUAGE)

    async def _open_translator(self, generation: int, target: str) -> bool:
        """Detect the source and open a translator; False when the pass must end."""

        source = await self._detect_source()
        if not self.is_current(generation):
            return False
        self.source_lang = source
        try:
            used = await self.policy.open(self.translator, source, target)
        except PageshiftError as exc:
            if not self.is_current(generation):
                # Superseded by stop() or a newer pass while the translator was built.
                return False
            if isinstance(exc, CapabilityUnavailableError):
                category = ErrorCategory.CAPABILITY_UNAVAILABLE
            elif isinstance(exc, LanguagePairExhaustedError):
                category = ErrorCategory.UNSUPPORTED_PAIR
            else:
                category = ErrorCategory.TRANSLATION
            self.errors.record(category, str(exc))
            self.stop()
            self._report(str(exc))
            raise
        if not self.is_current(generation):
            return False
        if used != target:
            self._report(f"Target language {target} unsupported; using {used}.")
        self.state.current_target_lang = used
        return True

    def _activate(self, message: str) -> None:
        self.phase = SessionPhase.ACTIVE
        self._report(message)
        self.watcher.start()

    def _report_progress(self) -> None:
        done, total = self.progress.done, self.progress.total
        if done % PROGRESS_INTERVAL == 0 or done == total:
            self._report(f"Translating page ({done}/{total})...")

    def _report(self, message: str) -> None:
        logger.info(message)
        if self.status_callback is not None:
            self.status_callback(message)
