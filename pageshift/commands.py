"""Message-style control surface for a page context."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .errors import PageshiftError
from .logger import get_logger
from .selection import SelectionTranslationPipeline
from .session import PageTranslationSession
from .whitelist import is_url_whitelisted

logger = get_logger(__name__)

START_PAGE_TRANSLATION = "start-page-translation"
STOP_PAGE_TRANSLATION = "stop-page-translation"
QUERY_STATUS = "query-status"
TOGGLE_SELECTION_TRANSLATION = "toggle-selection-translation"

AUTO_TRANSLATE_SCHEMES = ("http", "https", "file")


class ContentController:
    """Routes command messages to the page session and selection pipeline."""

    def __init__(
        self,
        page_session: PageTranslationSession,
        selection_pipeline: Optional[SelectionTranslationPipeline] = None,
    ) -> None:
        self.page_session = page_session
        self.selection_pipeline = selection_pipeline

    async def handle(self, message: Mapping[str, Any]) -> Dict[str, Any]:
        """Handle one command; failures come back as ``{"ok": False, "error": ...}``."""

        kind = message.get("type") if isinstance(message, Mapping) else None
        try:
            if kind == START_PAGE_TRANSLATION:
                status = await self.page_session.start(message.get("targetLang"))
                return self._page_status(status)
            if kind == STOP_PAGE_TRANSLATION:
                return self.page_session.stop()
            if kind == QUERY_STATUS:
                return self._page_status(self.page_session.status())
            if kind == TOGGLE_SELECTION_TRANSLATION:
                enabled = bool(message.get("enabled"))
                if self.selection_pipeline is not None:
                    enabled = self.selection_pipeline.set_enabled(enabled)
                return {"ok": True, "enabled": enabled}
        except PageshiftError as exc:
            logger.warning("Command %s failed: %s", kind, exc)
            return {"ok": False, "error": str(exc)}
        return {"ok": False, "error": f"Unknown command '{kind}'."}

    async def auto_translate(self, url: str, settings: Any) -> Optional[Dict[str, Any]]:
        """Tab-load entry point: start translation when settings allow it.

        Returns the command response, or None when the page was skipped.
        """

        scheme = url.split(":", 1)[0].lower() if ":" in url else ""
        if scheme not in AUTO_TRANSLATE_SCHEMES:
            return None
        if not getattr(settings, "AUTO_TRANSLATE_ENABLED", False):
            return None
        if is_url_whitelisted(url, getattr(settings, "WHITELIST_PATTERNS", None) or []):
            logger.info("Page is whitelisted, skipping automatic translation: %s", url)
            return None
        target = getattr(settings, "AUTO_TRANSLATE_TARGET_LANG", None) or "zh-Hans"
        return await self.handle({"type": START_PAGE_TRANSLATION, "targetLang": target})

    def close(self) -> None:
        """Page is unloading: release both translators."""

        if self.selection_pipeline is not None:
            self.selection_pipeline.close()
        self.page_session.translator.close()
        self.page_session.watcher.stop()

    @staticmethod
    def _page_status(status: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "ok": True,
            "enabled": status["enabled"],
            "targetLang": status["targetLang"],
        }
