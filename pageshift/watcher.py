"""Incremental translation of nodes inserted while a session is active."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, List, Optional, Sequence

from .dom import ChangeSubscription, Element, Node, TextNode
from .logger import get_logger
from .scanner import is_eligible, iter_text_nodes

if TYPE_CHECKING:  # pragma: no cover
    from .session import PageTranslationSession

logger = get_logger(__name__)


class MutationWatcher:
    """Consumes insertion batches and feeds new text to the page session."""

    def __init__(self, session: "PageTranslationSession") -> None:
        self.session = session
        self._subscription: Optional[ChangeSubscription] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        """Subscribe to the document; must be called from a running event loop."""

        if self.running:
            return
        subscription = self.session.document.changes.subscribe()
        self._subscription = subscription
        self._task = asyncio.get_running_loop().create_task(self._consume(subscription))
        logger.debug("Mutation watcher started.")

    def stop(self) -> None:
        """Disconnect; calling it while already disconnected is a no-op."""

        subscription, self._subscription = self._subscription, None
        task, self._task = self._task, None
        if subscription is not None:
            subscription.close()
        if task is not None and not task.done():
            task.cancel()
        if subscription is not None:
            logger.debug("Mutation watcher stopped.")

    async def wait_idle(self) -> None:
        """Wait until every batch delivered so far has been handled."""

        if self._subscription is not None:
            await self._subscription.join()

    async def _consume(self, subscription: ChangeSubscription) -> None:
        while True:
            batch = await subscription.next_batch()
            try:
                if batch is None:
                    return
                await self.handle_batch(batch)
            except Exception as exc:
                logger.warning("Could not translate inserted nodes: %s", exc)
            finally:
                subscription.task_done()

    def collect(self, added: Sequence[Node]) -> List[TextNode]:
        """Extract qualifying text nodes from a batch of inserted nodes."""

        root = self.session.root
        found: List[TextNode] = []
        seen = set()
        for node in added:
            if not root.contains(node):
                continue
            if isinstance(node, TextNode):
                candidates = [node] if is_eligible(node) else []
            elif isinstance(node, Element):
                candidates = list(iter_text_nodes(node))
            else:
                continue
            for candidate in candidates:
                if id(candidate) not in seen:
                    seen.add(id(candidate))
                    found.append(candidate)
        return found

    async def handle_batch(self, added: Sequence[Node]) -> int:
        """Translate the new text in one batch; return how many nodes were written."""

        session = self.session
        if not session.state.enabled or not session.translator.is_open:
            return 0
        nodes = self.collect(added)
        if not nodes:
            return 0
        generation = session.generation
        written = 0
        for node in nodes:
            if not session.is_current(generation) or not session.translator.is_open:
                break
            if await session.translate_node(node, generation):
                written += 1
        return written
