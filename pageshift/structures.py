"""Core data structures for the Pageshift translator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple

from .dom import TextNode
from .logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LanguageGuess:
    """One ranked answer from a language detector."""

    language: str
    confidence: float = 1.0


@dataclass
class PageSessionState:
    """Page-wide translation flags, alive for one script instance."""

    enabled: bool = False
    current_target_lang: str = "zh-Hans"


class SessionPhase(Enum):
    IDLE = "idle"
    TRANSLATING = "translating"
    ACTIVE = "active"
    RETARGETING = "retargeting"


@dataclass
class TranslationProgress:
    """Monotonic done/total counter for one pass."""

    done: int = 0
    total: int = 0

    def reset(self, total: int) -> None:
        self.done = 0
        self.total = total

    def advance(self) -> int:
        self.done += 1
        return self.done


class SingleFlightLock:
    """Cooperative guard: at most one holder, contenders are turned away."""

    def __init__(self) -> None:
        self._held = False

    @property
    def locked(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False


@dataclass
class SelectionPipelineState:
    """Selection pipeline flags; the lock may be shared across pipelines."""

    is_translating: bool = False
    last_translated_text: Optional[str] = None
    global_lock: SingleFlightLock = field(default_factory=SingleFlightLock)


class OriginalTextRegistry:
    """Maps translated text nodes to the content they had when first seen."""

    def __init__(self) -> None:
        self._originals: Dict[TextNode, str] = {}

    def remember(self, node: TextNode, value: str) -> str:
        """Cache the value unless the node is already known; return the cached value."""

        return self._originals.setdefault(node, value)

    def items(self) -> Iterator[Tuple[TextNode, str]]:
        return iter(list(self._originals.items()))

    def __contains__(self, node: object) -> bool:
        return node in self._originals

    def __len__(self) -> int:
        return len(self._originals)

    def restore_all(self) -> int:
        """Write every cached original back and clear the registry.

        A node that cannot be restored is logged and skipped so the rest are
        still restored.
        """

        restored = 0
        for node, original in self.items():
            try:
                node.value = original
                restored += 1
            except Exception as exc:
                logger.warning("Could not restore text node %r: %s", node, exc)
        self._originals.clear()
        return restored
