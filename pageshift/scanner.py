"""Eligible text node discovery and page sampling."""

from __future__ import annotations

from typing import Iterator

from .dom import Element, Node, TextNode

EXCLUDED_TAGS = frozenset(
    {
        "script",
        "style",
        "noscript",
        "iframe",
        "canvas",
        "svg",
        "code",
        "pre",
        "textarea",
        "input",
        "button",
        "select",
    }
)

# Elements injected by this package carry one of these markers.
UI_ID_MARKERS = ("translator", "translation")
UI_CLASSES = frozenset({"translator-overlay", "translation-tooltip"})

DEFAULT_SAMPLE_CHARS = 2000


def is_own_ui(element: Element) -> bool:
    element_id = element.id
    if element_id and any(marker in element_id for marker in UI_ID_MARKERS):
        return True
    return any(name in UI_CLASSES for name in element.classes)


def is_eligible(node: Node) -> bool:
    """Apply the exclusion rules to a single node."""

    if not isinstance(node, TextNode):
        return False
    if node.parent is None:
        return False
    if not (node.value or "").strip():
        return False
    for ancestor in node.ancestors():
        if ancestor.tag in EXCLUDED_TAGS:
            return False
        if is_own_ui(ancestor):
            return False
    return True


def iter_text_nodes(root: Node) -> Iterator[TextNode]:
    """Yield eligible text nodes under ``root`` in document order.

    The sequence is lazy and holds no cursor; call again to restart it.
    """

    if isinstance(root, TextNode):
        if is_eligible(root):
            yield root
        return
    if not isinstance(root, Element):
        return
    for node in root.iter_descendants():
        if isinstance(node, TextNode) and is_eligible(node):
            yield node


def sample_text(root: Node, max_chars: int = DEFAULT_SAMPLE_CHARS) -> str:
    """Join eligible node values with newlines, stopping before the budget is exceeded."""

    sample = ""
    for node in iter_text_nodes(root):
        text = node.value.strip()
        if not text:
            continue
        if len(sample) + len(text) + 1 > max_chars:
            break
        sample += ("\n" if sample else "") + text
        if len(sample) >= max_chars:
            break
    return sample


def contains_script(text: str) -> bool:
    """Detect whether the text contains Latin or CJK letters."""

    for char in text:
        code = ord(char)
        if (
            "a" <= char <= "z"
            or "A" <= char <= "Z"
            or 0x4E00 <= code <= 0x9FFF  # CJK Unified Ideographs
            or 0x3040 <= code <= 0x309F  # Hiragana
            or 0x30A0 <= code <= 0x30FF  # Katakana
        ):
            return True
    return False
