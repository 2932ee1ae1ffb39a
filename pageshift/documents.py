"""HTML loading and layout-preserving serialisation."""

from __future__ import annotations

import html
import pathlib
from typing import List, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from .dom import Document, Element, Node, RawNode, TextNode
from .errors import PageshiftError, UnsupportedFileTypeError

SUPPORTED_SUFFIXES = (".html", ".htm", ".xhtml")

VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)
RAW_TEXT_ELEMENTS = frozenset({"script", "style"})


def _convert(source) -> List[Node]:
    nodes: List[Node] = []
    for child in source.children:
        if isinstance(child, PreformattedString):
            # Doctype.SUFFIX carries a newline the source markup already has.
            suffix = child.SUFFIX.rstrip("\n")
            nodes.append(RawNode(f"{child.PREFIX}{child}{suffix}"))
        elif isinstance(child, NavigableString):
            nodes.append(TextNode(str(child)))
        elif isinstance(child, Tag):
            attrs = {}
            for key, value in child.attrs.items():
                if isinstance(value, (list, tuple)):
                    value = " ".join(value)
                attrs[key] = value
            nodes.append(Element(child.name, attrs, _convert(child)))
    return nodes


def parse_html(markup: str) -> Document:
    """Parse markup into a live document tree."""

    soup = BeautifulSoup(markup, "html.parser")
    return Document(Element("#document", children=_convert(soup)))


def _render_attrs(element: Element) -> str:
    parts = []
    for key, value in element.attrs.items():
        if value is None:
            parts.append(f" {key}")
        else:
            parts.append(f' {key}="{html.escape(str(value), quote=True)}"')
    return "".join(parts)


def _render(node: Node, out: List[str], raw_text: bool = False) -> None:
    if isinstance(node, TextNode):
        out.append(node.value if raw_text else html.escape(node.value, quote=False))
    elif isinstance(node, RawNode):
        out.append(node.markup)
    elif isinstance(node, Element):
        is_root = node.tag == "#document"
        if not is_root:
            out.append(f"<{node.tag}{_render_attrs(node)}>")
            if node.tag in VOID_ELEMENTS and not node.children:
                return
        for child in node.children:
            _render(child, out, raw_text=node.tag in RAW_TEXT_ELEMENTS)
        if not is_root:
            out.append(f"</{node.tag}>")


def render_html(document: Document) -> str:
    """Serialise the document, keeping structure, attributes and whitespace."""

    out: List[str] = []
    _render(document.root, out)
    return "".join(out)


class HtmlDocumentHandler:
    """Loads an HTML file into a document and writes it back."""

    def __init__(self, source_path: pathlib.Path):
        self.source_path = source_path
        try:
            markup = source_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise PageshiftError(f"Could not read {source_path}: {exc}") from exc
        self.document = parse_html(markup)

    def save(self, destination: pathlib.Path) -> None:
        destination.write_text(render_html(self.document), encoding="utf-8")


def detect_handler(path: pathlib.Path) -> Tuple[str, HtmlDocumentHandler]:
    """Select an appropriate handler for the provided file."""

    suffix = path.suffix.lower()
    if suffix in SUPPORTED_SUFFIXES:
        return suffix.lstrip("."), HtmlDocumentHandler(path)
    raise UnsupportedFileTypeError(
        "This file type isn't supported. Please use .html, .htm or .xhtml."
    )
