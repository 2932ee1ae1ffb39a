"""Live document tree with insertion notifications."""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence

Batch = List["Node"]


class Node:
    """Common base for every node in a document tree."""

    def __init__(self) -> None:
        self.parent: Optional[Element] = None

    def ancestors(self) -> Iterator["Element"]:
        """Yield enclosing elements from the nearest outwards."""

        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def root(self) -> "Node":
        node: Node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def document(self) -> Optional["Document"]:
        top = self.root()
        return getattr(top, "owner", None)


class TextNode(Node):
    """A text-bearing leaf; its value is owned by the document."""

    def __init__(self, value: str = "") -> None:
        super().__init__()
        self.value = value

    def __repr__(self) -> str:
        return f"TextNode({self.value!r})"


class RawNode(Node):
    """Markup kept verbatim (doctype, comments, CDATA)."""

    def __init__(self, markup: str) -> None:
        super().__init__()
        self.markup = markup

    def __repr__(self) -> str:
        return f"RawNode({self.markup!r})"


class Element(Node):
    """An element with attributes and ordered children."""

    def __init__(
        self,
        tag: str,
        attrs: Optional[Dict[str, Optional[str]]] = None,
        children: Sequence[Node] = (),
    ) -> None:
        super().__init__()
        self.tag = tag.lower()
        self.attrs: Dict[str, Optional[str]] = dict(attrs or {})
        self.children: List[Node] = []
        for child in children:
            self._attach(child, len(self.children))

    def __repr__(self) -> str:
        return f"Element({self.tag!r}, children={len(self.children)})"

    @property
    def id(self) -> str:
        return self.attrs.get("id") or ""

    @property
    def classes(self) -> List[str]:
        return (self.attrs.get("class") or "").split()

    def append_child(self, child: Node) -> Node:
        return self.insert_child(len(self.children), child)

    def insert_child(self, index: int, child: Node) -> Node:
        """Insert a child and report the insertion to the owning document."""

        self._attach(child, index)
        document = self.document
        if document is not None:
            document.changes.record(child)
        return child

    def remove_child(self, child: Node) -> Node:
        self.children.remove(child)
        child.parent = None
        return child

    def contains(self, node: Node) -> bool:
        """Return True when the node is this element or one of its descendants."""

        if node is self:
            return True
        return any(ancestor is self for ancestor in node.ancestors())

    def iter_descendants(self) -> Iterator[Node]:
        """Yield descendants in document (pre-)order."""

        stack: List[Node] = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            if isinstance(node, Element):
                stack.extend(reversed(node.children))

    def find(self, tag: str) -> Optional["Element"]:
        tag = tag.lower()
        for node in self.iter_descendants():
            if isinstance(node, Element) and node.tag == tag:
                return node
        return None

    def _attach(self, child: Node, index: int) -> None:
        if child.parent is not None:
            child.parent.remove_child(child)
        self.children.insert(index, child)
        child.parent = self


class ChangeSubscription:
    """Queue-backed channel of inserted-node batches."""

    def __init__(self, notifier: "ChangeNotifier") -> None:
        self._notifier = notifier
        self._queue: asyncio.Queue[Optional[Batch]] = asyncio.Queue()
        self.closed = False

    def put(self, batch: Batch) -> None:
        if not self.closed:
            self._queue.put_nowait(batch)

    async def next_batch(self) -> Optional[Batch]:
        """Return the next batch, or None once the subscription is closed."""

        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every delivered batch has been processed."""

        await self._queue.join()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._notifier.unsubscribe(self)
        self._queue.put_nowait(None)


class ChangeNotifier:
    """Reports newly inserted nodes to every open subscription."""

    def __init__(self) -> None:
        self._subscriptions: List[ChangeSubscription] = []
        self._pending: Optional[Batch] = None

    def subscribe(self) -> ChangeSubscription:
        subscription = ChangeSubscription(self)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: ChangeSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def record(self, node: Node) -> None:
        if self._pending is not None:
            self._pending.append(node)
            return
        self.emit([node])

    def emit(self, batch: Batch) -> None:
        if not batch:
            return
        for subscription in list(self._subscriptions):
            subscription.put(list(batch))

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Group every insertion made inside the block into one batch."""

        if self._pending is not None:
            yield
            return
        self._pending = []
        try:
            yield
        finally:
            pending, self._pending = self._pending, None
            self.emit(pending)


class Document:
    """A parsed page: a root element plus its change notifier."""

    def __init__(self, root: Optional[Element] = None) -> None:
        self.root = root or Element("#document")
        self.root.owner = self  # type: ignore[attr-defined]
        self.changes = ChangeNotifier()

    @property
    def body(self) -> Element:
        if self.root.tag == "body":
            return self.root
        return self.root.find("body") or self.root

    def batch(self):
        return self.changes.batch()
