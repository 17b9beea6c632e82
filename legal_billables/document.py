"""Markup-engine-independent document tree.

A browser bridge (or a test) mirrors the webmail page into these nodes and
forwards user input as events. The tracker only relies on attributes,
parent/child structure, focus, bubbling events and a mutation subscription.
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from typing import Callable, Iterator

LOGGER = logging.getLogger(__name__)

# Events that propagate from the target up through its ancestors.
BUBBLING_EVENTS = frozenset({"click", "input", "focusin", "focusout", "keydown"})


@dataclass(frozen=True)
class Event:
    type: str
    target: Node


@dataclass(frozen=True)
class MutationRecord:
    added: tuple[Node, ...] = ()
    removed: tuple[Node, ...] = ()


Listener = Callable[[Event], None]
MutationCallback = Callable[[MutationRecord], None]
NodePredicate = Callable[["Node"], bool]


class Node:
    def __init__(
        self,
        tag: str = "div",
        attributes: dict[str, str] | None = None,
        text: str = "",
        value: str = "",
        children: list[Node] | None = None,
    ):
        self.tag = tag.lower()
        self.attributes: dict[str, str] = dict(attributes or {})
        self.text = text
        self.value = value
        self.parent: Node | None = None
        self.children: list[Node] = []
        self._listeners: dict[str, list[Listener]] = {}
        self._document: Document | None = None
        for child in children or []:
            self.append_child(child)

    def __repr__(self) -> str:
        attrs = " ".join(f'{key}="{value}"' for key, value in self.attributes.items())
        return f"<{self.tag}{' ' + attrs if attrs else ''}>"

    # Attributes

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name] = value

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    # Structure

    @property
    def document(self) -> Document | None:
        root = self
        while root.parent is not None:
            root = root.parent
        return root._document

    @property
    def is_connected(self) -> bool:
        return self.document is not None

    def append_child(self, child: Node) -> Node:
        if child.parent is not None:
            child.parent.remove_child(child)
        child.parent = self
        self.children.append(child)
        document = self.document
        if document is not None:
            document._notify(MutationRecord(added=(child,)))
        return child

    def remove_child(self, child: Node) -> Node:
        document = self.document
        self.children.remove(child)
        child.parent = None
        if document is not None:
            if document.active_element is not None and child.contains(document.active_element):
                document.active_element = None
            document._notify(MutationRecord(removed=(child,)))
        return child

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)

    def contains(self, other: Node | None) -> bool:
        node = other
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def iter_descendants(self) -> Iterator[Node]:
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def find_all(self, predicate: NodePredicate) -> list[Node]:
        return [node for node in self.iter_descendants() if predicate(node)]

    def find(self, predicate: NodePredicate) -> Node | None:
        for node in self.iter_descendants():
            if predicate(node):
                return node
        return None

    def closest(self, predicate: NodePredicate) -> Node | None:
        node: Node | None = self
        while node is not None:
            if predicate(node):
                return node
            node = node.parent
        return None

    @property
    def inner_text(self) -> str:
        parts = [self.text] if self.text else []
        parts.extend(child.inner_text for child in self.children if child.inner_text)
        return "\n".join(parts)

    # Events

    def add_event_listener(self, event_type: str, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def remove_event_listener(self, event_type: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    def dispatch(self, event_type: str) -> int:
        event = Event(type=event_type, target=self)
        invoked = 0
        node: Node | None = self
        while node is not None:
            for listener in list(node._listeners.get(event_type, [])):
                listener(event)
                invoked += 1
            if event_type not in BUBBLING_EVENTS:
                break
            node = node.parent
        return invoked

    def click(self) -> int:
        return self.dispatch("click")

    def type_text(self, text: str) -> None:
        """Replace the field's content the way a user edit would, then fire ``input``."""
        if self.tag in {"input", "textarea"}:
            self.value = text
        else:
            self.text = text
            self.children = []
        self.dispatch("input")


class Document:
    def __init__(self) -> None:
        self.body = Node("body")
        self.body._document = self
        self.active_element: Node | None = None
        self._observers: list[MutationCallback] = []

    def observe(self, callback: MutationCallback) -> Callable[[], None]:
        self._observers.append(callback)

        def _disconnect() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return _disconnect

    def focus(self, node: Node) -> None:
        if self.active_element is node:
            return
        self.blur()
        self.active_element = node
        node.dispatch("focus")
        node.dispatch("focusin")

    def blur(self) -> None:
        previous = self.active_element
        if previous is None:
            return
        # activeElement is already cleared while blur handlers run.
        self.active_element = None
        previous.dispatch("blur")
        previous.dispatch("focusout")

    def find_all(self, predicate: NodePredicate) -> list[Node]:
        return self.body.find_all(predicate)

    def _notify(self, record: MutationRecord) -> None:
        for callback in list(self._observers):
            callback(record)


class InsertionWatch:
    """Invoke ``attach`` at most once for every node matching ``predicate``.

    Every mutation triggers a full rescan, so nodes that only start matching
    after an attribute change are picked up by the next mutation. Processed
    nodes are remembered by identity and tagged with ``marker``.
    """

    def __init__(
        self,
        document: Document,
        predicate: NodePredicate,
        attach: Callable[[Node], None],
        marker: str,
    ):
        self.document = document
        self.predicate = predicate
        self.attach = attach
        self.marker = marker
        self._seen: weakref.WeakSet[Node] = weakref.WeakSet()
        self._disconnect: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._disconnect is not None

    def start(self) -> None:
        if self._disconnect is not None:
            return
        self._disconnect = self.document.observe(self._on_mutation)
        self.scan()

    def stop(self) -> None:
        if self._disconnect is not None:
            self._disconnect()
            self._disconnect = None

    def scan(self) -> int:
        attached = 0
        for node in self.document.find_all(self.predicate):
            if self.attach_once(node):
                attached += 1
        return attached

    def attach_once(self, node: Node) -> bool:
        if node in self._seen or node.has_attribute(self.marker):
            return False
        self._seen.add(node)
        node.set_attribute(self.marker, "true")
        LOGGER.debug("Attaching %r", node)
        self.attach(node)
        return True

    def forget(self, node: Node) -> None:
        """Let a later insertion of ``node`` attach again."""
        self._seen.discard(node)
        node.remove_attribute(self.marker)

    def _on_mutation(self, record: MutationRecord) -> None:
        if record.added:
            self.scan()
