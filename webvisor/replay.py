"""
Rebuild the recorded page structure from a session's event stream.

The snapshot seeds the tree; every mutation is then applied against the
node ids it carries. Pointer, scroll and viewport state are tracked
alongside so a player can render the last known frame.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from .events import (
    BaseEvent,
    EventKind,
    MutationData,
    MutationKind,
    SerializedNode,
    parse_event,
)
from .recorder.dom import COMMENT_NODE, TEXT_NODE, CharacterData, Comment, Element, Node, Text

logger = logging.getLogger(__name__)


class SessionReplayer:
    def __init__(self):
        self.root: Optional[Element] = None
        self.doctype: Optional[str] = None
        self.url = ""
        self.title = ""
        self.viewport: Tuple[int, int] = (0, 0)
        self.scroll: Tuple[float, float] = (0.0, 0.0)
        self.pointer: Optional[Tuple[float, float]] = None
        self.clicks = 0
        self.skipped = 0
        self._nodes: Dict[int, Node] = {}
        self._ids: Dict[Node, int] = {}

    @classmethod
    def from_events(cls, events: Iterable[Union[BaseEvent, Dict[str, Any]]]) -> "SessionReplayer":
        replayer = cls()
        for event in events:
            replayer.apply(event)
        return replayer

    def node(self, node_id: int) -> Optional[Node]:
        return self._nodes.get(node_id)

    def apply(self, event: Union[BaseEvent, Dict[str, Any]]) -> None:
        if isinstance(event, dict):
            try:
                event = parse_event(event)
            except ValueError as e:  # pydantic ValidationError included
                logger.debug("unreadable event skipped: %s", e)
                self.skipped += 1
                return
        kind = event.type
        data = event.data
        if kind == EventKind.DOM_SNAPSHOT:
            self._nodes.clear()
            self._ids.clear()
            self.root = self._build(data.node) if data.node is not None else None
            self.doctype = data.doctype.name if data.doctype is not None else None
            self.url, self.title = data.url, data.title
            self.viewport = (data.viewport.width or 0, data.viewport.height or 0)
            self.scroll = (data.scroll.x, data.scroll.y)
        elif kind == EventKind.DOM_MUTATION:
            self._mutate(data)
        elif kind == EventKind.MOUSE_MOVE:
            self.pointer = (data.x, data.y)
        elif kind == EventKind.MOUSE_CLICK:
            self.pointer = (data.x, data.y)
            self.clicks += 1
        elif kind == EventKind.SCROLL:
            self.scroll = (data.x, data.y)
        elif kind == EventKind.RESIZE:
            self.viewport = (data.width, data.height)
        elif kind == EventKind.PAGE_LOAD:
            self.url, self.title = data.url, data.title
        elif kind == EventKind.PAGE_TRANSITION and data.to:
            self.url = data.to
            if data.title is not None:
                self.title = data.title

    # ---------- structure ----------

    def _build(self, serialized: SerializedNode) -> Node:
        if serialized.kind == "text":
            node: Node = Text(serialized.value or "")
        elif serialized.kind == "comment":
            node = Comment(serialized.value or "")
        else:
            node = Element(serialized.name, serialized.attrs)
            for child in serialized.children or ():
                node.append_child(self._build(child))
            if serialized.value is not None:
                node.value = serialized.value
            if serialized.selected_index is not None:
                node.selected_index = serialized.selected_index
        self._register(serialized.id, node)
        return node

    def _register(self, node_id: int, node: Node) -> None:
        stale = self._nodes.get(node_id)
        if stale is not None:
            # a node re-serialized elsewhere was moved; drop the old copy
            if stale.parent_node is not None:
                stale.parent_node.remove_child(stale)
            self._ids.pop(stale, None)
        self._nodes[node_id] = node
        self._ids[node] = node_id

    def _mutate(self, data: MutationData) -> None:
        target = self._nodes.get(data.target_id)
        if target is None:
            logger.debug("mutation on unknown node %d skipped", data.target_id)
            self.skipped += 1
            return

        if data.mutation_type == MutationKind.CHILD_LIST:
            for node_id in data.removed_nodes or ():
                node = self._nodes.get(node_id)
                if node is not None and node.parent_node is target:
                    target.remove_child(node)
            for added in data.added_nodes or ():
                self._insert(target, added.node, added.next_sibling_id, added.previous_sibling_id)
        elif data.mutation_type == MutationKind.ATTRIBUTES:
            if not isinstance(target, Element):
                self.skipped += 1
                return
            if data.new_value is None:
                target.remove_attribute(data.attribute_name)
            else:
                target.set_attribute(data.attribute_name, data.new_value)
        elif data.mutation_type == MutationKind.CHARACTER_DATA:
            if isinstance(target, CharacterData):
                target.data = data.new_value or ""
            else:
                self.skipped += 1

    def _insert(self, parent: Node, serialized: SerializedNode,
                next_id: Optional[int], previous_id: Optional[int]) -> None:
        node = self._build(serialized)

        ref = self._nodes.get(next_id) if next_id is not None else None
        if ref is not None and ref.parent_node is parent:
            parent.insert_before(node, ref)
            return
        prev = self._nodes.get(previous_id) if previous_id is not None else None
        if prev is not None and prev.parent_node is parent:
            parent.insert_before(node, prev.next_sibling)
            return
        parent.append_child(node)

    # ---------- inspection ----------

    def describe(self, node: Optional[Node] = None) -> Optional[SerializedNode]:
        """Current tree in the same shape the recorder serializes it."""
        node = node if node is not None else self.root
        if node is None:
            return None
        node_id = self._ids[node]
        if node.node_type == TEXT_NODE:
            return SerializedNode(kind="text", id=node_id, name=node.node_name, value=node.data)
        if node.node_type == COMMENT_NODE:
            return SerializedNode(kind="comment", id=node_id, name=node.node_name, value=node.data)
        out = SerializedNode(kind="element", id=node_id, name=node.tag_name)
        if node.attributes:
            out.attrs = dict(node.attributes)
        if node.child_nodes:
            out.children = [self.describe(c) for c in node.child_nodes]
        if node.tag_name in ("INPUT", "TEXTAREA"):
            out.value = node.value
        elif node.tag_name == "SELECT":
            out.selected_index = node.selected_index
        return out
