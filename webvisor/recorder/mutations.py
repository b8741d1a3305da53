import logging
from typing import List, Optional

from ..events import (
    AddedNode,
    Doctype,
    MutationData,
    MutationEvent,
    MutationKind,
    Point,
    Size,
    SnapshotData,
    SnapshotEvent,
)
from .channel import Channel
from .dom import ELEMENT_NODE, MutationRecord, Node
from .selectors import selector_of
from .serializer import NodeSerializer

logger = logging.getLogger(__name__)


class MutationWatcher(Channel):
    """
    Structural channel: one snapshot on start, then one mutation event per
    observed record whose target is outside excluded subtrees, both when the
    record is queued and when it is delivered.
    """

    name = "mutations"

    def __init__(self, page, sink, policy, serializer: NodeSerializer):
        super().__init__(page, sink, policy)
        self.serializer = serializer
        self.registry = serializer.registry

    def _start(self) -> None:
        self.capture_snapshot()
        unsubscribe = self.page.observe_mutations(self.process_records, skip=self.excluded_at_source)
        self._subscriptions.append(unsubscribe)

    def capture_snapshot(self) -> SnapshotEvent:
        page = self.page
        document = page.document
        width, height = page.viewport
        scroll_x, scroll_y = page.scroll_position
        event = SnapshotEvent(
            timestamp=page.now(),
            data=SnapshotData(
                node=self.serializer.serialize(document.document_element),
                doctype=Doctype(name=document.doctype) if document.doctype else None,
                url=page.location,
                title=page.title,
                viewport=Size(width=width, height=height),
                scroll=Point(x=scroll_x, y=scroll_y),
            ),
        )
        self.sink(event)
        return event

    def process_records(self, records: List[MutationRecord]) -> None:
        for record in records:
            try:
                event = self.to_event(record)
            except Exception:
                # one bad record must not stop the rest of the batch
                logger.exception("failed to encode %s mutation", record.type)
                continue
            if event is not None:
                self.sink(event)

    def excluded_at_source(self, record: MutationRecord) -> bool:
        # decided while the target is still attached where it changed; by
        # delivery it may have been detached from the excluded subtree
        try:
            return self.policy.is_excluded(record.target)
        except Exception:
            logger.exception("exclusion check failed; dropping %s mutation", record.type)
            return True

    def to_event(self, record: MutationRecord) -> Optional[MutationEvent]:
        target = record.target
        if self.policy.is_excluded(target):
            return None

        data = MutationData(
            target_id=self.registry.id_of(target),
            target_selector=selector_of(target),
            mutation_type=MutationKind.CHILD_LIST,
        )
        if record.type == "childList":
            added = (self._added(n, record) for n in record.added_nodes if not self._excluded_child(n))
            data.added_nodes = [a for a in added if a is not None]
            data.removed_nodes = [self.registry.id_of(n) for n in record.removed_nodes
                                  if not self._excluded_child(n)]
            if not data.added_nodes and not data.removed_nodes:
                return None
        elif record.type == "attributes":
            data.mutation_type = MutationKind.ATTRIBUTES
            data.attribute_name = record.attribute_name
            data.old_value = record.old_value
            data.new_value = target.get_attribute(record.attribute_name)
        elif record.type == "characterData":
            data.mutation_type = MutationKind.CHARACTER_DATA
            data.old_value = record.old_value
            data.new_value = target.text_content
        else:
            logger.debug("ignoring unknown mutation type %r", record.type)
            return None

        return MutationEvent(timestamp=self.page.now(), data=data)

    def _excluded_child(self, node: Node) -> bool:
        # a detached node has lost its ancestors; the target was already checked
        return node.node_type == ELEMENT_NODE and node.has_attribute(self.policy.exclude_attribute)

    def _added(self, node: Node, record: MutationRecord) -> Optional[AddedNode]:
        serialized = self.serializer.serialize(node)
        if serialized is None:
            return None
        return AddedNode(
            id=serialized.id,
            node=serialized,
            previous_sibling_id=self._sibling_id(record.previous_sibling),
            next_sibling_id=self._sibling_id(record.next_sibling),
        )

    def _sibling_id(self, node: Optional[Node]) -> Optional[int]:
        if node is None or self._excluded_child(node):
            return None
        return self.registry.id_of(node)
