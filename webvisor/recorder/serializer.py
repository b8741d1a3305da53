from typing import Optional

from ..events import SerializedNode
from ..privacy.redaction import RedactionPolicy
from .dom import COMMENT_NODE, ELEMENT_NODE, TEXT_NODE, Element, Node
from .identity import NodeRegistry


class NodeSerializer:
    """Live node -> ``SerializedNode``; excluded subtrees serialize to None."""

    def __init__(self, registry: NodeRegistry, policy: RedactionPolicy):
        self.registry = registry
        self.policy = policy

    def serialize(self, node: Optional[Node]) -> Optional[SerializedNode]:
        if node is None or self.policy.is_excluded(node):
            return None
        return self._serialize(node)

    def _serialize(self, node: Node) -> Optional[SerializedNode]:
        if node.node_type == TEXT_NODE:
            return SerializedNode(kind="text", id=self.registry.id_of(node), name=node.node_name, value=node.data)
        if node.node_type == COMMENT_NODE:
            return SerializedNode(kind="comment", id=self.registry.id_of(node), name=node.node_name, value=node.data)
        if node.node_type != ELEMENT_NODE:
            return None
        # ancestors were checked by serialize(); only the element itself can opt out here
        if node.has_attribute(self.policy.exclude_attribute):
            return None

        out = SerializedNode(kind="element", id=self.registry.id_of(node), name=node.tag_name)
        if node.attributes:
            out.attrs = dict(node.attributes)
        children = [c for c in map(self._serialize, node.child_nodes) if c is not None]
        if children:
            out.children = children
        self._capture_form_state(node, out)
        return out

    def _capture_form_state(self, element: Element, out: SerializedNode) -> None:
        if element.tag_name in ("INPUT", "TEXTAREA"):
            out.value, _ = self.policy.redact(element, element.value)
        elif element.tag_name == "SELECT":
            out.selected_index = element.selected_index
