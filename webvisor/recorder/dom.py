"""
Minimal in-process DOM.

Just enough of the browser object model for capture to run against:
element/text/comment nodes, attributes, form control state and a
subtree MutationObserver that queues records until they are delivered.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

ELEMENT_NODE = 1
TEXT_NODE = 3
COMMENT_NODE = 8
DOCUMENT_NODE = 9

FORM_TAGS = ("INPUT", "TEXTAREA", "SELECT")


@dataclass
class MutationRecord:
    type: str  # childList | attributes | characterData
    target: "Node"
    added_nodes: List["Node"] = field(default_factory=list)
    removed_nodes: List["Node"] = field(default_factory=list)
    previous_sibling: Optional["Node"] = None
    next_sibling: Optional["Node"] = None
    attribute_name: Optional[str] = None
    old_value: Optional[str] = None


class Node:
    node_type = 0
    node_name = ""

    def __init__(self, document: Optional["Document"] = None):
        self.owner_document = document
        self.parent_node: Optional[Node] = None
        self.child_nodes: List[Node] = []

    # ---- tree navigation ----
    @property
    def parent_element(self) -> Optional["Element"]:
        p = self.parent_node
        return p if isinstance(p, Element) else None

    @property
    def previous_sibling(self) -> Optional["Node"]:
        if self.parent_node is None:
            return None
        siblings = self.parent_node.child_nodes
        i = siblings.index(self)
        return siblings[i - 1] if i > 0 else None

    @property
    def next_sibling(self) -> Optional["Node"]:
        if self.parent_node is None:
            return None
        siblings = self.parent_node.child_nodes
        i = siblings.index(self)
        return siblings[i + 1] if i + 1 < len(siblings) else None

    @property
    def is_connected(self) -> bool:
        node = self
        while node.parent_node is not None:
            node = node.parent_node
        return node.node_type == DOCUMENT_NODE

    def contains(self, other: Optional["Node"]) -> bool:
        while other is not None:
            if other is self:
                return True
            other = other.parent_node
        return False

    def iter_descendants(self) -> Iterator["Node"]:
        for child in self.child_nodes:
            yield child
            yield from child.iter_descendants()

    @property
    def text_content(self) -> str:
        return "".join(
            n.data for n in self.iter_descendants() if n.node_type == TEXT_NODE
        )

    # ---- tree mutation ----
    def append_child(self, child: "Node") -> "Node":
        return self.insert_before(child, None)

    def insert_before(self, child: "Node", ref: Optional["Node"]) -> "Node":
        if child.contains(self):
            raise ValueError("cannot insert a node into its own subtree")
        if ref is not None and ref.parent_node is not self:
            raise ValueError("reference node is not a child of this node")
        if child.parent_node is not None:
            child.parent_node.remove_child(child)
        index = len(self.child_nodes) if ref is None else self.child_nodes.index(ref)
        prev = self.child_nodes[index - 1] if index > 0 else None
        self.child_nodes.insert(index, child)
        child.parent_node = self
        self._notify(MutationRecord(
            "childList", self, added_nodes=[child], previous_sibling=prev, next_sibling=ref,
        ))
        return child

    def remove_child(self, child: "Node") -> "Node":
        if child.parent_node is not self:
            raise ValueError("node is not a child of this node")
        prev, nxt = child.previous_sibling, child.next_sibling
        self.child_nodes.remove(child)
        child.parent_node = None
        self._notify(MutationRecord(
            "childList", self, removed_nodes=[child], previous_sibling=prev, next_sibling=nxt,
        ))
        return child

    def remove(self) -> None:
        if self.parent_node is not None:
            self.parent_node.remove_child(self)

    def append(self, *children) -> "Node":
        """Append nodes; plain strings become text nodes."""
        for child in children:
            if isinstance(child, str):
                child = Text(child, self.owner_document)
            self.append_child(child)
        return self

    def _notify(self, record: MutationRecord) -> None:
        if self.owner_document is not None:
            self.owner_document.queue_record(record)


class CharacterData(Node):
    def __init__(self, data: str = "", document: Optional["Document"] = None):
        super().__init__(document)
        self._data = data

    @property
    def data(self) -> str:
        return self._data

    @data.setter
    def data(self, value: str) -> None:
        old = self._data
        self._data = value
        self._notify(MutationRecord("characterData", self, old_value=old))

    @property
    def text_content(self) -> str:
        return self._data


class Text(CharacterData):
    node_type = TEXT_NODE
    node_name = "#text"


class Comment(CharacterData):
    node_type = COMMENT_NODE
    node_name = "#comment"


class Element(Node):
    node_type = ELEMENT_NODE

    def __init__(self, tag: str, attrs: Optional[Dict[str, str]] = None,
                 document: Optional["Document"] = None):
        super().__init__(document)
        self.tag_name = tag.upper()
        self.attributes: Dict[str, str] = dict(attrs or {})
        # live form state; not reflected into attributes, like a browser
        self._value: Optional[str] = None
        self._checked: Optional[bool] = None
        self._selected_index: Optional[int] = None
        self.selection_start: Optional[int] = None
        self.selection_end: Optional[int] = None

    @property
    def node_name(self) -> str:  # type: ignore[override]
        return self.tag_name

    # ---- attributes ----
    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def set_attribute(self, name: str, value: str) -> None:
        old = self.attributes.get(name)
        self.attributes[name] = str(value)
        self._notify(MutationRecord("attributes", self, attribute_name=name, old_value=old))

    def remove_attribute(self, name: str) -> None:
        if name not in self.attributes:
            return
        old = self.attributes.pop(name)
        self._notify(MutationRecord("attributes", self, attribute_name=name, old_value=old))

    @property
    def id(self) -> str:
        return self.attributes.get("id", "")

    @property
    def class_name(self) -> str:
        return self.attributes.get("class", "")

    @property
    def children(self) -> List["Element"]:
        return [c for c in self.child_nodes if isinstance(c, Element)]

    @property
    def text_content(self) -> str:
        return super().text_content

    @text_content.setter
    def text_content(self, value: str) -> None:
        for child in list(self.child_nodes):
            self.remove_child(child)
        if value:
            self.append_child(Text(value, self.owner_document))

    # ---- form controls ----
    @property
    def type(self) -> str:
        if self.tag_name == "TEXTAREA":
            return "textarea"
        if self.tag_name == "SELECT":
            return "select-one"
        return (self.attributes.get("type") or "text").lower()

    @property
    def name(self) -> str:
        return self.attributes.get("name", "")

    @property
    def placeholder(self) -> str:
        return self.attributes.get("placeholder", "")

    @property
    def autocomplete(self) -> str:
        return self.attributes.get("autocomplete", "")

    @property
    def value(self) -> str:
        if self.tag_name == "SELECT":
            option = self.selected_option
            return option.option_value if option is not None else ""
        if self._value is not None:
            return self._value
        if self.tag_name == "TEXTAREA":
            return self.text_content
        return self.attributes.get("value", "on" if self.type in ("checkbox", "radio") else "")

    @value.setter
    def value(self, value: str) -> None:
        self._value = value
        self.selection_start = self.selection_end = len(value)

    @property
    def checked(self) -> bool:
        if self._checked is not None:
            return self._checked
        return "checked" in self.attributes

    @checked.setter
    def checked(self, value: bool) -> None:
        self._checked = bool(value)

    @property
    def options(self) -> List["Element"]:
        return [n for n in self.iter_descendants()
                if isinstance(n, Element) and n.tag_name == "OPTION"]

    @property
    def selected_index(self) -> int:
        options = self.options
        if not options:
            return -1
        if self._selected_index is not None:
            return self._selected_index
        for i, option in enumerate(options):
            if option.has_attribute("selected"):
                return i
        return 0

    @selected_index.setter
    def selected_index(self, index: int) -> None:
        self._selected_index = index

    @property
    def selected_option(self) -> Optional["Element"]:
        index = self.selected_index
        options = self.options
        return options[index] if 0 <= index < len(options) else None

    @property
    def option_value(self) -> str:
        value = self.attributes.get("value")
        return value if value is not None else self.text_content

    def __repr__(self) -> str:
        return f"<{self.tag_name.lower()} {self.attributes!r}>"


class MutationObserver:
    """
    Subtree observer; records queue until ``deliver`` runs.

    ``skip`` is consulted when a record is queued, while the target still
    sits where the mutation happened. Records it accepts are dropped.
    """

    def __init__(self, callback: Callable[[List[MutationRecord]], None],
                 skip: Optional[Callable[[MutationRecord], bool]] = None):
        self.callback = callback
        self.skip = skip
        self.root: Optional[Node] = None
        self._records: List[MutationRecord] = []

    def observe(self, root: Node) -> None:
        if root.owner_document is None and root.node_type != DOCUMENT_NODE:
            raise ValueError("cannot observe a node without a document")
        self.root = root
        document = root if root.node_type == DOCUMENT_NODE else root.owner_document
        document.observers.append(self)

    def disconnect(self) -> None:
        if self.root is not None:
            document = self.root if self.root.node_type == DOCUMENT_NODE else self.root.owner_document
            if self in document.observers:
                document.observers.remove(self)
        self.root = None
        self._records.clear()

    def take_records(self) -> List[MutationRecord]:
        records, self._records = self._records, []
        return records

    def _enqueue(self, record: MutationRecord) -> bool:
        if self.root is None or not self.root.contains(record.target):
            return False
        if self.skip is not None and self.skip(record):
            return False
        self._records.append(record)
        return True

    def deliver(self) -> None:
        records = self.take_records()
        if records:
            self.callback(records)


class Document(Node):
    node_type = DOCUMENT_NODE
    node_name = "#document"

    def __init__(self, title: str = "", doctype: Optional[str] = "html"):
        super().__init__(None)
        self.owner_document = self
        self.title = title
        self.doctype = doctype
        self.observers: List[MutationObserver] = []
        # called once per batch of newly queued records
        self.on_records_queued: Optional[Callable[[], None]] = None
        self._delivery_pending = False
        html = self.create_element("html")
        html.append(self.create_element("head"), self.create_element("body"))
        self.append_child(html)

    @property
    def document_element(self) -> Optional[Element]:
        for child in self.child_nodes:
            if isinstance(child, Element):
                return child
        return None

    @property
    def head(self) -> Element:
        return next(c for c in self.document_element.children if c.tag_name == "HEAD")

    @property
    def body(self) -> Element:
        return next(c for c in self.document_element.children if c.tag_name == "BODY")

    def create_element(self, tag: str, attrs: Optional[Dict[str, str]] = None, *children) -> Element:
        element = Element(tag, attrs, self)
        element.append(*children)
        return element

    def create_text_node(self, data: str) -> Text:
        return Text(data, self)

    def create_comment(self, data: str) -> Comment:
        return Comment(data, self)

    def get_element_by_id(self, element_id: str) -> Optional[Element]:
        for node in self.iter_descendants():
            if isinstance(node, Element) and node.id == element_id:
                return node
        return None

    def queue_record(self, record: MutationRecord) -> None:
        queued = False
        for observer in list(self.observers):
            queued = observer._enqueue(record) or queued
        if queued and not self._delivery_pending:
            self._delivery_pending = True
            if self.on_records_queued is not None:
                self.on_records_queued()

    def deliver_mutations(self) -> None:
        self._delivery_pending = False
        for observer in list(self.observers):
            observer.deliver()
