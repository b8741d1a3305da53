import re
from typing import Optional

from .dom import ELEMENT_NODE, Node

MAX_ANCESTORS = 5
MAX_CLASSES = 2

_IDENT_SAFE = re.compile(r"[A-Za-z0-9_\-\u0080-\uffff]")


def css_escape(ident: str) -> str:
    """Escape an identifier for use in a selector, roughly like CSS.escape."""
    out = []
    for i, ch in enumerate(ident):
        if ch == "\0":
            out.append("\ufffd")
        elif i == 0 and ch.isdigit():
            out.append("\\%x " % ord(ch))
        elif i == 1 and ch.isdigit() and ident[0] == "-":
            out.append("\\%x " % ord(ch))
        elif _IDENT_SAFE.match(ch):
            out.append(ch)
        else:
            out.append("\\" + ch)
    if ident == "-":
        return "\\-"
    return "".join(out)


def selector_of(node: Optional[Node]) -> str:
    """
    Best-effort CSS path to ``node``.

    ``#id`` when the element has one; otherwise tag, up to two classes and
    ``:nth-of-type`` (only with same-tag siblings) for the element and at
    most five ancestors. Not guaranteed unique: replay has to cope with a
    selector matching zero or several elements.
    """
    if node is None or node.node_type != ELEMENT_NODE:
        return ""
    if node.id:
        return "#" + css_escape(node.id)

    parts = []
    current = node
    while current is not None and current.node_type == ELEMENT_NODE:
        if current.id:
            parts.insert(0, "#" + css_escape(current.id))
            break

        part = current.tag_name.lower()
        classes = current.class_name.split()[:MAX_CLASSES]
        if classes:
            part += "." + ".".join(css_escape(c) for c in classes)

        parent = current.parent_element
        if parent is not None:
            same_tag = [c for c in parent.children if c.tag_name == current.tag_name]
            if len(same_tag) > 1:
                part += ":nth-of-type(%d)" % (same_tag.index(current) + 1)

        parts.insert(0, part)
        if len(parts) > MAX_ANCESTORS:
            break
        current = parent

    return " > ".join(parts)
