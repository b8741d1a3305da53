import itertools
import weakref
from typing import Optional


class NodeRegistry:
    """
    Session-scoped node -> integer id table.

    Entries are held weakly: a node dropped from the document and from
    every other reference disappears from the table, its id is never
    handed out again.
    """

    def __init__(self, start: int = 1):
        self._ids: "weakref.WeakKeyDictionary[object, int]" = weakref.WeakKeyDictionary()
        self._counter = itertools.count(start)

    def id_of(self, node) -> int:
        node_id = self._ids.get(node)
        if node_id is None:
            node_id = next(self._counter)
            self._ids[node] = node_id
        return node_id

    def peek(self, node) -> Optional[int]:
        return self._ids.get(node)

    def __len__(self) -> int:
        return len(self._ids)
