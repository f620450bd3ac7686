"""In-memory parent/child shape of one tree.

Batch operations plan the new structure here, validate it, and only then
write parent links, sibling positions and ranges back in one pass.
"""

import sqlite3
from collections.abc import Iterable, Iterator
from dataclasses import dataclass


@dataclass
class _Entry:
    parent_id: int | None
    position: int
    lft: int
    rgt: int
    # Set for entries placed by the current request; their position is the
    # index they should end up at.
    requested: bool = False
    stored: tuple[int | None, int, int, int] = (None, -1, 0, 0)


class TreeShape:
    """Parent links and sibling order for every node of a tree."""

    def __init__(self, root_id: int, rows: Iterable[tuple[int, int | None, int, int, int]]) -> None:
        self.root_id = root_id
        self._entries: dict[int, _Entry] = {
            node_id: _Entry(
                parent_id=parent_id,
                position=position,
                lft=lft,
                rgt=rgt,
                stored=(parent_id, position, lft, rgt),
            )
            for node_id, parent_id, position, lft, rgt in rows
        }
        if root_id not in self._entries:
            msg = f"Root {root_id} is not part of the shape"
            raise ValueError(msg)
        self._children: dict[int, list[int]] | None = None

    @classmethod
    def load(cls, conn: sqlite3.Connection, tree_id: int) -> "TreeShape":
        rows = conn.execute(
            "SELECT id, parent_id, position, lft, rgt FROM menu_items WHERE tree_id = ?",
            (tree_id,),
        ).fetchall()
        return cls(tree_id, rows)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._entries

    def add(self, node_id: int, parent_id: int, position: int) -> None:
        self._entries[node_id] = _Entry(parent_id, position, 0, 0, requested=True)
        self._children = None

    def discard(self, node_id: int) -> None:
        self._entries.pop(node_id, None)
        self._children = None

    def reparent(self, node_id: int, parent_id: int, position: int) -> None:
        entry = self._entries[node_id]
        entry.parent_id = parent_id
        entry.position = position
        entry.requested = True
        self._children = None

    def children(self, node_id: int) -> list[int]:
        if self._children is None:
            grouped: dict[int, list[int]] = {}
            for child_id, entry in self._entries.items():
                if entry.parent_id is not None:
                    grouped.setdefault(entry.parent_id, []).append(child_id)
            self._children = {
                parent_id: self._order(siblings) for parent_id, siblings in grouped.items()
            }
        return self._children.get(node_id, [])

    def _order(self, siblings: list[int]) -> list[int]:
        """Untouched siblings keep their order; placed ones go to their index."""
        entries = self._entries
        kept = sorted(
            (s for s in siblings if not entries[s].requested),
            key=lambda s: (entries[s].position, entries[s].lft, s),
        )
        placed = sorted(
            (s for s in siblings if entries[s].requested),
            key=lambda s: (entries[s].position, s),
        )
        for node_id in placed:
            kept.insert(max(0, entries[node_id].position), node_id)
        return kept

    def walk(self) -> Iterator[tuple[int, int]]:
        """Yield ``(node_id, depth)`` in pre-order, depth relative to the root."""
        stack = [(self.root_id, 0)]
        while stack:
            node_id, depth = stack.pop()
            yield node_id, depth
            stack.extend((child, depth + 1) for child in reversed(self.children(node_id)))

    def unreachable(self) -> list[int]:
        """Nodes that cannot be reached from the root, i.e. parts of a cycle."""
        seen = {node_id for node_id, _ in self.walk()}
        return sorted(node_id for node_id in self._entries if node_id not in seen)

    def max_depth(self) -> int:
        return max(depth for _, depth in self.walk())

    def assign_ranges(self, start: int = 1) -> dict[int, tuple[int, int]]:
        """Number the tree in order: start on entry, end after all children."""
        ranges: dict[int, tuple[int, int]] = {}
        counter = start
        stack: list[tuple[int, bool]] = [(self.root_id, False)]
        while stack:
            node_id, closing = stack.pop()
            if closing:
                ranges[node_id] = (ranges[node_id][0], counter)
                counter += 1
                continue
            ranges[node_id] = (counter, counter)
            counter += 1
            stack.append((node_id, True))
            stack.extend((child, False) for child in reversed(self.children(node_id)))
        return ranges

    def layout(self) -> dict[int, tuple[int | None, int, int, int]]:
        """Target ``(parent_id, position, lft, rgt)`` for every reachable node.

        Sibling positions come out contiguous from 0.
        """
        ranges = self.assign_ranges()
        positions = {self.root_id: 0}
        for node_id in ranges:
            for index, child in enumerate(self.children(node_id)):
                positions[child] = index
        return {
            node_id: (self._entries[node_id].parent_id, positions[node_id], lft, rgt)
            for node_id, (lft, rgt) in ranges.items()
        }

    def stored(self, node_id: int) -> tuple[int | None, int, int, int]:
        """What the database holds for the node, before any planned change."""
        return self._entries[node_id].stored
