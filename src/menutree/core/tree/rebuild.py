"""Replace a node's whole subtree with a client-submitted tree."""

import sqlite3
from collections.abc import Iterable, Iterator
from typing import Any

from loguru import logger

from menutree.core.database.schema import transaction
from menutree.core.tree.depth import validate_shape
from menutree.core.tree.ordering import (
    apply_shape,
    depth_limit,
    descendants_of,
    find_item,
    get_item,
    get_root,
)
from menutree.core.tree.rows import CONTENT_COLUMNS, content_assignments, now_ms
from menutree.core.tree.shape import TreeShape
from menutree.core.validation import (
    ClientNode,
    merge_item_payload,
    validate_client_tree,
    validate_item_fields,
)
from menutree.errors import DepthExceeded, FieldValidation, InvalidParent, NodeNotFound
from menutree.models.node import MenuItem


def _walk(nodes: Iterable[ClientNode]) -> Iterator[ClientNode]:
    for node in nodes:
        yield node
        yield from _walk(node.children)


def _nesting(nodes: Iterable[ClientNode]) -> int:
    """Levels in a client forest (0 for an empty one)."""
    deepest = 0
    stack = [(node, 1) for node in nodes]
    while stack:
        node, level = stack.pop()
        deepest = max(deepest, level)
        stack.extend((child, level + 1) for child in node.children)
    return deepest


def _check_ids(
    conn: sqlite3.Connection, anchor: MenuItem, existing: dict[int, MenuItem], nodes: list[ClientNode]
) -> None:
    for node in _walk(nodes):
        if node.id is None or node.id in existing:
            continue
        other = find_item(conn, node.id)
        if other is None:
            raise NodeNotFound(node.id)
        if other.tree_id != anchor.tree_id:
            msg = f"Menu item {node.id} does not belong to menu {anchor.tree_id}"
        elif other.id == anchor.id or other.contains(anchor):
            msg = f"Menu item {node.id} would become its own ancestor"
        else:
            msg = f"Menu item {node.id} is not part of the subtree of {anchor.id}"
        raise InvalidParent(msg)


def _merged_fields(
    existing: dict[int, MenuItem], nodes: list[ClientNode]
) -> dict[int, dict[str, Any]]:
    """Validate every entry naming an id against its stored node, collecting all errors."""
    merged: dict[int, dict[str, Any]] = {}
    problems: dict[str, list[str]] = {}
    for node in _walk(nodes):
        if node.id is None:
            continue
        try:
            merged[node.id] = validate_item_fields(
                merge_item_payload(existing[node.id], node.entry), prefix=f"{node.path}."
            )
        except FieldValidation as e:
            problems.update(e.errors)
    if problems:
        raise FieldValidation(problems)
    return merged


class _Planner:
    """Writes one rebuild: updates kept nodes, inserts new ones, plans the shape."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        anchor: MenuItem,
        existing: dict[int, MenuItem],
        kept_fields: dict[int, dict[str, Any]],
        claimed: set[int],
        shape: TreeShape,
    ) -> None:
        self.conn = conn
        self.anchor = anchor
        self.existing = existing
        self.kept_fields = kept_fields
        self.claimed = claimed
        self.shape = shape
        self.kept: set[int] = set()
        self.created = 0
        self._children: dict[int, list[MenuItem]] = {}
        for item in existing.values():
            if item.parent_id is not None:
                self._children.setdefault(item.parent_id, []).append(item)

    def _adopt(self, parent_id: int, position: int, node: ClientNode) -> int | None:
        """Match an id-less entry to the unclaimed node already at its place.

        Resubmitting a tree whose new entries were created by an earlier
        rebuild then leaves the same ids in place.
        """
        matches = [
            item.id
            for item in self._children.get(parent_id, [])
            if item.id not in self.claimed
            and item.position == position
            and item.name == node.fields.get("name")
        ]
        return matches[0] if len(matches) == 1 else None

    def _update(self, item_id: int, fields: dict[str, Any]) -> None:
        assignments, values = content_assignments(fields)
        self.conn.execute(
            f"UPDATE menu_items SET {assignments}, updated_at = ? WHERE id = ?",
            [*values, now_ms(), item_id],
        )

    def _create(self, parent_id: int, position: int, fields: dict[str, Any]) -> int:
        columns = [c for c in CONTENT_COLUMNS if c in fields]
        stamp = now_ms()
        cursor = self.conn.execute(
            f"INSERT INTO menu_items (tree_id, parent_id, position, created_at, updated_at"
            f"{''.join(', ' + c for c in columns)}) VALUES (?, ?, ?, ?, ?{', ?' * len(columns)})",
            [self.anchor.tree_id, parent_id, position, stamp, stamp] + [fields[c] for c in columns],
        )
        assert cursor.lastrowid is not None
        self.created += 1
        return cursor.lastrowid

    def place(self, nodes: tuple[ClientNode, ...] | list[ClientNode], parent_id: int) -> None:
        for position, node in enumerate(nodes):
            item_id = node.id
            if item_id is None:
                item_id = self._adopt(parent_id, position, node)
                if item_id is not None:
                    self.claimed.add(item_id)
                    self.kept_fields[item_id] = validate_item_fields(
                        merge_item_payload(self.existing[item_id], node.entry),
                        prefix=f"{node.path}.",
                    )

            if item_id is None:
                item_id = self._create(parent_id, position, node.fields)
                self.shape.add(item_id, parent_id, position)
            else:
                self._update(item_id, self.kept_fields[item_id])
                self.shape.reparent(item_id, parent_id, position)
                # Relink now so deleting a dropped parent cannot cascade into it.
                self.conn.execute(
                    "UPDATE menu_items SET parent_id = ? WHERE id = ?", (parent_id, item_id)
                )
            self.kept.add(item_id)
            self.place(node.children, item_id)


def rebuild_subtree(
    conn: sqlite3.Connection, root_id: int, tree: Any
) -> tuple[MenuItem, ...]:
    """Make ``tree`` the complete new content of ``root_id``'s subtree.

    Entries with an ``id`` update and move that node, overlaying the keys
    they give on its stored fields; entries without one create a node;
    descendants missing from ``tree`` are deleted with their remaining
    subtrees. Runs as one transaction: any failure leaves
    the subtree exactly as it was.

    Args:
        conn: Database connection.
        root_id: Node whose descendants are replaced (usually a menu root).
        tree: Ordered forest of ``{id?, name, ..., children?}`` dicts.

    Returns:
        The rebuilt descendants in range order.

    Raises:
        FieldValidation: Malformed entries, or kept entries whose merged
            fields are invalid. Raised before any write.
        NodeNotFound: An entry id does not exist.
        InvalidParent: An entry id belongs elsewhere.
        DepthExceeded: The new structure is deeper than the menu allows.
    """
    nodes = validate_client_tree(tree)

    with transaction(conn):
        anchor = get_item(conn, root_id)
        limit = depth_limit(get_root(conn, anchor.tree_id))
        existing = {item.id: item for item in descendants_of(conn, anchor.id)}
        _check_ids(conn, anchor, existing, nodes)
        kept_fields = _merged_fields(existing, nodes)

        shape = TreeShape.load(conn, anchor.tree_id)
        if anchor.depth + _nesting(nodes) > limit:
            raise DepthExceeded(limit)

        claimed = {node.id for node in _walk(nodes) if node.id is not None}
        planner = _Planner(conn, anchor, existing, kept_fields, claimed, shape)
        planner.place(nodes, anchor.id)

        removed = [item_id for item_id in existing if item_id not in planner.kept]
        for item_id in removed:
            shape.discard(item_id)
        conn.executemany("DELETE FROM menu_items WHERE id = ?", [(i,) for i in removed])

        validate_shape(shape, limit)
        apply_shape(conn, shape)

    logger.info(
        "Rebuilt subtree of {}: {} kept, {} created, {} removed",
        root_id, len(planner.kept) - planner.created, planner.created, len(removed),
    )
    return descendants_of(conn, root_id)
