"""Nested-set ordering store: ranges, sibling order and structural reads.

Each tree numbers its own range space. A node's ``[lft, rgt]`` interval
strictly contains the intervals of all its descendants, and sibling
intervals are disjoint and ordered like their positions.
"""

import sqlite3
from typing import Any

from loguru import logger

from menutree.config import DEFAULT_MAX_DEPTH
from menutree.core.database.schema import transaction
from menutree.core.tree.rows import CONTENT_COLUMNS, SELECT_ITEMS, now_ms, row_to_item
from menutree.core.tree.shape import TreeShape
from menutree.errors import DepthExceeded, IntegrityError, InvalidParent, NodeNotFound
from menutree.models.node import IntegrityProblem, MenuItem


def find_item(conn: sqlite3.Connection, item_id: int) -> MenuItem | None:
    row = conn.execute(SELECT_ITEMS + "WHERE n.id = ?", (item_id,)).fetchone()
    return row_to_item(row) if row else None


def get_item(conn: sqlite3.Connection, item_id: int) -> MenuItem:
    """Return the item with ``item_id`` or raise NodeNotFound."""
    item = find_item(conn, item_id)
    if item is None:
        raise NodeNotFound(item_id)
    return item


def get_root(conn: sqlite3.Connection, tree_id: int) -> MenuItem:
    row = conn.execute(
        SELECT_ITEMS + "WHERE n.tree_id = ? AND n.is_root = 1", (tree_id,)
    ).fetchone()
    if row is None:
        raise NodeNotFound(tree_id, "Menu")
    return row_to_item(row)


def depth_limit(root: MenuItem) -> int:
    return root.max_depth if root.max_depth is not None else DEFAULT_MAX_DEPTH


def range_of(conn: sqlite3.Connection, item_id: int) -> tuple[int, int]:
    row = conn.execute("SELECT lft, rgt FROM menu_items WHERE id = ?", (item_id,)).fetchone()
    if row is None:
        raise NodeNotFound(item_id)
    return row[0], row[1]


def children_of(
    conn: sqlite3.Connection, item_id: int, *, ordered: bool = True
) -> tuple[MenuItem, ...]:
    """Direct children, by sibling position unless ``ordered`` is False."""
    sql = SELECT_ITEMS + "WHERE n.parent_id = ?"
    if ordered:
        sql += " ORDER BY n.position, n.lft"
    return tuple(row_to_item(r) for r in conn.execute(sql, (item_id,)).fetchall())


def descendants_of(conn: sqlite3.Connection, item_id: int) -> tuple[MenuItem, ...]:
    """All descendants in range (pre-order) order, excluding the node itself."""
    item = get_item(conn, item_id)
    rows = conn.execute(
        SELECT_ITEMS + "WHERE n.tree_id = ? AND n.lft > ? AND n.rgt < ? ORDER BY n.lft",
        (item.tree_id, item.range_start, item.range_end),
    ).fetchall()
    return tuple(row_to_item(r) for r in rows)


def ancestors_of(conn: sqlite3.Connection, item_id: int) -> tuple[MenuItem, ...]:
    """Ancestors from the tree root down to the immediate parent."""
    item = get_item(conn, item_id)
    rows = conn.execute(
        SELECT_ITEMS + "WHERE n.tree_id = ? AND n.lft < ? AND n.rgt > ? ORDER BY n.lft",
        (item.tree_id, item.range_start, item.range_end),
    ).fetchall()
    return tuple(row_to_item(r) for r in rows)


def tree_items(conn: sqlite3.Connection, tree_id: int) -> tuple[MenuItem, ...]:
    """Every node of a tree, root included, in range order."""
    rows = conn.execute(
        SELECT_ITEMS + "WHERE n.tree_id = ? ORDER BY n.lft", (tree_id,)
    ).fetchall()
    return tuple(row_to_item(r) for r in rows)


def depth_of(conn: sqlite3.Connection, item_id: int) -> int:
    return get_item(conn, item_id).depth


def subtree_height(conn: sqlite3.Connection, item: MenuItem) -> int:
    """Levels below ``item`` (0 for a leaf)."""
    row = conn.execute(
        "SELECT MAX((SELECT COUNT(*) FROM menu_items a "
        "            WHERE a.tree_id = d.tree_id AND a.lft >= ? "
        "              AND a.lft < d.lft AND a.rgt > d.rgt)) "
        "FROM menu_items d WHERE d.tree_id = ? AND d.lft > ? AND d.rgt < ?",
        (item.range_start, item.tree_id, item.range_start, item.range_end),
    ).fetchone()
    return row[0] or 0


def _shift(conn: sqlite3.Connection, tree_id: int, point: int, delta: int) -> None:
    """Move every boundary at or right of ``point`` by ``delta``."""
    conn.execute(
        "UPDATE menu_items SET lft = lft + ? WHERE tree_id = ? AND lft >= ?",
        (delta, tree_id, point),
    )
    conn.execute(
        "UPDATE menu_items SET rgt = rgt + ? WHERE tree_id = ? AND rgt >= ?",
        (delta, tree_id, point),
    )


def write_positions(conn: sqlite3.Connection, ordered_ids: list[int]) -> None:
    conn.executemany(
        "UPDATE menu_items SET position = ? WHERE id = ? AND position != ?",
        [(index, item_id, index) for index, item_id in enumerate(ordered_ids)],
    )


def compact_positions(conn: sqlite3.Connection, parent_id: int) -> None:
    """Renumber a sibling group's positions to 0..k-1, keeping their order."""
    write_positions(conn, [c.id for c in children_of(conn, parent_id)])


def insert(
    conn: sqlite3.Connection,
    *,
    parent_id: int,
    fields: dict[str, Any],
    position: int | None = None,
) -> MenuItem:
    """Insert a new leaf under ``parent_id``.

    Args:
        conn: Database connection.
        parent_id: Existing node to attach under.
        fields: Validated content columns (``name`` required).
        position: Index among the parent's children (None = last).

    Returns:
        The stored item.
    """
    with transaction(conn):
        parent = get_item(conn, parent_id)
        limit = depth_limit(get_root(conn, parent.tree_id))
        if parent.depth + 1 > limit:
            raise DepthExceeded(limit)

        siblings = [c.id for c in children_of(conn, parent.id)]
        index = len(siblings) if position is None else max(0, min(position, len(siblings)))
        if index < len(siblings):
            point = range_of(conn, siblings[index])[0]
        else:
            point = parent.range_end

        _shift(conn, parent.tree_id, point, 2)

        columns = [c for c in CONTENT_COLUMNS if c in fields]
        stamp = now_ms()
        cursor = conn.execute(
            f"INSERT INTO menu_items (tree_id, parent_id, position, lft, rgt, "
            f"created_at, updated_at{''.join(', ' + c for c in columns)}) "
            f"VALUES (?, ?, ?, ?, ?, ?, ?{', ?' * len(columns)})",
            [parent.tree_id, parent.id, index, point, point + 1, stamp, stamp]
            + [fields[c] for c in columns],
        )
        new_id = cursor.lastrowid
        assert new_id is not None
        siblings.insert(index, new_id)
        write_positions(conn, siblings)

    logger.debug("Inserted item {} under {} at position {}", new_id, parent.id, index)
    return get_item(conn, new_id)


def remove(conn: sqlite3.Connection, item_id: int) -> int:
    """Delete a node and its whole subtree; returns the number of rows removed."""
    with transaction(conn):
        item = get_item(conn, item_id)
        width = item.range_end - item.range_start + 1
        if item.is_root:
            deleted = conn.execute(
                "DELETE FROM menu_items WHERE tree_id = ? AND id != ?", (item.tree_id, item.id)
            ).rowcount
            conn.execute("DELETE FROM menu_items WHERE id = ?", (item.id,))
            return deleted + 1

        # Children first so the parent_id cascade has nothing left to do.
        deleted = conn.execute(
            "DELETE FROM menu_items WHERE tree_id = ? AND lft >= ? AND rgt <= ?",
            (item.tree_id, item.range_start, item.range_end),
        ).rowcount
        conn.execute(
            "UPDATE menu_items SET lft = lft - ? WHERE tree_id = ? AND lft > ?",
            (width, item.tree_id, item.range_end),
        )
        conn.execute(
            "UPDATE menu_items SET rgt = rgt - ? WHERE tree_id = ? AND rgt > ?",
            (width, item.tree_id, item.range_end),
        )
        assert item.parent_id is not None
        compact_positions(conn, item.parent_id)

    logger.debug("Removed item {} ({} rows)", item_id, deleted)
    return deleted


def relocate(
    conn: sqlite3.Connection, item: MenuItem, parent: MenuItem, position: int | None
) -> None:
    """Move ``item`` and its subtree under ``parent`` by shifting ranges.

    The subtree is parked in negative range space, the hole it leaves is
    closed, a hole of the same width is opened at the destination and the
    subtree is dropped into it. Validation is the caller's job.
    """
    siblings = [c.id for c in children_of(conn, parent.id) if c.id != item.id]
    index = len(siblings) if position is None else max(0, min(position, len(siblings)))
    if index < len(siblings):
        point = range_of(conn, siblings[index])[0]
    else:
        point = range_of(conn, parent.id)[1]

    lft, rgt = range_of(conn, item.id)
    width = rgt - lft + 1
    tree_id = item.tree_id

    conn.execute(
        "UPDATE menu_items SET lft = -lft, rgt = -rgt "
        "WHERE tree_id = ? AND lft >= ? AND rgt <= ?",
        (tree_id, lft, rgt),
    )
    conn.execute(
        "UPDATE menu_items SET lft = lft - ? WHERE tree_id = ? AND lft > ?",
        (width, tree_id, rgt),
    )
    conn.execute(
        "UPDATE menu_items SET rgt = rgt - ? WHERE tree_id = ? AND rgt > ?",
        (width, tree_id, rgt),
    )
    if point > rgt:
        point -= width
    _shift(conn, tree_id, point, width)
    offset = point - lft
    conn.execute(
        "UPDATE menu_items SET lft = -lft + ?, rgt = -rgt + ? WHERE tree_id = ? AND lft < 0",
        (offset, offset, tree_id),
    )

    old_parent_id = item.parent_id
    conn.execute(
        "UPDATE menu_items SET parent_id = ?, updated_at = ? WHERE id = ?",
        (parent.id, now_ms(), item.id),
    )
    siblings.insert(index, item.id)
    write_positions(conn, siblings)
    if old_parent_id is not None and old_parent_id != parent.id:
        compact_positions(conn, old_parent_id)


def apply_shape(conn: sqlite3.Connection, shape: TreeShape) -> int:
    """Write the shape's parents, positions and ranges; returns rows changed."""
    unreachable = shape.unreachable()
    if unreachable:
        msg = f"Menu item {unreachable[0]} would become its own ancestor"
        raise InvalidParent(msg)

    updates = [
        (parent_id, position, lft, rgt, node_id)
        for node_id, (parent_id, position, lft, rgt) in shape.layout().items()
        if shape.stored(node_id) != (parent_id, position, lft, rgt)
    ]
    conn.executemany(
        "UPDATE menu_items SET parent_id = ?, position = ?, lft = ?, rgt = ? WHERE id = ?",
        updates,
    )
    return len(updates)


def renumber_tree(conn: sqlite3.Connection, tree_id: int) -> int:
    """Recompute every range of a tree from its parent links in one pass."""
    with transaction(conn):
        changed = apply_shape(conn, TreeShape.load(conn, tree_id))
    logger.debug("Renumbered tree {}: {} rows changed", tree_id, changed)
    return changed


def check_integrity(conn: sqlite3.Connection, tree_id: int) -> list[IntegrityProblem]:
    """Compare stored ranges and positions against the parent links."""
    problems: list[IntegrityProblem] = []
    items = {item.id: item for item in tree_items(conn, tree_id)}
    if tree_id not in items or not items[tree_id].is_root:
        return [IntegrityProblem(tree_id, "tree has no root")]
    roots = [i for i in items.values() if i.is_root]
    if len(roots) != 1:
        problems.append(IntegrityProblem(tree_id, f"tree has {len(roots)} roots"))

    shape = TreeShape.load(conn, tree_id)
    for node_id in shape.unreachable():
        problems.append(IntegrityProblem(node_id, "not reachable from the root"))

    root = items[tree_id]
    for item in items.values():
        if item.range_start >= item.range_end:
            problems.append(IntegrityProblem(item.id, "range start is not before range end"))
        if item.is_root:
            continue
        if not root.contains(item):
            problems.append(IntegrityProblem(item.id, "range is outside the root range"))
        parent = items.get(item.parent_id) if item.parent_id is not None else None
        if parent is None:
            problems.append(IntegrityProblem(item.id, "parent is missing from the tree"))
            continue
        if not parent.contains(item):
            problems.append(IntegrityProblem(item.id, "range is not inside the parent range"))
        if item.depth != parent.depth + 1:
            problems.append(IntegrityProblem(item.id, "range nesting disagrees with parent link"))

    limit = depth_limit(root)
    for item in items.values():
        if item.depth > limit:
            problems.append(IntegrityProblem(item.id, f"depth {item.depth} exceeds {limit}"))

    groups: dict[int, list[MenuItem]] = {}
    for item in items.values():
        if item.parent_id is not None:
            groups.setdefault(item.parent_id, []).append(item)
    for siblings in groups.values():
        siblings.sort(key=lambda s: s.range_start)
        positions = [s.position for s in siblings]
        if len(set(positions)) != len(positions):
            problems.append(IntegrityProblem(siblings[0].parent_id or 0, "duplicate sibling positions"))
        if positions != sorted(positions):
            problems.append(
                IntegrityProblem(siblings[0].parent_id or 0, "sibling order disagrees with positions")
            )
        for left, right in zip(siblings, siblings[1:], strict=False):
            if left.range_end >= right.range_start:
                problems.append(IntegrityProblem(right.id, f"range overlaps sibling {left.id}"))
    return problems


def assert_integrity(conn: sqlite3.Connection, tree_id: int) -> None:
    problems = check_integrity(conn, tree_id)
    if problems:
        details = "; ".join(f"{p.node_id}: {p.message}" for p in problems[:5])
        msg = f"Tree {tree_id} is broken: {details}"
        raise IntegrityError(msg)


def fix_tree(conn: sqlite3.Connection, tree_id: int) -> int:
    """Rebuild ranges and positions from parent links, like a full rebuild."""
    changed = renumber_tree(conn, tree_id)
    logger.info("Fixed tree {}: {} rows rewritten", tree_id, changed)
    return changed
