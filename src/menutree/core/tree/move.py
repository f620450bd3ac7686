"""Moving nodes: single relocations and batch reorders."""

import sqlite3
from dataclasses import dataclass

from loguru import logger

from menutree.core.database.schema import transaction
from menutree.core.tree.depth import validate_move, validate_shape
from menutree.core.tree.ordering import (
    apply_shape,
    depth_limit,
    find_item,
    get_item,
    get_root,
    relocate,
)
from menutree.core.tree.shape import TreeShape
from menutree.errors import InvalidParent, NodeNotFound
from menutree.models.node import MenuItem


@dataclass(frozen=True)
class MoveRequest:
    """One entry of a reorder batch. ``parent_id`` None means the menu root."""

    id: int
    position: int
    parent_id: int | None = None


def _check_target(item: MenuItem, parent: MenuItem) -> None:
    if item.is_root:
        msg = f"Menu item {item.id} is a menu root and cannot be moved"
        raise InvalidParent(msg)
    if parent.tree_id != item.tree_id:
        msg = f"Menu item {parent.id} does not belong to menu {item.tree_id}"
        raise InvalidParent(msg)
    if parent.id == item.id or item.contains(parent):
        msg = f"Menu item {item.id} cannot be moved under itself or its descendant {parent.id}"
        raise InvalidParent(msg)


def move_item(
    conn: sqlite3.Connection,
    item_id: int,
    new_parent_id: int,
    new_position: int | None = None,
) -> MenuItem:
    """Relocate one node and its subtree.

    Args:
        conn: Database connection.
        item_id: Node to move.
        new_parent_id: Node in the same tree to move under.
        new_position: Index among the new siblings (None = last).

    Returns:
        The moved item as stored afterwards.

    Raises:
        NodeNotFound: Either id does not exist.
        InvalidParent: Cross-tree target, a cycle, or moving a root.
        DepthExceeded: The subtree would end up below the depth limit.
    """
    with transaction(conn):
        item = get_item(conn, item_id)
        parent = get_item(conn, new_parent_id)
        _check_target(item, parent)
        validate_move(conn, item, parent, depth_limit(get_root(conn, item.tree_id)))
        relocate(conn, item, parent, new_position)

    logger.info("Moved item {} under {} at position {}", item_id, new_parent_id, new_position)
    return get_item(conn, item_id)


def reorder_items(
    conn: sqlite3.Connection, root_id: int, moves: list[MoveRequest]
) -> int:
    """Apply a batch of moves to one menu as a single transaction.

    All moves are planned together, the result is checked for cycles and
    depth, and then every parent link, sibling position and range of the
    tree is reconciled in one pass.

    Returns:
        Number of rows whose structure changed.
    """
    with transaction(conn):
        root = get_root(conn, root_id)
        shape = TreeShape.load(conn, root.tree_id)

        for move in moves:
            parent_id = move.parent_id if move.parent_id is not None else root.id
            for node_id in (move.id, parent_id):
                if node_id in shape:
                    continue
                if find_item(conn, node_id) is None:
                    raise NodeNotFound(node_id)
                msg = f"Menu item {node_id} does not belong to menu {root.id}"
                raise InvalidParent(msg)
            if move.id == root.id:
                msg = f"Menu item {root.id} is a menu root and cannot be moved"
                raise InvalidParent(msg)
            if move.id == parent_id:
                msg = f"Menu item {move.id} cannot be its own parent"
                raise InvalidParent(msg)
            shape.reparent(move.id, parent_id, move.position)

        unreachable = shape.unreachable()
        if unreachable:
            msg = f"Menu item {unreachable[0]} would become its own ancestor"
            raise InvalidParent(msg)
        validate_shape(shape, depth_limit(root))
        changed = apply_shape(conn, shape)

    logger.info("Reordered menu {}: {} moves, {} rows changed", root_id, len(moves), changed)
    return changed
