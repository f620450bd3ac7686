"""Depth validation for structural changes."""

import sqlite3

from menutree.core.tree.ordering import subtree_height
from menutree.core.tree.shape import TreeShape
from menutree.errors import DepthExceeded
from menutree.models.node import MenuItem


def resulting_depth(conn: sqlite3.Connection, item: MenuItem, new_parent: MenuItem) -> int:
    """Depth of the deepest node of ``item``'s subtree once moved under ``new_parent``."""
    return new_parent.depth + 1 + subtree_height(conn, item)


def validate_move(
    conn: sqlite3.Connection, item: MenuItem, new_parent: MenuItem, limit: int
) -> None:
    """Raise DepthExceeded if moving ``item`` under ``new_parent`` breaks ``limit``."""
    if resulting_depth(conn, item, new_parent) > limit:
        raise DepthExceeded(limit)


def validate_shape(shape: TreeShape, limit: int) -> None:
    """Raise DepthExceeded if the deepest node of a planned shape is too deep."""
    if shape.max_depth() > limit:
        raise DepthExceeded(limit)
