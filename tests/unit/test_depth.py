"""Tests for depth validation."""

import sqlite3

import pytest

from menutree.core.menus import create_item, create_menu
from menutree.core.tree.depth import resulting_depth, validate_move, validate_shape
from menutree.core.tree.move import move_item
from menutree.core.tree.ordering import get_item
from menutree.core.tree.shape import TreeShape
from menutree.errors import DepthExceeded
from tests.unit.conftest import SeededMenu
from tests.unit.invariants import assert_tree_invariants, snapshot


def test_resulting_depth_counts_moved_subtree_height(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    shoes = get_item(conn, seeded.shoes)
    assert resulting_depth(conn, shoes, get_item(conn, seeded.root)) == 2
    assert resulting_depth(conn, shoes, get_item(conn, seeded.hats)) == 4


def test_validate_move_accepts_move_at_limit(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    validate_move(conn, get_item(conn, seeded.home), get_item(conn, seeded.shoes), 3)


def test_validate_move_rejects_subtree_that_ends_too_deep(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    with pytest.raises(DepthExceeded) as exc_info:
        validate_move(conn, get_item(conn, seeded.shoes), get_item(conn, seeded.hats), 3)
    assert exc_info.value.limit == 3


def test_move_under_deepest_node_is_rejected_and_tree_unchanged(
    conn: sqlite3.Connection,
) -> None:
    menu = create_menu(conn, {"name": "Small", "max_depth": 2})
    a = create_item(conn, menu.id, {"name": "A"})
    b = create_item(conn, menu.id, {"name": "B", "parent_id": a.id})
    c = create_item(conn, menu.id, {"name": "C"})
    before = snapshot(conn, menu.id)

    with pytest.raises(DepthExceeded, match="Moving item would exceed maximum depth limit of 2"):
        move_item(conn, c.id, b.id)

    assert snapshot(conn, menu.id) == before
    assert_tree_invariants(conn, menu.id)


def test_validate_shape_uses_deepest_planned_node(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    shape = TreeShape.load(conn, seeded.root)
    validate_shape(shape, 3)

    shape.reparent(seeded.about, seeded.sneakers, 0)
    with pytest.raises(DepthExceeded):
        validate_shape(shape, 3)
