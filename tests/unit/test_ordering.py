"""Tests for the nested-set ordering store."""

import sqlite3

import pytest

from menutree.core.tree.ordering import (
    ancestors_of,
    check_integrity,
    children_of,
    depth_of,
    descendants_of,
    fix_tree,
    get_item,
    insert,
    range_of,
    remove,
    renumber_tree,
    subtree_height,
    tree_items,
)
from menutree.errors import DepthExceeded, NodeNotFound
from tests.unit.conftest import SeededMenu, seed_menu
from tests.unit.invariants import assert_tree_invariants, snapshot


def test_seeded_ranges_are_consecutive(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    assert range_of(conn, seeded.root) == (1, 14)
    assert range_of(conn, seeded.home) == (2, 3)
    assert range_of(conn, seeded.products) == (4, 11)
    assert range_of(conn, seeded.shoes) == (5, 8)
    assert range_of(conn, seeded.sneakers) == (6, 7)
    assert range_of(conn, seeded.hats) == (9, 10)
    assert range_of(conn, seeded.about) == (12, 13)
    assert_tree_invariants(conn, seeded.root)


def test_depth_is_derived_from_ranges(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    assert depth_of(conn, seeded.root) == 0
    assert depth_of(conn, seeded.products) == 1
    assert depth_of(conn, seeded.shoes) == 2
    assert depth_of(conn, seeded.sneakers) == 3


def test_children_of_is_ordered_by_position(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    names = [c.name for c in children_of(conn, seeded.root)]
    assert names == ["Home", "Products", "About"]
    assert [c.position for c in children_of(conn, seeded.root)] == [0, 1, 2]


def test_children_of_unordered_returns_same_set(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    ids = {c.id for c in children_of(conn, seeded.products, ordered=False)}
    assert ids == {seeded.shoes, seeded.hats}


def test_descendants_of_returns_preorder(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    names = [d.name for d in descendants_of(conn, seeded.products)]
    assert names == ["Shoes", "Sneakers", "Hats"]


def test_ancestors_of_runs_root_to_parent(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    ids = [a.id for a in ancestors_of(conn, seeded.sneakers)]
    assert ids == [seeded.root, seeded.products, seeded.shoes]
    assert ancestors_of(conn, seeded.root) == ()


def test_range_of_missing_node_raises(conn: sqlite3.Connection) -> None:
    with pytest.raises(NodeNotFound) as exc_info:
        range_of(conn, 999)
    assert exc_info.value.node_id == 999


def test_subtree_height(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    assert subtree_height(conn, get_item(conn, seeded.products)) == 2
    assert subtree_height(conn, get_item(conn, seeded.shoes)) == 1
    assert subtree_height(conn, get_item(conn, seeded.home)) == 0


def test_insert_at_position_shifts_right_neighbours(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    item = insert(conn, parent_id=seeded.root, fields={"name": "Blog"}, position=1)

    assert item.position == 1
    assert [c.name for c in children_of(conn, seeded.root)] == ["Home", "Blog", "Products", "About"]
    assert range_of(conn, item.id) == (4, 5)
    assert range_of(conn, seeded.products) == (6, 13)
    assert range_of(conn, seeded.root) == (1, 16)
    assert_tree_invariants(conn, seeded.root)


def test_insert_position_past_end_appends(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    item = insert(conn, parent_id=seeded.products, fields={"name": "Bags"}, position=50)
    assert item.position == 2
    assert [c.name for c in children_of(conn, seeded.products)] == ["Shoes", "Hats", "Bags"]
    assert_tree_invariants(conn, seeded.root)


def test_insert_beyond_depth_limit_leaves_tree_unchanged(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    before = snapshot(conn, seeded.root)

    with pytest.raises(DepthExceeded, match="maximum depth limit of 3"):
        insert(conn, parent_id=seeded.sneakers, fields={"name": "Too deep"})

    assert snapshot(conn, seeded.root) == before


def test_remove_deletes_subtree_and_closes_gap(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    deleted = remove(conn, seeded.shoes)

    assert deleted == 2
    with pytest.raises(NodeNotFound):
        get_item(conn, seeded.sneakers)
    assert range_of(conn, seeded.products) == (4, 7)
    assert range_of(conn, seeded.hats) == (5, 6)
    assert get_item(conn, seeded.hats).position == 0
    assert range_of(conn, seeded.root) == (1, 10)
    assert_tree_invariants(conn, seeded.root)


def test_remove_root_deletes_whole_tree(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    other = seed_menu(conn, slug="footer")

    assert remove(conn, seeded.root) == 7

    assert tree_items(conn, seeded.root) == ()
    assert len(tree_items(conn, other.root)) == 7
    assert_tree_invariants(conn, other.root)


def test_trees_number_ranges_independently(conn: sqlite3.Connection, seeded: SeededMenu) -> None:
    other = seed_menu(conn, slug="footer")
    assert range_of(conn, other.root) == (1, 14)
    insert(conn, parent_id=other.root, fields={"name": "Extra"}, position=0)
    assert range_of(conn, seeded.home) == (2, 3)
    assert_tree_invariants(conn, seeded.root)
    assert_tree_invariants(conn, other.root)


def test_check_integrity_reports_corrupted_ranges(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    conn.execute("UPDATE menu_items SET lft = 30, rgt = 31 WHERE id = ?", (seeded.hats,))
    conn.commit()

    problems = check_integrity(conn, seeded.root)

    assert problems
    assert any(p.node_id == seeded.hats for p in problems)


def test_fix_tree_restores_ranges_from_parent_links(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    conn.execute("UPDATE menu_items SET lft = 0, rgt = 0 WHERE tree_id = ?", (seeded.root,))
    conn.commit()

    fix_tree(conn, seeded.root)

    assert check_integrity(conn, seeded.root) == []
    assert range_of(conn, seeded.products) == (4, 11)
    assert_tree_invariants(conn, seeded.root)


def test_renumber_tree_on_healthy_tree_changes_nothing(
    conn: sqlite3.Connection, seeded: SeededMenu
) -> None:
    assert renumber_tree(conn, seeded.root) == 0
