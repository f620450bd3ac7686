"""Menu lifecycle and single-item edits.

A menu is the root node of a tree; its id doubles as the tree id. Items
are created as leaves under a parent in that tree.
"""

import sqlite3
from typing import Any

from loguru import logger

from menutree.config import DEFAULT_MAX_DEPTH
from menutree.core.database.schema import transaction
from menutree.core.tree import ordering
from menutree.core.tree.rows import SELECT_ITEMS, content_assignments, now_ms, row_to_item
from menutree.core.validation import (
    merge_item_payload,
    slugify,
    validate_item_fields,
    validate_menu_fields,
)
from menutree.errors import FieldValidation, InvalidParent, NodeNotFound
from menutree.models.node import Menu, MenuItem


def _to_menu(root: MenuItem) -> Menu:
    return Menu(
        id=root.id,
        name=root.name,
        slug=root.slug or "",
        max_depth=ordering.depth_limit(root),
        is_active=root.visibility.is_active,
        item_count=(root.range_end - root.range_start - 1) // 2,
        created_at=root.created_at,
        updated_at=root.updated_at,
    )


def _slug_taken(conn: sqlite3.Connection, slug: str, *, exclude_id: int | None = None) -> bool:
    row = conn.execute(
        "SELECT id FROM menu_items WHERE slug = ? AND id IS NOT ?", (slug, exclude_id)
    ).fetchone()
    return row is not None


def create_menu(conn: sqlite3.Connection, payload: dict[str, Any]) -> Menu:
    """Create a new tree consisting of just its root node."""
    fields = validate_menu_fields(payload)
    slug = fields.get("slug") or slugify(fields["name"])
    if not slug:
        raise FieldValidation({"slug": ["A slug could not be derived from the name."]})

    with transaction(conn):
        if _slug_taken(conn, slug):
            raise FieldValidation({"slug": ["The slug has already been taken."]})
        stamp = now_ms()
        cursor = conn.execute(
            "INSERT INTO menu_items (name, slug, max_depth, is_active, is_root, position, "
            "lft, rgt, created_at, updated_at) VALUES (?, ?, ?, ?, 1, 0, 1, 2, ?, ?)",
            (
                fields["name"],
                slug,
                fields.get("max_depth", DEFAULT_MAX_DEPTH),
                fields.get("is_active", True),
                stamp,
                stamp,
            ),
        )
        menu_id = cursor.lastrowid
        assert menu_id is not None
        conn.execute("UPDATE menu_items SET tree_id = id WHERE id = ?", (menu_id,))

    logger.info("Created menu {} ({!r})", menu_id, slug)
    return get_menu(conn, menu_id)


def list_menus(conn: sqlite3.Connection) -> list[Menu]:
    rows = conn.execute(SELECT_ITEMS + "WHERE n.is_root = 1 ORDER BY n.id").fetchall()
    return [_to_menu(row_to_item(r)) for r in rows]


def get_menu(conn: sqlite3.Connection, menu_id: int) -> Menu:
    return _to_menu(get_menu_root(conn, menu_id))


def get_menu_root(conn: sqlite3.Connection, menu_id: int) -> MenuItem:
    """Return the root node of menu ``menu_id`` or raise NodeNotFound."""
    item = ordering.find_item(conn, menu_id)
    if item is None or not item.is_root:
        raise NodeNotFound(menu_id, "Menu")
    return item


def get_menu_by_slug(conn: sqlite3.Connection, slug: str) -> Menu | None:
    row = conn.execute(
        SELECT_ITEMS + "WHERE n.slug = ? AND n.is_root = 1", (slug,)
    ).fetchone()
    return _to_menu(row_to_item(row)) if row else None


def update_menu(conn: sqlite3.Connection, menu_id: int, payload: dict[str, Any]) -> Menu:
    """Update menu attributes; only the keys present in ``payload`` change."""
    fields = validate_menu_fields(payload, partial=True)
    with transaction(conn):
        root = get_menu_root(conn, menu_id)
        if "slug" in fields and _slug_taken(conn, fields["slug"], exclude_id=menu_id):
            raise FieldValidation({"slug": ["The slug has already been taken."]})
        if "max_depth" in fields:
            deepest = ordering.subtree_height(conn, root)
            if deepest > fields["max_depth"]:
                msg = f"The menu already has items at depth {deepest}."
                raise FieldValidation({"max_depth": [msg]})
        if fields:
            sql = ", ".join(f"{key} = ?" for key in fields)
            conn.execute(
                f"UPDATE menu_items SET {sql}, updated_at = ? WHERE id = ?",
                [*fields.values(), now_ms(), menu_id],
            )
    return get_menu(conn, menu_id)


def delete_menu(conn: sqlite3.Connection, menu_id: int) -> int:
    """Delete a menu and every item in it; returns rows removed."""
    get_menu_root(conn, menu_id)
    deleted = ordering.remove(conn, menu_id)
    logger.info("Deleted menu {} ({} rows)", menu_id, deleted)
    return deleted


def create_item(conn: sqlite3.Connection, menu_id: int, payload: dict[str, Any]) -> MenuItem:
    """Create one item in a menu, under ``parent_id`` or the root.

    ``position`` (optional) is the index among the new siblings.
    """
    fields = validate_item_fields(payload)
    parent_id = payload.get("parent_id")
    position = payload.get("position")
    problems: dict[str, list[str]] = {}
    if parent_id is not None and (not isinstance(parent_id, int) or isinstance(parent_id, bool)):
        problems["parent_id"] = ["The parent_id must be an integer."]
    if position is not None and (
        not isinstance(position, int) or isinstance(position, bool) or position < 0
    ):
        problems["position"] = ["The position must be an integer of at least 0."]
    if problems:
        raise FieldValidation(problems)

    with transaction(conn):
        root = get_menu_root(conn, menu_id)
        parent = root if parent_id is None else ordering.get_item(conn, parent_id)
        if parent.tree_id != root.tree_id:
            msg = f"Menu item {parent.id} does not belong to menu {root.id}"
            raise InvalidParent(msg)
        item = ordering.insert(conn, parent_id=parent.id, fields=fields, position=position)

    logger.info("Created menu item {} in menu {}", item.id, menu_id)
    return item


def update_item(conn: sqlite3.Connection, item_id: int, payload: dict[str, Any]) -> MenuItem:
    """Edit non-structural fields of one item.

    Keys missing from ``payload`` keep their stored value; structural keys
    (``parent_id``, ``position``) are ignored here.
    """
    if not isinstance(payload, dict):
        raise FieldValidation({"item": ["Expected an object."]})
    item = ordering.get_item(conn, item_id)
    fields = validate_item_fields(merge_item_payload(item, payload))

    with transaction(conn):
        ordering.get_item(conn, item_id)
        assignments, values = content_assignments(fields)
        conn.execute(
            f"UPDATE menu_items SET {assignments}, updated_at = ? WHERE id = ?",
            [*values, now_ms(), item_id],
        )
    logger.debug("Updated menu item {}", item_id)
    return ordering.get_item(conn, item_id)


def delete_item(conn: sqlite3.Connection, item_id: int) -> int:
    """Delete an item and its subtree; returns rows removed."""
    deleted = ordering.remove(conn, item_id)
    logger.info("Deleted menu item {} ({} rows)", item_id, deleted)
    return deleted
