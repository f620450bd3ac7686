"""Row <-> model mapping for the menu_items table."""

import sqlite3
import time
from datetime import UTC, datetime
from typing import Any

from menutree.models.node import MenuItem, ResourceLink, UrlLink, Visibility

ITEM_COLUMNS = (
    "n.id, n.tree_id, n.parent_id, n.name, n.custom_url, n.resource_type, "
    "n.resource_id, n.resource_slug, n.fallback_url, n.display_at, n.hide_at, "
    "n.icon, n.target, n.css_class, n.position, n.is_active, n.is_root, n.slug, "
    "n.max_depth, n.lft, n.rgt, n.created_at, n.updated_at"
)

# Depth is never stored: it is the number of ranges containing the node's range.
DEPTH_COLUMN = (
    "(SELECT COUNT(*) FROM menu_items a "
    "WHERE a.tree_id = n.tree_id AND a.lft < n.lft AND a.rgt > n.rgt) AS depth"
)

SELECT_ITEMS = f"SELECT {ITEM_COLUMNS}, {DEPTH_COLUMN} FROM menu_items n "

# Columns a caller may set directly; everything else is structural.
CONTENT_COLUMNS: tuple[str, ...] = (
    "name",
    "custom_url",
    "resource_type",
    "resource_id",
    "resource_slug",
    "fallback_url",
    "display_at",
    "hide_at",
    "icon",
    "target",
    "css_class",
    "is_active",
)


def now_ms() -> int:
    return int(time.time() * 1000)


def to_millis(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def from_millis(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def _link_from_row(row: sqlite3.Row | tuple) -> ResourceLink | UrlLink | None:
    custom_url, resource_type, resource_id, resource_slug, fallback_url = row[4:9]
    if resource_type and resource_id:
        return ResourceLink(
            resource_type=resource_type,
            resource_id=resource_id,
            resource_slug=resource_slug,
            fallback_url=fallback_url,
        )
    if custom_url:
        return UrlLink(url=custom_url)
    return None


def row_to_item(row: sqlite3.Row | tuple) -> MenuItem:
    return MenuItem(
        id=row[0],
        tree_id=row[1],
        parent_id=row[2],
        name=row[3],
        link=_link_from_row(row),
        visibility=Visibility(
            is_active=bool(row[15]),
            display_at=from_millis(row[9]),
            hide_at=from_millis(row[10]),
        ),
        icon=row[11],
        target=row[12],
        css_class=row[13],
        position=row[14],
        is_root=bool(row[16]),
        slug=row[17],
        max_depth=row[18],
        range_start=row[19],
        range_end=row[20],
        created_at=row[21],
        updated_at=row[22],
        depth=row[23],
    )


def content_assignments(fields: dict[str, Any]) -> tuple[str, list[Any]]:
    """Build a ``SET a = ?, b = ?`` fragment for the content columns in ``fields``."""
    columns = [c for c in CONTENT_COLUMNS if c in fields]
    sql = ", ".join(f"{c} = ?" for c in columns)
    return sql, [fields[c] for c in columns]
