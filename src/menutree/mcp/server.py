"""MCP server exposing menu tree browsing and restructuring tools."""

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from menutree.config import resolve_database_path
from menutree.core import menus
from menutree.core.database.schema import connect, migrate_schema
from menutree.core.tree import ordering
from menutree.core.tree.assemble import build_tree, item_to_dict, menu_to_dict, render_outline
from menutree.core.tree.move import move_item
from menutree.core.tree.rebuild import rebuild_subtree
from menutree.core.tree.visibility import filter_visible
from menutree.errors import FieldValidation, MenuTreeError
from menutree.models.node import Menu
from menutree.protocols import ResourceResolverProtocol


def _resolve_menu(conn: sqlite3.Connection, menu: str | int) -> Menu | None:
    """Resolve a menu id or slug."""
    if isinstance(menu, int) or str(menu).isdigit():
        try:
            return menus.get_menu(conn, int(menu))
        except MenuTreeError:
            return None
    return menus.get_menu_by_slug(conn, str(menu))


def _error(e: MenuTreeError) -> dict[str, Any]:
    result: dict[str, Any] = {"error": str(e)}
    if isinstance(e, FieldValidation):
        result["errors"] = e.errors
    return result


# --- Core functions (testable without MCP context) ---


def menu_list_menus(conn: sqlite3.Connection) -> dict[str, Any]:
    """List all menus with item counts."""
    found = menus.list_menus(conn)
    return {
        "menus": [menu_to_dict(m) for m in found],
        "count": len(found),
        "total_items": sum(m.item_count for m in found),
    }


def menu_read_tree(
    conn: sqlite3.Connection,
    *,
    menu: str | int,
    visible_only: bool = False,
    output_format: str = "markdown",
    as_of: datetime | None = None,
    resolver: ResourceResolverProtocol | None = None,
) -> dict[str, Any]:
    """Read a whole menu as an outline or nested JSON.

    Args:
        menu: Menu id or slug.
        visible_only: Only items visible at ``as_of`` (default: now).
        output_format: "markdown" or "json".
        as_of: Instant to evaluate visibility at.
        resolver: Resource resolver used when filtering.
    """
    found = _resolve_menu(conn, menu)
    if found is None:
        return {"error": f"Menu '{menu}' not found."}

    items = list(ordering.tree_items(conn, found.id))
    if visible_only:
        items = filter_visible(items, as_of or datetime.now(UTC), resolver)

    result: dict[str, Any] = {"menu": menu_to_dict(found)}
    if output_format == "markdown":
        result["content"] = render_outline(items)
    else:
        result["items"] = build_tree(items, found.id)
    return result


def menu_move_item(
    conn: sqlite3.Connection,
    *,
    item_id: int,
    parent_id: int,
    position: int | None = None,
) -> dict[str, Any]:
    """Move an item and its subtree under another item of the same menu.

    Args:
        item_id: Item to move.
        parent_id: New parent (a menu root id attaches at the top level).
        position: Index among the new siblings (None = last).
    """
    try:
        item = move_item(conn, item_id, parent_id, position)
    except MenuTreeError as e:
        return _error(e)
    return {"item": item_to_dict(item)}


def menu_rebuild(
    conn: sqlite3.Connection,
    *,
    menu: str | int,
    tree: list[dict[str, Any]],
) -> dict[str, Any]:
    """Replace a menu's whole content with ``tree``.

    Args:
        menu: Menu id or slug.
        tree: Ordered list of ``{id?, name, custom_url?, ..., children?}``.
            Entries with an id keep that item; items left out are deleted.
    """
    found = _resolve_menu(conn, menu)
    if found is None:
        return {"error": f"Menu '{menu}' not found."}
    try:
        items = rebuild_subtree(conn, found.id, tree)
    except MenuTreeError as e:
        return _error(e)
    return {"menu": menu_to_dict(menus.get_menu(conn, found.id)), "items": build_tree(items, found.id)}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    conn: sqlite3.Connection
    db_path: Path


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open database on startup, close on shutdown."""
    db_path = resolve_database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect(db_path)
    try:
        migrate_schema(conn)
        logger.debug("MCP server using {}", db_path)
        yield ServerContext(conn=conn, db_path=db_path)
    finally:
        conn.close()


mcp_server = FastMCP(
    "menu-tree",
    instructions="""\
Menus are ordered trees of items. Every menu has a depth limit; moves or
rebuilds that would nest items deeper than that are rejected as a whole.

1. Call menu_list_menus_tool to find a menu's id and slug.
2. Call menu_read_tree_tool with output_format="json" to get item ids.
3. Use menu_move_item_tool for single moves, or menu_rebuild_tool to
   submit the complete new tree (include the id of every item to keep).
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def menu_list_menus_tool(ctx: Context) -> dict[str, Any]:
    """List all menus with their slugs, depth limits and item counts."""
    return menu_list_menus(_ctx(ctx).conn)


@mcp_server.tool()
async def menu_read_tree_tool(
    ctx: Context,
    menu: str,
    visible_only: bool = False,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Read a menu's items as an outline or nested JSON.

    Args:
        menu: Menu id or slug.
        visible_only: Only items the public would see right now.
        output_format: "markdown" (human-readable) or "json" (with ids and ranges).
    """
    return menu_read_tree(
        _ctx(ctx).conn, menu=menu, visible_only=visible_only, output_format=output_format
    )


@mcp_server.tool()
async def menu_move_item_tool(
    ctx: Context,
    item_id: int,
    parent_id: int,
    position: int | None = None,
) -> dict[str, Any]:
    """Move an item, with everything below it, under a new parent.

    Args:
        item_id: Item to move.
        parent_id: New parent item id (use the menu id for the top level).
        position: Index among the new siblings (omit to append).
    """
    return menu_move_item(_ctx(ctx).conn, item_id=item_id, parent_id=parent_id, position=position)


@mcp_server.tool()
async def menu_rebuild_tool(
    ctx: Context,
    menu: str,
    tree: list[dict[str, Any]],
) -> dict[str, Any]:
    """Replace the complete content of a menu.

    Items omitted from ``tree`` are deleted; entries without an id are created.

    Args:
        menu: Menu id or slug.
        tree: Ordered list of items, each with name and optional id and children.
    """
    return menu_rebuild(_ctx(ctx).conn, menu=menu, tree=tree)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from menutree.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
