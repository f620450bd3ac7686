"""CLI for menu trees (manage menus, inspect trees, run servers)."""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from menutree.config import resolve_database_path, resolve_data_directory
from menutree.core import menus
from menutree.core.database.schema import connect, migrate_schema
from menutree.core.tree import ordering
from menutree.core.tree.assemble import render_outline
from menutree.errors import FieldValidation, MenuTreeError
from menutree.logging_config import configure_logging
from menutree.store import TreeStore

app = typer.Typer(help="Menu trees: nested, ordered, depth-limited menus.")

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Directory holding the menu database"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _db_path(data_dir: Path | None) -> Path:
    return resolve_database_path(data_dir)


@contextmanager
def _open_db(data_dir: Path | None) -> Iterator[sqlite3.Connection]:
    """Open the menu database, failing if it doesn't exist, and report errors."""
    db_path = _db_path(data_dir)
    if not db_path.exists():
        logger.error("Menu database not found: {}. Run 'init' first.", db_path)
        raise typer.Exit(1)
    conn = connect(db_path)
    try:
        migrate_schema(conn)
        yield conn
    except FieldValidation as e:
        for key, messages in e.errors.items():
            for message in messages:
                logger.error("{}: {}", key, message)
        raise typer.Exit(1) from e
    except MenuTreeError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from e
    finally:
        conn.close()


def _find_menu(conn: sqlite3.Connection, menu: str) -> int:
    """Resolve a menu id or slug."""
    if menu.isdigit():
        return menus.get_menu(conn, int(menu)).id
    found = menus.get_menu_by_slug(conn, menu)
    if found is None:
        logger.error("Menu '{}' not found", menu)
        raise typer.Exit(1)
    return found.id


@app.command()
def init(data_dir: DataDirOption = None) -> None:
    """Create the menu database."""
    dst = data_dir or resolve_data_directory()
    dst.mkdir(parents=True, exist_ok=True)
    db_path = _db_path(dst)
    conn = connect(db_path)
    try:
        migrate_schema(conn)
    finally:
        conn.close()
    typer.echo(f"Initialised {db_path}")


@app.command(name="create-menu")
def create_menu(
    name: str = typer.Argument(..., help="Menu name"),
    slug: Annotated[str | None, typer.Option("--slug", "-s", help="Menu slug")] = None,
    max_depth: Annotated[
        int | None, typer.Option("--max-depth", "-m", help="Maximum nesting depth")
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Create a new, empty menu."""
    payload: dict[str, object] = {"name": name}
    if slug:
        payload["slug"] = slug
    if max_depth is not None:
        payload["max_depth"] = max_depth
    with _open_db(data_dir) as conn:
        menu = menus.create_menu(conn, payload)
        typer.echo(f"Created menu '{menu.name}' [id={menu.id} slug={menu.slug}]")


@app.command(name="menus")
def list_menus(
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List all menus."""
    with _open_db(data_dir) as conn:
        found = menus.list_menus(conn)
        if output_json:
            data = [
                {
                    "id": m.id,
                    "name": m.name,
                    "slug": m.slug,
                    "max_depth": m.max_depth,
                    "is_active": m.is_active,
                    "item_count": m.item_count,
                }
                for m in found
            ]
            typer.echo(json.dumps(data, indent=2))
            return
        typer.echo(f"{len(found)} menus:\n")
        for m in found:
            state = "" if m.is_active else " (inactive)"
            typer.echo(
                f"  {m.name}{state} - {m.item_count} items, max depth {m.max_depth}"
                f"  [id={m.id} slug={m.slug}]"
            )


@app.command()
def add(
    menu: str = typer.Argument(..., help="Menu id or slug"),
    name: str = typer.Argument(..., help="Item name"),
    parent: Annotated[
        int | None, typer.Option("--parent", "-p", help="Parent item id (default: menu root)")
    ] = None,
    url: Annotated[str | None, typer.Option("--url", "-u", help="Link URL")] = None,
    position: Annotated[
        int | None, typer.Option("--position", help="Index among siblings (default: last)")
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Add an item to a menu."""
    with _open_db(data_dir) as conn:
        store = TreeStore(conn, _find_menu(conn, menu))
        fields: dict[str, object] = {"name": name}
        if url:
            fields["custom_url"] = url
        item = store.insert(fields, parent_id=parent, position=position)
        typer.echo(f"Added '{item.name}' [id={item.id} depth={item.depth}]")


@app.command()
def show(
    menu: str = typer.Argument(..., help="Menu id or slug"),
    visible: bool = typer.Option(False, "--visible", help="Only items visible right now"),
    data_dir: DataDirOption = None,
) -> None:
    """Print a menu as an indented outline."""
    with _open_db(data_dir) as conn:
        store = TreeStore(conn, _find_menu(conn, menu))
        items = store.visible_items(datetime.now(UTC)) if visible else list(store.items())
        outline = render_outline(items)
        typer.echo(outline if outline else "(nothing visible)")


@app.command()
def move(
    item_id: int = typer.Argument(..., help="Item to move"),
    parent_id: int = typer.Argument(..., help="New parent item id"),
    position: Annotated[
        int | None, typer.Option("--position", help="Index among new siblings (default: last)")
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Move an item (and its subtree) under another parent."""
    with _open_db(data_dir) as conn:
        store = TreeStore(conn, ordering.get_item(conn, item_id).tree_id)
        item = store.move(item_id, parent_id, position)
        typer.echo(f"Moved '{item.name}' under {parent_id} at position {item.position}")


@app.command()
def delete(
    item_id: int = typer.Argument(..., help="Item (or menu root) to delete"),
    data_dir: DataDirOption = None,
) -> None:
    """Delete an item and everything below it."""
    with _open_db(data_dir) as conn:
        deleted = menus.delete_item(conn, item_id)
        typer.echo(f"Deleted {deleted} items")


@app.command()
def check(
    menu: Annotated[str | None, typer.Argument(help="Menu id or slug (default: all)")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Verify ranges, positions and depth limits; exits 1 on problems."""
    with _open_db(data_dir) as conn:
        tree_ids = [_find_menu(conn, menu)] if menu else [m.id for m in menus.list_menus(conn)]
        broken = 0
        for tree_id in tree_ids:
            problems = TreeStore(conn, tree_id).check()
            if not problems:
                typer.echo(f"Menu {tree_id}: ok")
                continue
            broken += 1
            typer.echo(f"Menu {tree_id}: {len(problems)} problems")
            for problem in problems:
                typer.echo(f"  item {problem.node_id}: {problem.message}")
    if broken:
        raise typer.Exit(1)


@app.command()
def fix(
    menu: str = typer.Argument(..., help="Menu id or slug"),
    data_dir: DataDirOption = None,
) -> None:
    """Recompute ranges and positions from the parent links."""
    with _open_db(data_dir) as conn:
        changed = TreeStore(conn, _find_menu(conn, menu)).fix()
        typer.echo(f"Rewrote {changed} items")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(5000, "--port", "-p", help="Port to listen on"),
    data_dir: DataDirOption = None,
) -> None:
    """Start the HTTP API (Flask development server)."""
    from menutree.web import create_app

    flask_app = create_app({"DATABASE": str(_db_path(data_dir))})
    flask_app.run(host=host, port=port)


@app.command()
def mcp() -> None:
    """Start the MCP server (stdio transport)."""
    from menutree.mcp.server import run_mcp_server

    run_mcp_server()
