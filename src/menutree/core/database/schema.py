"""SQLite schema creation, migration and transactions for menu trees."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

SCHEMA_VERSION = 1

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS menu_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tree_id INTEGER,
    parent_id INTEGER REFERENCES menu_items(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    custom_url TEXT,
    resource_type TEXT,
    resource_id INTEGER,
    resource_slug TEXT,
    fallback_url TEXT,
    display_at INTEGER,
    hide_at INTEGER,
    icon TEXT,
    target TEXT NOT NULL DEFAULT '_self',
    css_class TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    is_root INTEGER NOT NULL DEFAULT 0,
    slug TEXT UNIQUE,
    max_depth INTEGER,
    lft INTEGER NOT NULL DEFAULT 0,
    rgt INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_menu_items_parent ON menu_items(parent_id, position);
CREATE INDEX IF NOT EXISTS idx_menu_items_tree_range ON menu_items(tree_id, lft, rgt);
CREATE INDEX IF NOT EXISTS idx_menu_items_root ON menu_items(is_root);
CREATE INDEX IF NOT EXISTS idx_menu_items_resource ON menu_items(resource_type, resource_id);

CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def connect(path: Path | str) -> sqlite3.Connection:
    """Open a database connection with foreign keys enforced.

    File databases use WAL so readers only ever see committed snapshots
    and never block the writer.
    """
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON")
    if str(path) != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA busy_timeout = 5000")
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes."""
    conn.executescript(_SCHEMA_SQL)
    conn.execute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
        ("schema_version", str(SCHEMA_VERSION)),
    )
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Return the current schema version, or None if metadata table doesn't exist."""
    try:
        row = conn.execute(
            "SELECT value FROM metadata WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    return int(row[0]) if row else None


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Create or migrate the database schema to the latest version."""
    version = get_schema_version(conn)
    if version is None:
        create_schema(conn)


def get_metadata(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
    return row[0] if row else None


def set_metadata(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)", (key, value)
    )
    conn.commit()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block atomically, rolling everything back on any exception.

    The outermost block takes the write lock up front with BEGIN IMMEDIATE,
    so concurrent structural writers are serialised. Nested blocks become
    savepoints.
    """
    if conn.in_transaction:
        conn.execute("SAVEPOINT menutree_nested")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK TO SAVEPOINT menutree_nested")
            conn.execute("RELEASE SAVEPOINT menutree_nested")
            raise
        conn.execute("RELEASE SAVEPOINT menutree_nested")
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()
