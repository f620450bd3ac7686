"""Shared test fixtures."""

import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass

import pytest

from menutree.core.database.schema import connect, create_schema
from menutree.core.menus import create_item, create_menu


@dataclass(frozen=True)
class SeededMenu:
    """Ids of the seeded menu.

    Main Menu (root, max depth 3)
        Home
        Products
            Shoes
                Sneakers
            Hats
        About
    """

    root: int
    home: int
    products: int
    shoes: int
    sneakers: int
    hats: int
    about: int


def seed_menu(conn: sqlite3.Connection, *, slug: str = "main", max_depth: int = 3) -> SeededMenu:
    menu = create_menu(conn, {"name": "Main Menu", "slug": slug, "max_depth": max_depth})
    home = create_item(conn, menu.id, {"name": "Home", "custom_url": "/"})
    products = create_item(conn, menu.id, {"name": "Products", "custom_url": "/products"})
    shoes = create_item(
        conn,
        menu.id,
        {
            "name": "Shoes",
            "parent_id": products.id,
            "resource_type": "Category",
            "resource_id": 10,
            "resource_slug": "shoes",
        },
    )
    sneakers = create_item(
        conn, menu.id, {"name": "Sneakers", "parent_id": shoes.id, "custom_url": "/sneakers"}
    )
    hats = create_item(conn, menu.id, {"name": "Hats", "parent_id": products.id})
    about = create_item(conn, menu.id, {"name": "About", "custom_url": "/about"})
    return SeededMenu(
        root=menu.id,
        home=home.id,
        products=products.id,
        shoes=shoes.id,
        sneakers=sneakers.id,
        hats=hats.id,
        about=about.id,
    )


@pytest.fixture
def conn() -> Iterator[sqlite3.Connection]:
    """Return an in-memory DB with the schema created."""
    conn = connect(":memory:")
    create_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def seeded(conn: sqlite3.Connection) -> SeededMenu:
    """Return the ids of a small seeded menu in ``conn``."""
    return seed_menu(conn)
