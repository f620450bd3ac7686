"""Tests for the Flask HTTP API."""

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from flask import Flask
from flask.testing import FlaskClient

from menutree.core.database.schema import connect, migrate_schema
from menutree.core.menus import update_item
from menutree.web import create_app
from tests.unit.conftest import SeededMenu, seed_menu
from tests.unit.fakes import FakeClock, FakeResolver

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "menus.db"


@pytest.fixture
def seeded_db(db_path: Path) -> SeededMenu:
    """Seed the on-disk database used by the app."""
    conn = connect(db_path)
    migrate_schema(conn)
    seeded = seed_menu(conn)
    conn.close()
    return seeded


@pytest.fixture
def resolver() -> FakeResolver:
    resolver = FakeResolver()
    resolver.add("Category", 10, slug="shoes")
    return resolver


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def app(db_path: Path, clock: FakeClock, resolver: FakeResolver) -> Flask:
    return create_app(
        {"DATABASE": str(db_path), "CLOCK": clock, "RESOURCE_RESOLVER": resolver, "TESTING": True}
    )


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    return app.test_client()


def _names(nodes: list[dict[str, Any]]) -> list[Any]:
    return [(n["name"], _names(n["children"])) if n["children"] else n["name"] for n in nodes]


def _edit(db_path: Path, item_id: int, payload: dict[str, Any]) -> None:
    conn = connect(db_path)
    update_item(conn, item_id, payload)
    conn.close()


# ----------------------------------------------------------------------
# Menus
# ----------------------------------------------------------------------


def test_create_menu_returns_201_envelope(client: FlaskClient) -> None:
    """A created menu comes back in the success envelope."""
    response = client.post("/api/menus", json={"name": "Footer Links", "max_depth": 2})

    assert response.status_code == 201
    body = response.get_json()
    assert body["success"] is True
    assert body["message"] == "Menu created successfully"
    assert body["data"]["slug"] == "footer-links"
    assert body["data"]["item_count"] == 0


def test_create_menu_validation_error_is_422(client: FlaskClient) -> None:
    """Field errors are reported per field."""
    response = client.post("/api/menus", json={"name": "", "max_depth": 0})

    assert response.status_code == 422
    body = response.get_json()
    assert body["success"] is False
    assert body["message"] == "The given data was invalid."
    assert set(body["errors"]) == {"name", "max_depth"}


def test_non_json_body_is_422(client: FlaskClient) -> None:
    """Requests without a JSON object body are rejected."""
    response = client.post("/api/menus", data="name=x", content_type="text/plain")

    assert response.status_code == 422
    assert "body" in response.get_json()["errors"]


def test_show_menu_includes_nested_items(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """The admin menu view embeds the whole tree."""
    body = client.get(f"/api/menus/{seeded_db.root}").get_json()

    assert body["data"]["name"] == "Main Menu"
    assert _names(body["data"]["items"]) == [
        "Home",
        ("Products", [("Shoes", ["Sneakers"]), "Hats"]),
        "About",
    ]


def test_missing_menu_is_404(client: FlaskClient, seeded_db: SeededMenu) -> None:
    response = client.get("/api/menus/999")

    assert response.status_code == 404
    assert response.get_json() == {"success": False, "message": "Menu 999 not found"}


def test_update_and_delete_menu(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """Menus can be renamed and deleted with all their items."""
    response = client.put(f"/api/menus/{seeded_db.root}", json={"name": "Header"})
    assert response.get_json()["data"]["name"] == "Header"

    response = client.delete(f"/api/menus/{seeded_db.root}")
    assert response.get_json()["data"] == {"deleted": 7}
    assert client.get("/api/menus").get_json()["data"] == []


# ----------------------------------------------------------------------
# Nodes
# ----------------------------------------------------------------------


def test_create_node_under_parent(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """New items report their derived depth and url."""
    response = client.post(
        f"/api/trees/{seeded_db.root}/nodes",
        json={"name": "Boots", "parent_id": seeded_db.shoes, "custom_url": "/boots", "position": 0},
    )

    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["depth"] == 3
    assert data["url"] == "/boots"
    assert data["position"] == 0


def test_create_node_too_deep_is_400(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """Depth violations are structural errors."""
    response = client.post(
        f"/api/trees/{seeded_db.root}/nodes",
        json={"name": "Too deep", "parent_id": seeded_db.sneakers},
    )

    assert response.status_code == 400
    assert "maximum depth limit of 3" in response.get_json()["message"]


def test_update_and_delete_node(client: FlaskClient, seeded_db: SeededMenu) -> None:
    response = client.put(f"/api/nodes/{seeded_db.home}", json={"name": "Start"})
    assert response.get_json()["data"]["name"] == "Start"
    assert response.get_json()["data"]["url"] == "/"

    response = client.delete(f"/api/nodes/{seeded_db.products}")
    assert response.get_json()["data"] == {"deleted": 4}

    response = client.delete(f"/api/nodes/{seeded_db.products}")
    assert response.status_code == 404


def test_list_nodes_flat_and_tree(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """Flat listings leave out the root; tree listings nest."""
    flat = client.get(f"/api/trees/{seeded_db.root}/nodes").get_json()["data"]
    assert [n["name"] for n in flat] == ["Home", "Products", "Shoes", "Sneakers", "Hats", "About"]

    tree = client.get(f"/api/trees/{seeded_db.root}/nodes?format=tree").get_json()["data"]
    assert _names(tree)[1] == ("Products", [("Shoes", ["Sneakers"]), "Hats"])

    response = client.get(f"/api/trees/{seeded_db.root}/nodes?format=xml")
    assert response.status_code == 422


def test_list_nodes_visible_only(
    client: FlaskClient, seeded_db: SeededMenu, db_path: Path
) -> None:
    """visible=1 applies the cascade filter."""
    _edit(db_path, seeded_db.products, {"is_active": False})

    flat = client.get(f"/api/trees/{seeded_db.root}/nodes?visible=1").get_json()["data"]

    assert [n["name"] for n in flat] == ["Home", "About"]


def test_reorder(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """Reorder returns the number of changed rows and the new tree."""
    response = client.put(
        f"/api/trees/{seeded_db.root}/nodes/reorder",
        json={
            "items": [
                {"id": seeded_db.about, "position": 0},
                {"id": seeded_db.hats, "position": 0, "parent_id": seeded_db.shoes},
            ]
        },
    )

    body = response.get_json()
    assert response.status_code == 200
    assert body["message"] == "Menu items reordered successfully"
    assert body["data"]["changed"] > 0
    assert _names(body["data"]["tree"]) == [
        "About",
        "Home",
        ("Products", [("Shoes", ["Hats", "Sneakers"])]),
    ]


def test_reorder_cycle_is_400(client: FlaskClient, seeded_db: SeededMenu) -> None:
    response = client.put(
        f"/api/trees/{seeded_db.root}/nodes/reorder",
        json={"items": [{"id": seeded_db.products, "position": 0, "parent_id": seeded_db.hats}]},
    )

    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_reorder_malformed_is_422(client: FlaskClient, seeded_db: SeededMenu) -> None:
    response = client.put(f"/api/trees/{seeded_db.root}/nodes/reorder", json={"items": []})
    assert response.status_code == 422


def test_rebuild(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """Rebuild replaces the subtree and returns it nested."""
    response = client.put(
        f"/api/trees/{seeded_db.root}/nodes/rebuild",
        json={
            "tree": [
                {"id": seeded_db.about, "name": "About"},
                {"name": "Blog", "custom_url": "/blog", "children": [{"name": "Archive"}]},
            ]
        },
    )

    body = response.get_json()
    assert response.status_code == 200
    assert body["message"] == "Menu tree rebuilt successfully"
    assert _names(body["data"]) == ["About", ("Blog", ["Archive"])]
    assert body["data"][1]["url"] == "/blog"


def test_rebuild_errors(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """Invalid trees are 422 with dotted paths; too deep trees are 400."""
    url = f"/api/trees/{seeded_db.root}/nodes/rebuild"

    response = client.put(url, json={"tree": [{"name": "A", "children": [{"name": ""}]}]})
    assert response.status_code == 422
    assert "tree.0.children.0.name" in response.get_json()["errors"]

    deep = {"name": "1", "children": [{"name": "2", "children": [{"name": "3", "children": [{"name": "4"}]}]}]}
    response = client.put(url, json={"tree": [deep]})
    assert response.status_code == 400

    after = client.get(f"/api/menus/{seeded_db.root}").get_json()["data"]
    assert after["item_count"] == 6


def test_resource_types(client: FlaskClient) -> None:
    data = client.get("/api/resource-types").get_json()["data"]
    assert {"type": "Product", "route_pattern": "/products/{slug}"} in data


def test_unknown_route_uses_envelope(client: FlaskClient) -> None:
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.get_json()["success"] is False


# ----------------------------------------------------------------------
# Public
# ----------------------------------------------------------------------


def test_public_menu_by_slug(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """Public items carry only presentation fields."""
    body = client.get("/public/menus/main").get_json()

    data = body["data"]
    assert data["name"] == "Main Menu"
    assert _names(data["items"]) == [
        "Home",
        ("Products", [("Shoes", ["Sneakers"]), "Hats"]),
        "About",
    ]
    shoes = data["items"][1]["children"][0]
    assert set(shoes) == {"id", "name", "url", "target", "css_class", "icon", "children"}
    assert shoes["url"] == "/categories/shoes"


def test_public_menu_hides_missing_resources_and_schedules(
    client: FlaskClient,
    seeded_db: SeededMenu,
    resolver: FakeResolver,
    clock: FakeClock,
    db_path: Path,
) -> None:
    """Hidden items take their descendants with them."""
    resolver.resources.clear()
    _edit(db_path, seeded_db.about, {"display_at": "2024-06-01T00:00:00Z"})

    items = client.get("/public/menus/main").get_json()["data"]["items"]
    assert _names(items) == ["Home", ("Products", ["Hats"])]

    clock.now = datetime(2024, 6, 1, tzinfo=UTC)
    items = client.get("/public/menus/main").get_json()["data"]["items"]
    assert _names(items) == ["Home", ("Products", ["Hats"]), "About"]


def test_public_inactive_menu_serves_no_items(
    client: FlaskClient, seeded_db: SeededMenu, db_path: Path
) -> None:
    _edit(db_path, seeded_db.root, {"is_active": False})

    assert client.get("/public/menus/main").get_json()["data"]["items"] == []


def test_public_missing_menu_is_404(client: FlaskClient, seeded_db: SeededMenu) -> None:
    response = client.get("/public/menus/nope")

    assert response.status_code == 404
    assert response.get_json()["message"] == "Menu 'nope' not found"


def test_public_multiple_menus(client: FlaskClient, seeded_db: SeededMenu) -> None:
    """Unknown slugs map to null instead of failing the request."""
    body = client.get("/public/menus?menus=main,nope").get_json()

    assert set(body["data"]) == {"main", "nope"}
    assert body["data"]["nope"] is None
    assert body["data"]["main"]["slug"] == "main"

    response = client.get("/public/menus")
    assert response.status_code == 400
    assert response.get_json()["message"] == "No menus requested"
