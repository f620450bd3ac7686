"""Admin and public HTTP endpoints."""

from flask import Blueprint, request
from loguru import logger

from menutree.core import menus
from menutree.core.resources.resolver import resource_config, resource_types
from menutree.core.tree import ordering
from menutree.core.tree.assemble import (
    build_tree,
    item_to_dict,
    item_to_public_dict,
    menu_to_dict,
)
from menutree.core.tree.rebuild import rebuild_subtree
from menutree.core.tree.visibility import filter_visible
from menutree.core.validation import validate_reorder
from menutree.errors import FieldValidation
from menutree.models.node import Menu
from menutree.store import TreeStore
from menutree.web.helpers import fail, get_db, json_body, now, ok, resolver

admin_bp = Blueprint("admin", __name__, url_prefix="/api")
public_bp = Blueprint("public", __name__, url_prefix="/public")


# ----------------------------------------------------------------------
# Menus
# ----------------------------------------------------------------------


@admin_bp.get("/menus")
def list_menus():
    return ok([menu_to_dict(m) for m in menus.list_menus(get_db())])


@admin_bp.post("/menus")
def create_menu():
    menu = menus.create_menu(get_db(), json_body())
    return ok(menu_to_dict(menu), "Menu created successfully", 201)


@admin_bp.get("/menus/<int:menu_id>")
def show_menu(menu_id: int):
    conn = get_db()
    menu = menus.get_menu(conn, menu_id)
    data = menu_to_dict(menu)
    data["items"] = build_tree(ordering.tree_items(conn, menu_id), menu_id)
    return ok(data)


@admin_bp.put("/menus/<int:menu_id>")
def update_menu(menu_id: int):
    menu = menus.update_menu(get_db(), menu_id, json_body())
    return ok(menu_to_dict(menu), "Menu updated successfully")


@admin_bp.delete("/menus/<int:menu_id>")
def delete_menu(menu_id: int):
    deleted = menus.delete_menu(get_db(), menu_id)
    return ok({"deleted": deleted}, "Menu deleted successfully")


# ----------------------------------------------------------------------
# Nodes
# ----------------------------------------------------------------------


@admin_bp.get("/trees/<int:root_id>/nodes")
def list_nodes(root_id: int):
    """Flat (range order) or nested list; ``visible=1`` applies the public filter."""
    fmt = request.args.get("format", "flat")
    if fmt not in ("flat", "tree"):
        raise FieldValidation({"format": ["The format must be flat or tree."]})

    store = TreeStore(get_db(), root_id)
    items = list(store.items())
    if request.args.get("visible") in ("1", "true"):
        items = store.visible_items(now(), resolver())

    if fmt == "tree":
        return ok(build_tree(items, store.tree_id))
    return ok([item_to_dict(i) for i in items if not i.is_root])


@admin_bp.post("/trees/<int:root_id>/nodes")
def create_node(root_id: int):
    item = menus.create_item(get_db(), root_id, json_body())
    return ok(item_to_dict(item), "Menu item created successfully", 201)


@admin_bp.put("/nodes/<int:item_id>")
def update_node(item_id: int):
    item = menus.update_item(get_db(), item_id, json_body())
    return ok(item_to_dict(item), "Menu item updated successfully")


@admin_bp.delete("/nodes/<int:item_id>")
def delete_node(item_id: int):
    deleted = menus.delete_item(get_db(), item_id)
    return ok({"deleted": deleted}, "Menu item deleted successfully")


@admin_bp.put("/trees/<int:root_id>/nodes/reorder")
def reorder_nodes(root_id: int):
    moves = validate_reorder(json_body())
    store = TreeStore(get_db(), root_id)
    changed = store.reorder(moves)
    return ok(
        {"changed": changed, "tree": build_tree(store.items(), store.tree_id)},
        "Menu items reordered successfully",
    )


@admin_bp.put("/trees/<int:root_id>/nodes/rebuild")
def rebuild_nodes(root_id: int):
    body = json_body()
    conn = get_db()
    items = rebuild_subtree(conn, root_id, body.get("tree"))
    return ok(build_tree(items, root_id), "Menu tree rebuilt successfully")


@admin_bp.get("/resource-types")
def list_resource_types():
    return ok(
        [
            {"type": name, "route_pattern": resource_config(name)["route_pattern"]}
            for name in resource_types()
        ]
    )


# ----------------------------------------------------------------------
# Public
# ----------------------------------------------------------------------


def _public_menu(menu: Menu) -> dict:
    # The root takes part in filtering, so an inactive menu serves no items.
    visible = filter_visible(ordering.tree_items(get_db(), menu.id), now(), resolver())
    return {
        "name": menu.name,
        "slug": menu.slug,
        "items": build_tree(visible, menu.id, to_dict=item_to_public_dict),
    }


@public_bp.get("/menus/<slug>")
def public_menu(slug: str):
    menu = menus.get_menu_by_slug(get_db(), slug)
    if menu is None:
        return fail(f"Menu '{slug}' not found", 404)
    return ok(_public_menu(menu))


@public_bp.get("/menus")
def public_menus():
    slugs = [s.strip() for s in request.args.get("menus", "").split(",") if s.strip()]
    if not slugs:
        return fail("No menus requested", 400)

    data = {}
    for slug in slugs:
        menu = menus.get_menu_by_slug(get_db(), slug)
        data[slug] = _public_menu(menu) if menu is not None else None
    logger.debug("Served {} public menus", len(slugs))
    return ok(data)
