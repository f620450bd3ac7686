"""Turn flat item lists into nested dicts and text outlines."""

import io
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from menutree.core.resources.resolver import effective_url
from menutree.core.tree.rows import from_millis
from menutree.models.node import SCHEDULE, Menu, MenuItem, ResourceLink, UrlLink


def _iso(value: datetime | None) -> str | None:
    return value.isoformat().replace("+00:00", "Z") if value is not None else None


def _iso_millis(value: int) -> str | None:
    return _iso(from_millis(value)) if value else None


def item_to_dict(item: MenuItem) -> dict[str, Any]:
    """Admin view of an item: every stored field plus derived depth and url."""
    link = item.link
    return {
        "id": item.id,
        "tree_id": item.tree_id,
        "parent_id": item.parent_id,
        "name": item.name,
        "position": item.position,
        "depth": item.depth,
        "range_start": item.range_start,
        "range_end": item.range_end,
        "custom_url": link.url if isinstance(link, UrlLink) else None,
        "resource_type": link.resource_type if isinstance(link, ResourceLink) else None,
        "resource_id": link.resource_id if isinstance(link, ResourceLink) else None,
        "resource_slug": link.resource_slug if isinstance(link, ResourceLink) else None,
        "fallback_url": link.fallback_url if isinstance(link, ResourceLink) else None,
        "url": effective_url(item),
        "is_active": item.visibility.is_active,
        "display_at": _iso(item.visibility.display_at),
        "hide_at": _iso(item.visibility.hide_at),
        "visibility_type": item.visibility.visibility_type,
        "icon": item.icon,
        "target": item.target,
        "css_class": item.css_class,
        "is_root": item.is_root,
    }


def item_to_public_dict(item: MenuItem) -> dict[str, Any]:
    """What anonymous clients see of an item."""
    return {
        "id": item.id,
        "name": item.name,
        "url": effective_url(item),
        "target": item.target,
        "css_class": item.css_class,
        "icon": item.icon,
    }


def menu_to_dict(menu: Menu) -> dict[str, Any]:
    return {
        "id": menu.id,
        "name": menu.name,
        "slug": menu.slug,
        "max_depth": menu.max_depth,
        "is_active": menu.is_active,
        "item_count": menu.item_count,
        "created_at": _iso_millis(menu.created_at),
        "updated_at": _iso_millis(menu.updated_at),
    }


def build_tree(
    items: Iterable[MenuItem],
    root_id: int,
    *,
    to_dict: Callable[[MenuItem], dict[str, Any]] = item_to_dict,
) -> list[dict[str, Any]]:
    """Nest the descendants of ``root_id`` found in ``items``.

    Each dict gets a ``children`` list in sibling order. Items whose parent
    is not in ``items`` (e.g. filtered out as hidden) are dropped along
    with their subtrees.
    """
    by_parent: dict[int, list[MenuItem]] = {}
    for item in items:
        if item.parent_id is not None:
            by_parent.setdefault(item.parent_id, []).append(item)
    for siblings in by_parent.values():
        siblings.sort(key=lambda i: (i.position, i.range_start))

    def nest(parent_id: int) -> list[dict[str, Any]]:
        nodes = []
        for child in by_parent.get(parent_id, []):
            node = to_dict(child)
            node["children"] = nest(child.id)
            nodes.append(node)
        return nodes

    return nest(root_id)


def render_outline(items: Iterable[MenuItem], *, show_ids: bool = True) -> str:
    """Render range-ordered items as an indented bullet list.

    Depth is taken relative to the first item, which is usually the root.
    """
    items = list(items)
    if not items:
        return ""
    base_depth = items[0].depth

    out = io.StringIO()
    for item in items:
        indent = "    " * (item.depth - base_depth)
        line = item.name
        url = effective_url(item)
        if url:
            line += f" -> {url}"
        if not item.visibility.is_active:
            line += " [inactive]"
        elif item.visibility.visibility_type == SCHEDULE:
            line += " [scheduled]"
        if show_ids:
            line += f" (id={item.id})"
        out.write(f"{indent}- {line}\n")
    return out.getvalue()
