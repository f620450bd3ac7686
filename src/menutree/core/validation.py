"""Field validation for menu and menu item payloads.

Every validator collects all problems first and raises a single
FieldValidation keyed by dotted field path, before any write.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from menutree.config import (
    LINK_TARGETS,
    MAX_CSS_CLASS_LENGTH,
    MAX_ICON_LENGTH,
    MAX_MAX_DEPTH,
    MAX_NAME_LENGTH,
    MAX_RESOURCE_TYPE_LENGTH,
    MAX_SLUG_LENGTH,
    MAX_URL_LENGTH,
    MIN_MAX_DEPTH,
    MIN_MENU_NAME_LENGTH,
    RESOURCE_TYPES,
)
from menutree.core.tree.move import MoveRequest
from menutree.core.tree.rows import to_millis
from menutree.errors import FieldValidation
from menutree.models.node import (
    ALWAYS_HIDE,
    ALWAYS_SHOW,
    SCHEDULE,
    VISIBILITY_TYPES,
    MenuItem,
    ResourceLink,
    UrlLink,
)

_SLUG_RE = re.compile(r"^[a-zA-Z0-9\-_]+$")

_STRUCTURAL_KEYS = ("id", "parent_id", "position", "children")

_OPTIONAL_STRINGS: dict[str, int] = {
    "custom_url": MAX_URL_LENGTH,
    "resource_slug": MAX_SLUG_LENGTH,
    "fallback_url": MAX_URL_LENGTH,
    "icon": MAX_ICON_LENGTH,
    "css_class": MAX_CSS_CLASS_LENGTH,
}


class _Errors:
    def __init__(self) -> None:
        self.errors: dict[str, list[str]] = {}

    def add(self, key: str, message: str) -> None:
        self.errors.setdefault(key, []).append(message)

    def raise_if_any(self) -> None:
        if self.errors:
            raise FieldValidation(self.errors)


def slugify(text: str) -> str:
    """Lowercase, dash-separated slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return slug.strip("-")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        msg = f"Not a timestamp: {value!r}"
        raise ValueError(msg)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_items(
    payload: Mapping[str, Any], errors: _Errors, prefix: str, *, partial: bool = False
) -> dict[str, Any]:
    fields: dict[str, Any] = {}

    name = payload.get("name")
    if partial and "name" not in payload:
        pass
    elif not isinstance(name, str) or not name.strip():
        errors.add(f"{prefix}name", "The name field is required.")
    elif len(name) > MAX_NAME_LENGTH:
        errors.add(f"{prefix}name", f"The name may not be greater than {MAX_NAME_LENGTH} characters.")
    else:
        fields["name"] = name.strip()

    for key, limit in _OPTIONAL_STRINGS.items():
        if key not in payload:
            continue
        value = payload[key]
        if value is None or value == "":
            fields[key] = None
        elif not isinstance(value, str):
            errors.add(f"{prefix}{key}", f"The {key} must be a string.")
        elif len(value) > limit:
            errors.add(f"{prefix}{key}", f"The {key} may not be greater than {limit} characters.")
        else:
            fields[key] = value

    if "resource_type" in payload:
        resource_type = payload["resource_type"]
        if resource_type in (None, ""):
            fields["resource_type"] = None
        elif not isinstance(resource_type, str) or len(resource_type) > MAX_RESOURCE_TYPE_LENGTH:
            errors.add(f"{prefix}resource_type", "The resource_type must be a short string.")
        elif resource_type not in RESOURCE_TYPES:
            errors.add(f"{prefix}resource_type", f"Resource type '{resource_type}' is not configured.")
        else:
            fields["resource_type"] = resource_type

    if "resource_id" in payload:
        resource_id = payload["resource_id"]
        if resource_id is None:
            fields["resource_id"] = None
        elif not _is_int(resource_id) or resource_id < 1:
            errors.add(f"{prefix}resource_id", "The resource_id must be a positive integer.")
        else:
            fields["resource_id"] = resource_id

    has_type = fields.get("resource_type") is not None
    has_id = fields.get("resource_id") is not None
    if has_type != has_id and f"{prefix}resource_type" not in errors.errors:
        errors.add(f"{prefix}resource_id", "resource_type and resource_id must be given together.")
    if has_type and has_id and fields.get("custom_url"):
        errors.add(f"{prefix}custom_url", "custom_url and a resource link are mutually exclusive.")
    if fields.get("fallback_url") and not (has_type and has_id):
        errors.add(f"{prefix}fallback_url", "fallback_url requires a resource link.")

    if "target" in payload:
        target = payload["target"]
        if target is None:
            fields["target"] = "_self"
        elif target not in LINK_TARGETS:
            errors.add(f"{prefix}target", f"The target must be one of {', '.join(LINK_TARGETS)}.")
        else:
            fields["target"] = target

    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            errors.add(f"{prefix}is_active", "The is_active field must be true or false.")
        else:
            fields["is_active"] = payload["is_active"]

    dates: dict[str, datetime | None] = {}
    for key in ("display_at", "hide_at"):
        if key not in payload:
            continue
        try:
            dates[key] = parse_timestamp(payload[key])
        except ValueError:
            errors.add(f"{prefix}{key}", f"The {key} is not a valid date.")
    display_at, hide_at = dates.get("display_at"), dates.get("hide_at")
    if display_at is not None and hide_at is not None and hide_at <= display_at:
        errors.add(f"{prefix}hide_at", "The hide_at must be a date after display_at.")
    for key, value in dates.items():
        fields[key] = to_millis(value)

    if "visibility_type" in payload:
        visibility_type = payload["visibility_type"]
        if visibility_type not in VISIBILITY_TYPES:
            errors.add(
                f"{prefix}visibility_type",
                f"The visibility_type must be one of {', '.join(VISIBILITY_TYPES)}.",
            )
        elif visibility_type == ALWAYS_SHOW:
            fields.update(is_active=True, display_at=None, hide_at=None)
        elif visibility_type == ALWAYS_HIDE:
            fields["is_active"] = False
        elif visibility_type == SCHEDULE:
            fields["is_active"] = True

    return fields


def validate_item_fields(payload: Any, *, partial: bool = False, prefix: str = "") -> dict[str, Any]:
    """Validate one item payload and return the stored column values it sets.

    With ``partial`` the name may be absent; only the keys present are checked.
    """
    errors = _Errors()
    if not isinstance(payload, Mapping):
        errors.add(prefix.rstrip(".") or "item", "Expected an object.")
        errors.raise_if_any()
    fields = _check_items(payload, errors, prefix, partial=partial)
    errors.raise_if_any()
    return fields


def _stored_payload(item: MenuItem) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": item.name,
        "icon": item.icon,
        "target": item.target,
        "css_class": item.css_class,
        "is_active": item.visibility.is_active,
        "display_at": item.visibility.display_at,
        "hide_at": item.visibility.hide_at,
        "custom_url": None,
        "resource_type": None,
        "resource_id": None,
        "resource_slug": None,
        "fallback_url": None,
    }
    if isinstance(item.link, UrlLink):
        payload["custom_url"] = item.link.url
    elif isinstance(item.link, ResourceLink):
        payload.update(
            resource_type=item.link.resource_type,
            resource_id=item.link.resource_id,
            resource_slug=item.link.resource_slug,
            fallback_url=item.link.fallback_url,
        )
    return payload


def merge_item_payload(item: MenuItem, payload: Mapping[str, Any]) -> dict[str, Any]:
    """Overlay ``payload`` on ``item``'s stored fields, ready for full validation.

    Giving one link kind clears the other. Structural keys are dropped.
    """
    merged = _stored_payload(item)
    if payload.get("custom_url"):
        merged.update(resource_type=None, resource_id=None, resource_slug=None, fallback_url=None)
    if payload.get("resource_type") or payload.get("resource_id"):
        merged["custom_url"] = None
    merged.update({key: value for key, value in payload.items() if key not in _STRUCTURAL_KEYS})
    return merged


@dataclass(frozen=True)
class ClientNode:
    """One validated entry of a client-submitted tree.

    Entries naming an existing ``id`` keep their raw ``entry``; their
    ``fields`` stay empty until merged with the stored node.
    """

    id: int | None
    fields: dict[str, Any]
    children: tuple["ClientNode", ...] = field(default=())
    path: str = ""
    entry: Mapping[str, Any] = field(default_factory=dict, compare=False)


def validate_client_tree(tree: Any, *, prefix: str = "tree") -> list[ClientNode]:
    """Validate the structure of a nested client tree (ordered forest) in one pass.

    Field checks apply to new entries only. Entries with an ``id`` are
    checked by ``merge_item_payload`` plus ``validate_item_fields`` once
    their stored values are known.
    """
    errors = _Errors()
    if not isinstance(tree, list):
        errors.add(prefix, "The tree must be a list.")
        errors.raise_if_any()

    seen_ids: set[int] = set()

    def convert(entries: list[Any], path: str) -> list[ClientNode]:
        nodes: list[ClientNode] = []
        for index, entry in enumerate(entries):
            entry_path = f"{path}.{index}"
            if not isinstance(entry, Mapping):
                errors.add(entry_path, "Expected an object.")
                continue
            node_id = entry.get("id")
            if node_id is not None:
                if not _is_int(node_id) or node_id < 1:
                    errors.add(f"{entry_path}.id", "The id must be a positive integer.")
                    node_id = None
                elif node_id in seen_ids:
                    errors.add(f"{entry_path}.id", f"Menu item {node_id} appears more than once.")
                else:
                    seen_ids.add(node_id)
            fields = {} if node_id is not None else _check_items(entry, errors, f"{entry_path}.")
            raw_children = entry.get("children") or []
            if not isinstance(raw_children, list):
                errors.add(f"{entry_path}.children", "The children must be a list.")
                raw_children = []
            children = convert(raw_children, f"{entry_path}.children")
            nodes.append(ClientNode(node_id, fields, tuple(children), entry_path, entry))
        return nodes

    nodes = convert(tree, prefix)
    errors.raise_if_any()
    return nodes


def validate_reorder(payload: Any) -> list[MoveRequest]:
    """Validate ``{"items": [{"id", "position", "parent_id"?}, ...]}``."""
    errors = _Errors()
    items = payload.get("items") if isinstance(payload, Mapping) else None
    if not isinstance(items, list) or not items:
        errors.add("items", "The items field is required.")
        errors.raise_if_any()

    moves: list[MoveRequest] = []
    for index, entry in enumerate(items):
        key = f"items.{index}"
        if not isinstance(entry, Mapping):
            errors.add(key, "Expected an object.")
            continue
        node_id, position, parent_id = entry.get("id"), entry.get("position"), entry.get("parent_id")
        if not _is_int(node_id):
            errors.add(f"{key}.id", "The id field is required.")
        if not _is_int(position) or position < 0:
            errors.add(f"{key}.position", "The position must be an integer of at least 0.")
        if parent_id is not None and not _is_int(parent_id):
            errors.add(f"{key}.parent_id", "The parent_id must be an integer.")
        if _is_int(node_id) and _is_int(position) and position >= 0:
            moves.append(MoveRequest(id=node_id, position=position, parent_id=parent_id))
    errors.raise_if_any()
    return moves


def validate_menu_fields(payload: Any, *, partial: bool = False) -> dict[str, Any]:
    """Validate menu (root) attributes: name, slug, is_active, max_depth."""
    errors = _Errors()
    if not isinstance(payload, Mapping):
        errors.add("menu", "Expected an object.")
        errors.raise_if_any()

    fields: dict[str, Any] = {}
    if "name" in payload or not partial:
        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.add("name", "The name field is required.")
        elif not MIN_MENU_NAME_LENGTH <= len(name.strip()) <= MAX_NAME_LENGTH:
            errors.add(
                "name",
                f"The name must be between {MIN_MENU_NAME_LENGTH} and {MAX_NAME_LENGTH} characters.",
            )
        else:
            fields["name"] = name.strip()

    slug = payload.get("slug")
    if slug not in (None, ""):
        if not isinstance(slug, str) or len(slug) > MAX_SLUG_LENGTH or not _SLUG_RE.match(slug):
            errors.add("slug", "The slug may only contain letters, numbers, dashes and underscores.")
        else:
            fields["slug"] = slug

    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            errors.add("is_active", "The is_active field must be true or false.")
        else:
            fields["is_active"] = payload["is_active"]

    if "max_depth" in payload:
        max_depth = payload["max_depth"]
        if not _is_int(max_depth) or not MIN_MAX_DEPTH <= max_depth <= MAX_MAX_DEPTH:
            errors.add(
                "max_depth", f"The max_depth must be between {MIN_MAX_DEPTH} and {MAX_MAX_DEPTH}."
            )
        else:
            fields["max_depth"] = max_depth

    errors.raise_if_any()
    return fields
