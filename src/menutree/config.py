"""Configuration constants for menu-tree."""

import os
from pathlib import Path
from typing import Any

# Directory with the menu database. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/menu-tree").expanduser(),
    Path("~/.config/menu-tree").expanduser(),
]

DATA_DIR_ENV = "MENU_TREE_DATA_DIR"
DATABASE_FILENAME = "menus.db"

# New menus get this depth limit unless one is given.
DEFAULT_MAX_DEPTH = 2
MIN_MAX_DEPTH = 1
MAX_MAX_DEPTH = 10

MAX_NAME_LENGTH = 255
MIN_MENU_NAME_LENGTH = 3
MAX_URL_LENGTH = 2048
MAX_RESOURCE_TYPE_LENGTH = 100
MAX_SLUG_LENGTH = 255
MAX_ICON_LENGTH = 100
MAX_CSS_CLASS_LENGTH = 255

LINK_TARGETS: tuple[str, ...] = ("_self", "_blank")

# Resource types that menu items may link to. route_pattern must contain {slug}.
RESOURCE_TYPES: dict[str, dict[str, Any]] = {
    "Product": {
        "name_field": "name",
        "slug_field": "slug",
        "route_pattern": "/products/{slug}",
    },
    "Category": {
        "name_field": "name",
        "slug_field": "slug",
        "route_pattern": "/categories/{slug}",
    },
    "Homepage": {
        "name_field": "title",
        "slug_field": "slug",
        "route_pattern": "/{slug}",
    },
    "Webpage": {
        "name_field": "title",
        "slug_field": "slug",
        "route_pattern": "/pages/{slug}",
    },
}

# Base URL of the resource service, used by HttpResourceResolver.
RESOURCE_SERVICE_URL_ENV = "MENU_TREE_RESOURCE_URL"
RESOURCE_REQUEST_TIMEOUT = 5.0


def resolve_data_directory() -> Path:
    """Return the data directory: env override, else first existing candidate."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]


def resolve_database_path(data_dir: Path | None = None) -> Path:
    return (data_dir or resolve_data_directory()) / DATABASE_FILENAME
