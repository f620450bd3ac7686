"""Resource link resolution: resource types, URL generation and lookups."""

import os
from typing import Any

import requests
from loguru import logger

from menutree.config import RESOURCE_REQUEST_TIMEOUT, RESOURCE_SERVICE_URL_ENV, RESOURCE_TYPES
from menutree.errors import ResourceResolutionFailure
from menutree.models.node import MenuItem, ResourceInfo, ResourceLink, UrlLink


def resource_types() -> list[str]:
    return list(RESOURCE_TYPES)


def resource_config(resource_type: str) -> dict[str, Any]:
    """Return the configuration for ``resource_type``.

    Raises:
        ValueError: The type is not configured or its configuration is incomplete.
    """
    config = RESOURCE_TYPES.get(resource_type)
    if config is None:
        msg = f"Resource type '{resource_type}' is not configured."
        raise ValueError(msg)
    for key in ("name_field", "slug_field", "route_pattern"):
        if not config.get(key):
            msg = f"Resource configuration for '{resource_type}' missing required key: {key}"
            raise ValueError(msg)
    if "{slug}" not in config["route_pattern"]:
        msg = f"Route pattern for '{resource_type}' must contain {{slug}} placeholder"
        raise ValueError(msg)
    return config


def generate_url(resource_type: str, resource_slug: str) -> str:
    return str(resource_config(resource_type)["route_pattern"]).replace("{slug}", resource_slug)


def effective_url(item: MenuItem) -> str | None:
    """URL a client should follow: literal URL, then resource URL, then fallback."""
    link = item.link
    if isinstance(link, UrlLink):
        return link.url
    if isinstance(link, ResourceLink):
        if link.resource_slug:
            try:
                return generate_url(link.resource_type, link.resource_slug)
            except ValueError as e:
                logger.warning(
                    "Failed to generate resource URL for menu item {} ({} {}): {}",
                    item.id, link.resource_type, link.resource_slug, e,
                )
        return link.fallback_url
    return None


class StaticResourceResolver:
    """In-memory resource catalogue keyed by ``(resource_type, resource_id)``."""

    def __init__(self, resources: dict[tuple[str, int], ResourceInfo] | None = None) -> None:
        self.resources: dict[tuple[str, int], ResourceInfo] = dict(resources or {})

    def add(self, resource_type: str, resource: ResourceInfo) -> None:
        self.resources[(resource_type, resource.id)] = resource

    def resolve(self, resource_type: str, resource_id: int) -> ResourceInfo | None:
        if resource_type not in RESOURCE_TYPES:
            raise ResourceResolutionFailure(resource_type, resource_id, "type not configured")
        return self.resources.get((resource_type, resource_id))


class HttpResourceResolver:
    """Look resources up from a JSON service: ``GET {base}/{type}/{id}``.

    A 404 means the resource does not exist; any other failure is a
    ResourceResolutionFailure.
    """

    def __init__(self, base_url: str | None = None, *, timeout: float = RESOURCE_REQUEST_TIMEOUT) -> None:
        base_url = base_url or os.environ.get(RESOURCE_SERVICE_URL_ENV)
        if not base_url:
            msg = f"No resource service URL given and {RESOURCE_SERVICE_URL_ENV} is not set"
            raise RuntimeError(msg)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.sess = requests.Session()

    def resolve(self, resource_type: str, resource_id: int) -> ResourceInfo | None:
        try:
            config = resource_config(resource_type)
        except ValueError as e:
            raise ResourceResolutionFailure(resource_type, resource_id, str(e)) from e

        url = f"{self.base_url}/{resource_type}/{resource_id}"
        logger.debug("Resolving resource: {!r}", url)
        try:
            r = self.sess.get(url, timeout=self.timeout)
            if r.status_code == 404:
                return None
            r.raise_for_status()
            data: Any = r.json()
            if not isinstance(data, dict):
                msg = f"expected a JSON object, got {type(data).__name__}"
                raise ValueError(msg)
            return ResourceInfo(
                id=int(data.get("id", resource_id)),
                name=str(data.get(config["name_field"]) or data.get("name") or ""),
                slug=data.get(config["slug_field"]),
                is_deleted=bool(data.get("is_deleted") or data.get("deleted_at")),
            )
        except (requests.RequestException, ValueError, TypeError) as e:
            raise ResourceResolutionFailure(resource_type, resource_id, str(e)) from e
