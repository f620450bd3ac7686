"""Effective visibility: hidden state cascades from ancestors to descendants."""

from collections.abc import Iterable
from datetime import datetime

from loguru import logger

from menutree.errors import ResourceResolutionFailure
from menutree.models.node import MenuItem, ResourceInfo, ResourceLink
from menutree.protocols import ResourceResolverProtocol


def _resource_hides(
    item: MenuItem,
    link: ResourceLink,
    resolver: ResourceResolverProtocol,
    cache: dict[tuple[str, int], ResourceInfo | None | ResourceResolutionFailure],
) -> bool:
    if link.fallback_url:
        # A literal fallback keeps the item usable whatever the resolver says.
        return False

    key = (link.resource_type, link.resource_id)
    if key not in cache:
        try:
            cache[key] = resolver.resolve(*key)
        except ResourceResolutionFailure as e:
            cache[key] = e
    resource = cache[key]
    if isinstance(resource, ResourceResolutionFailure):
        logger.warning(
            "Resource validation failed for menu item {} ({} {}): {}",
            item.id, link.resource_type, link.resource_id, resource.reason,
        )
        return True
    return resource is None or resource.is_deleted


def self_hidden(
    items: Iterable[MenuItem],
    as_of: datetime,
    resolver: ResourceResolverProtocol | None = None,
) -> set[int]:
    """Ids of items hidden by their own rule or a dead resource link."""
    cache: dict[tuple[str, int], ResourceInfo | None | ResourceResolutionFailure] = {}
    hidden: set[int] = set()
    for item in items:
        if item.visibility.hides_at(as_of):
            hidden.add(item.id)
        elif (
            resolver is not None
            and isinstance(item.link, ResourceLink)
            and _resource_hides(item, item.link, resolver, cache)
        ):
            hidden.add(item.id)
    return hidden


def filter_visible(
    items: Iterable[MenuItem],
    as_of: datetime,
    resolver: ResourceResolverProtocol | None = None,
) -> list[MenuItem]:
    """Return the effectively visible items, in their input order.

    Pass 1 marks items hidden on their own. Pass 2 sweeps each tree in range
    order and hides everything inside the range of a hidden item, so no
    parent lookups are needed.

    Args:
        items: Items from one or more trees; ranges must be current.
        as_of: The instant to evaluate schedules at.
        resolver: Resolver for resource links; None skips resource checks.
    """
    items = list(items)
    hidden = self_hidden(items, as_of, resolver)

    # Ranges of different trees never overlap in meaning, so sweep per tree.
    by_tree: dict[int, list[MenuItem]] = {}
    for item in items:
        by_tree.setdefault(item.tree_id, []).append(item)
    for tree in by_tree.values():
        tree.sort(key=lambda i: i.range_start)
        hidden_until = 0
        for item in tree:
            if item.range_end < hidden_until:
                hidden.add(item.id)
            elif item.id in hidden:
                hidden_until = item.range_end

    return [item for item in items if item.id not in hidden]
