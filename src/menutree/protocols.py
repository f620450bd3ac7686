"""Protocols for dependency injection in the menu tree."""

from typing import Protocol, runtime_checkable

from menutree.models.node import ResourceInfo


@runtime_checkable
class ResourceResolverProtocol(Protocol):
    """Protocol for looking up resources that menu items link to."""

    def resolve(self, resource_type: str, resource_id: int) -> ResourceInfo | None:
        """Return the resource, or None if it does not exist.

        Raises ResourceResolutionFailure when the lookup itself fails.
        """
        ...
