"""Exceptions raised by menu tree operations."""

from collections.abc import Mapping


class MenuTreeError(Exception):
    """Base class for all menu tree errors."""


class DepthExceeded(MenuTreeError):
    """A move or rebuild would place a node deeper than the menu allows."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Moving item would exceed maximum depth limit of {limit}")


class InvalidParent(MenuTreeError):
    """A node would belong to another tree or become its own ancestor."""


class NodeNotFound(MenuTreeError):
    """A referenced node id does not exist."""

    def __init__(self, node_id: int, what: str = "Menu item") -> None:
        self.node_id = node_id
        super().__init__(f"{what} {node_id} not found")


class FieldValidation(MenuTreeError):
    """Malformed input, rejected before touching the store."""

    def __init__(self, errors: Mapping[str, list[str]]) -> None:
        self.errors = {key: list(messages) for key, messages in errors.items()}
        super().__init__("Validation failed")


class ResourceResolutionFailure(MenuTreeError):
    """The resource resolver could not answer for a linked resource."""

    def __init__(self, resource_type: str, resource_id: int, reason: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.reason = reason
        super().__init__(f"Cannot resolve {resource_type} {resource_id}: {reason}")


class IntegrityError(MenuTreeError):
    """Stored ranges disagree with the parent links."""
