"""Nested, ordered, depth-limited menu trees."""

from menutree.errors import (
    DepthExceeded,
    FieldValidation,
    IntegrityError,
    InvalidParent,
    MenuTreeError,
    NodeNotFound,
    ResourceResolutionFailure,
)
from menutree.protocols import ResourceResolverProtocol
from menutree.store import TreeStore

__all__ = [
    "DepthExceeded",
    "FieldValidation",
    "IntegrityError",
    "InvalidParent",
    "MenuTreeError",
    "NodeNotFound",
    "ResourceResolutionFailure",
    "ResourceResolverProtocol",
    "TreeStore",
]
