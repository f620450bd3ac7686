"""Domain models for menu trees."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

ALWAYS_SHOW = "always_show"
ALWAYS_HIDE = "always_hide"
SCHEDULE = "schedule"
VISIBILITY_TYPES = (ALWAYS_SHOW, ALWAYS_HIDE, SCHEDULE)


@dataclass(frozen=True)
class Visibility:
    """A node's own visibility rule, before any cascading."""

    is_active: bool = True
    display_at: datetime | None = None
    hide_at: datetime | None = None

    @property
    def visibility_type(self) -> str:
        """Presentation-only label for admin clients."""
        if not self.is_active:
            return ALWAYS_HIDE
        if self.display_at is not None or self.hide_at is not None:
            return SCHEDULE
        return ALWAYS_SHOW

    def hides_at(self, as_of: datetime) -> bool:
        """True if the rule alone hides the node at ``as_of``.

        ``display_at`` is inclusive, ``hide_at`` hides from that instant on.
        A naive ``as_of`` is taken as UTC, like stored timestamps.
        """
        if not self.is_active:
            return True
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=UTC)
        if self.display_at is not None and as_of < self.display_at:
            return True
        return self.hide_at is not None and as_of >= self.hide_at


@dataclass(frozen=True)
class UrlLink:
    """A literal URL or path."""

    url: str


@dataclass(frozen=True)
class ResourceLink:
    """A reference to an externally resolved resource."""

    resource_type: str
    resource_id: int
    resource_slug: str | None = None
    fallback_url: str | None = None


LinkTarget = UrlLink | ResourceLink | None


@dataclass(frozen=True)
class MenuItem:
    """A single node in a menu tree."""

    id: int
    tree_id: int
    parent_id: int | None
    name: str
    position: int
    range_start: int
    range_end: int
    depth: int = 0
    link: LinkTarget = None
    visibility: Visibility = field(default_factory=Visibility)
    is_root: bool = False
    slug: str | None = None
    max_depth: int | None = None
    icon: str | None = None
    target: str = "_self"
    css_class: str | None = None
    created_at: int = 0
    updated_at: int = 0

    def contains(self, other: "MenuItem") -> bool:
        """True if ``other`` is a strict descendant of this node."""
        return (
            self.tree_id == other.tree_id
            and self.range_start < other.range_start
            and other.range_end < self.range_end
        )


@dataclass(frozen=True)
class Menu:
    """Tree-level view of a root node."""

    id: int
    name: str
    slug: str
    max_depth: int
    is_active: bool
    item_count: int = 0
    created_at: int = 0
    updated_at: int = 0


@dataclass(frozen=True)
class ResourceInfo:
    """What the resource resolver knows about a linked resource."""

    id: int
    name: str
    slug: str | None
    is_deleted: bool = False


@dataclass(frozen=True)
class IntegrityProblem:
    """One violation found by an integrity check."""

    node_id: int
    message: str
