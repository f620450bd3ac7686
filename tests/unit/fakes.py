"""Fake implementations for testing menu trees."""

from datetime import datetime

from menutree.errors import ResourceResolutionFailure
from menutree.models.node import ResourceInfo


class FakeResolver:
    """In-memory fake for a resource resolver.

    Returns registered resources, None for anything else, and records all
    lookups for assertions.
    """

    def __init__(self) -> None:
        self.resources: dict[tuple[str, int], ResourceInfo] = {}
        self.failing: set[tuple[str, int]] = set()
        self.calls: list[tuple[str, int]] = []

    def add(self, resource_type: str, resource_id: int, *, name: str = "", slug: str | None = None,
            is_deleted: bool = False) -> None:
        """Register a resource under ``(resource_type, resource_id)``."""
        self.resources[(resource_type, resource_id)] = ResourceInfo(
            id=resource_id, name=name or f"{resource_type} {resource_id}", slug=slug,
            is_deleted=is_deleted,
        )

    def fail_on(self, resource_type: str, resource_id: int) -> None:
        """Make lookups of this resource raise ResourceResolutionFailure."""
        self.failing.add((resource_type, resource_id))

    def resolve(self, resource_type: str, resource_id: int) -> ResourceInfo | None:
        self.calls.append((resource_type, resource_id))
        if (resource_type, resource_id) in self.failing:
            raise ResourceResolutionFailure(resource_type, resource_id, "service unavailable")
        return self.resources.get((resource_type, resource_id))


class FakeClock:
    """Settable clock for the web app's CLOCK config."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now
