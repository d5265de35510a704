"""
Error taxonomy for the catalog core.

NotFound, StoreUnavailable, AggregationError, DuplicateEntry and
JobAlreadyRunning propagate to the caller. CacheUnavailable never leaves the
cache adapter: every cache operation degrades to a miss or a no-op instead.
"""


class CineLinkError(Exception):
    """Base class for catalog errors."""


class NotFound(CineLinkError):
    """Target entity is missing or not in a visible/clickable state."""

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        message = f"{entity} not found" if entity_id is None else f"{entity} not found: {entity_id}"
        super().__init__(message)


class StoreUnavailable(CineLinkError):
    """Primary store could not be reached or rejected the operation."""


class CacheUnavailable(CineLinkError):
    """Cache store unreachable or not configured."""


class AggregationError(CineLinkError):
    """Malformed analytics input, such as an invalid time window."""


class DuplicateEntry(CineLinkError):
    """Write collides with a uniqueness constraint."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message)


class JobAlreadyRunning(CineLinkError):
    """A run of the same background job is still in progress."""
