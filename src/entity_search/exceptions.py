"""Error kinds raised by the search subsystem."""

from __future__ import annotations


class EntitySearchError(Exception):
    """Base class for all search subsystem errors."""

    retryable: bool = False


class SourceUnavailable(EntitySearchError):
    """An entity loader could not reach or fully read its source."""

    retryable = True

    def __init__(self, entity_type: str, reason: str) -> None:
        self.entity_type = entity_type
        self.reason = reason
        super().__init__(f"Source for '{entity_type}' unavailable: {reason}")


class IndexNotReady(EntitySearchError):
    """A query arrived before the first index snapshot was published."""

    retryable = True

    def __init__(self, message: str = "Search index is still building") -> None:
        super().__init__(message)


class InvalidQuery(EntitySearchError):
    """A query failed validation at the query boundary (e.g. malformed filters)."""
