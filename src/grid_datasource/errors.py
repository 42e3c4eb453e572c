"""Error taxonomy for data sources."""

from __future__ import annotations

from typing import Any


class DataSourceError(Exception):
    """Base class for every error raised by a data source."""


class RangeError(DataSourceError, IndexError):
    """Raised when a retrieval range falls outside the current record set."""

    def __init__(self, start: int, end: int, count: int) -> None:
        self.start = start
        self.end = end
        self.count = count
        super().__init__(
            f"Range [{start}, {end}) is out of bounds for {count} record(s)"
        )


class NotFoundError(DataSourceError, LookupError):
    """Raised when no record with the given identifier is known."""

    def __init__(self, record_id: Any) -> None:
        self.record_id = record_id
        super().__init__(f"No record with id {record_id!r}")


class UnsupportedOperationError(DataSourceError, NotImplementedError):
    """Raised when an optional capability is requested but not implemented."""

    def __init__(self, capability: str, source: object) -> None:
        self.capability = capability
        super().__init__(
            f"{type(source).__name__} does not support the '{capability}' capability"
        )


class NotReadyError(DataSourceError):
    """Raised when a source is queried before it has become ready."""


class DuplicateIdError(DataSourceError, ValueError):
    """Raised when a mutation would leave two records with the same id."""

    def __init__(self, record_id: Any) -> None:
        self.record_id = record_id
        super().__init__(f"Duplicate record id {record_id!r}")


class ProtocolError(DataSourceError):
    """Raised when an emitted event violates the notification contract."""


class StaleDataError(DataSourceError):
    """Raised when a deferred result was invalidated by a full refresh."""


class RemoteError(DataSourceError):
    """Raised when a remote backend returns a malformed payload."""
