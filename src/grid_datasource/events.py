"""Event model for the data source notification channel.

Five event kinds exist.  Structural events (``rowsadded``, ``rowsremoved``)
carry a :class:`RowRange`; ``datachanged`` carries a :class:`DataChange`;
``ready`` and ``dataloaded`` carry nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from grid_datasource.errors import ProtocolError


class EventType(StrEnum):
    """Event kinds emitted by a data source."""

    READY = "ready"
    ROWS_ADDED = "rowsadded"
    ROWS_REMOVED = "rowsremoved"
    DATA_LOADED = "dataloaded"
    DATA_CHANGED = "datachanged"


STRUCTURAL_EVENTS = frozenset({EventType.ROWS_ADDED, EventType.ROWS_REMOVED})


@dataclass(frozen=True, slots=True)
class RowRange:
    """Half-open block of positions ``[start, end)``."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0:
            msg = f"RowRange start must be >= 0, got {self.start}"
            raise ValueError(msg)
        if self.end <= self.start:
            msg = f"RowRange end must be > start, got [{self.start}, {self.end})"
            raise ValueError(msg)

    def __len__(self) -> int:
        return self.end - self.start

    def as_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True, slots=True)
class CellChange:
    """Identifies one changed cell by record id and column key."""

    record_id: str | int
    column_key: str


@dataclass(slots=True)
class DataChange:
    """Payload of a ``datachanged`` event.

    ``values`` lists the exact cells that changed; ``rows`` carries whole
    updated records.  Either, both or neither may be present; with neither,
    consumers reconcile the affected rows in full.
    """

    values: list[CellChange] | None = None
    rows: list[dict[str, Any]] | None = None

    def record_ids(self, id_field: str = "id") -> set[str | int]:
        ids: set[str | int] = set()
        for cell in self.values or ():
            ids.add(cell.record_id)
        for row in self.rows or ():
            ids.add(row[id_field])
        return ids


@dataclass(slots=True)
class DataSourceEvent:
    """Envelope delivered to subscribers.

    ``sequence`` is stamped by the channel at dispatch time and gives the
    single total order every subscriber observes.
    """

    type: EventType
    payload: RowRange | DataChange | None = None
    sequence: int = field(default=-1, compare=False)

    @property
    def range(self) -> RowRange:
        if not isinstance(self.payload, RowRange):
            msg = f"'{self.type}' event carries no row range"
            raise ProtocolError(msg)
        return self.payload

    @property
    def change(self) -> DataChange:
        if isinstance(self.payload, DataChange):
            return self.payload
        return DataChange()

    def validate(self) -> None:
        """Raise :class:`ProtocolError` if the payload does not fit the type."""
        if self.type in STRUCTURAL_EVENTS:
            if not isinstance(self.payload, RowRange):
                msg = f"'{self.type}' event requires a RowRange payload"
                raise ProtocolError(msg)
        elif self.type == EventType.DATA_CHANGED:
            if self.payload is not None and not isinstance(self.payload, DataChange):
                msg = "'datachanged' payload must be a DataChange"
                raise ProtocolError(msg)
        elif self.payload is not None:
            msg = f"'{self.type}' event carries no payload"
            raise ProtocolError(msg)


def rows_added(start: int, end: int) -> DataSourceEvent:
    return DataSourceEvent(EventType.ROWS_ADDED, RowRange(start, end))


def rows_removed(start: int, end: int) -> DataSourceEvent:
    return DataSourceEvent(EventType.ROWS_REMOVED, RowRange(start, end))


def data_changed(
    values: list[CellChange] | None = None,
    rows: list[dict[str, Any]] | None = None,
) -> DataSourceEvent:
    return DataSourceEvent(EventType.DATA_CHANGED, DataChange(values, rows))
