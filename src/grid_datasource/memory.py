"""In-memory, array-backed data source.

Retrieval is synchronous.  Every mutation validates the whole batch before
touching state, so a rejected batch emits no events.  Range policy is taken
from :class:`DataSourceConfig` (``strict`` unless configured otherwise).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import structlog

from grid_datasource.base import (
    Comparator,
    Record,
    RecordId,
    SortKey,
    sort_key_for,
)
from grid_datasource.channel import Disposer, EventChannel, EventHandler
from grid_datasource.config.models import DataSourceConfig, RangePolicy
from grid_datasource.errors import (
    DuplicateIdError,
    NotFoundError,
    NotReadyError,
    ProtocolError,
    RangeError,
)
from grid_datasource.events import (
    CellChange,
    DataSourceEvent,
    EventType,
    data_changed,
    rows_added,
    rows_removed,
)
from grid_datasource.ranges import (
    final_insert_positions,
    insertion_ranges,
    removal_ranges,
)

logger = structlog.get_logger()


def clamp_range(
    start: int | None, end: int | None, count: int, policy: RangePolicy
) -> tuple[int, int]:
    """Normalize a retrieval range against *count* according to *policy*."""
    lo = 0 if start is None else start
    hi = count if end is None else end
    if policy == RangePolicy.CLAMP:
        lo = min(max(lo, 0), count)
        hi = min(max(hi, lo), count)
        return lo, hi
    if lo < 0 or hi < lo or hi > count:
        raise RangeError(lo, hi, count)
    return lo, hi


class ArrayDataSource:
    """Data source over a Python list of records, with editing and sorting."""

    def __init__(
        self,
        records: Iterable[Record] | None = None,
        *,
        config: DataSourceConfig | None = None,
    ) -> None:
        self._config = config or DataSourceConfig()
        self._id_field = self._config.id_field
        self._records: list[dict[str, Any]] = []
        self._index: dict[RecordId, dict[str, Any]] = {}
        self._ready = False
        self._sort_order: tuple[SortKey, ...] = ()
        self._channel = EventChannel(self._config.source_id)
        initial = records if records is not None else self._config.records
        if initial is not None:
            self.load(initial)

    @classmethod
    def from_config(cls, config: DataSourceConfig) -> ArrayDataSource:
        """Build a source seeded with the records declared in *config*."""
        return cls(config=config)

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def range_policy(self) -> RangePolicy:
        return self._config.range_policy

    @property
    def id_field(self) -> str:
        return self._id_field

    @property
    def sort_order(self) -> tuple[SortKey, ...]:
        return self._sort_order

    # -- Contract --------------------------------------------------------------

    def is_ready(self) -> bool:
        return self._ready

    def subscribe(self, handler: EventHandler, *types: EventType) -> Disposer:
        return self._channel.subscribe(handler, *types)

    def record_count(self) -> int:
        self._require_ready()
        return len(self._records)

    def get_data(
        self, start: int | None = None, end: int | None = None
    ) -> list[dict[str, Any]]:
        self._require_ready()
        lo, hi = clamp_range(start, end, len(self._records), self.range_policy)
        return self._records[lo:hi]

    def get_record_by_id(self, record_id: RecordId) -> dict[str, Any]:
        try:
            return self._index[record_id]
        except KeyError:
            raise NotFoundError(record_id) from None

    def set_value(self, row_id: RecordId, key: str, value: Any) -> None:
        self._require_ready()
        if key == self._id_field:
            msg = f"The id field '{key}' cannot be changed with set_value"
            raise ValueError(msg)
        current = self.get_record_by_id(row_id)
        updated = {**current, key: value}
        self._replace(current, updated)
        logger.debug(
            "array_source.value_set", source_id=self.source_id, row_id=row_id, key=key
        )
        self._channel.emit(
            data_changed(values=[CellChange(row_id, key)], rows=[updated])
        )

    def sort(self, comparator: Comparator, order: Sequence[SortKey] = ()) -> None:
        self._require_ready()
        self._require_idle("sort")
        self._records.sort(key=sort_key_for(comparator))
        self._sort_order = tuple(order)
        logger.debug(
            "array_source.sorted",
            source_id=self.source_id,
            order=[f"{k.key}:{k.direction}" for k in self._sort_order],
        )
        self._channel.emit(DataSourceEvent(EventType.DATA_LOADED))

    # -- Backend mutations -----------------------------------------------------

    def load(self, records: Iterable[Record]) -> None:
        """Replace every record; the first load makes the source ready."""
        self._require_idle("load")
        rows = [dict(r) for r in records]
        index = self._build_index(rows, {})
        self._records = rows
        self._index = index
        self._sort_order = ()
        events = [DataSourceEvent(EventType.DATA_LOADED)]
        if not self._ready:
            self._ready = True
            events.insert(0, DataSourceEvent(EventType.READY))
        logger.info("array_source.loaded", source_id=self.source_id, records=len(rows))
        self._channel.emit_batch(events)

    def insert(self, batch: Sequence[tuple[int, Sequence[Record]]]) -> None:
        """Insert blocks of records as one logical change.

        Each ``(position, records)`` entry's position is expressed against
        the ordering left by the entries before it in *batch*.
        """
        self._require_ready()
        self._require_idle("insert")
        blocks = [(pos, [dict(r) for r in recs]) for pos, recs in batch]
        final = final_insert_positions(
            len(self._records), [(pos, len(recs)) for pos, recs in blocks]
        )
        added = self._build_index(
            [r for _, recs in blocks for r in recs], self._index
        )
        rows = list(self._records)
        for pos, recs in blocks:
            rows[pos:pos] = recs
        self._records = rows
        self._index.update(added)
        ranges = insertion_ranges(final)
        logger.debug(
            "array_source.inserted",
            source_id=self.source_id,
            records=len(final),
            blocks=len(ranges),
        )
        self._channel.emit_batch(rows_added(r.start, r.end) for r in ranges)

    def append(self, records: Sequence[Record]) -> None:
        self.insert([(len(self._records), records)])

    def remove(self, record_ids: Iterable[RecordId]) -> None:
        """Remove records by id as one logical change."""
        self._require_ready()
        self._require_idle("remove")
        doomed = set()
        for record_id in record_ids:
            if record_id not in self._index:
                raise NotFoundError(record_id)
            doomed.add(record_id)
        positions = [
            i for i, r in enumerate(self._records) if r[self._id_field] in doomed
        ]
        ranges = removal_ranges(positions)
        self._records = [r for r in self._records if r[self._id_field] not in doomed]
        for record_id in doomed:
            del self._index[record_id]
        logger.debug(
            "array_source.removed",
            source_id=self.source_id,
            records=len(positions),
            blocks=len(ranges),
        )
        self._channel.emit_batch(rows_removed(r.start, r.end) for r in ranges)

    def update(self, records: Iterable[Record]) -> None:
        """Apply backend-originated field changes to existing records."""
        self._require_ready()
        merged: dict[RecordId, dict[str, Any]] = {}
        for patch in records:
            record_id = self._id_of(patch)
            base = merged.get(record_id) or self.get_record_by_id(record_id)
            merged[record_id] = {**base, **patch}
        if not merged:
            return
        changes = [(self._index[rid], updated) for rid, updated in merged.items()]
        cells: list[CellChange] = []
        for current, updated in changes:
            self._replace(current, updated)
            cells.extend(
                CellChange(updated[self._id_field], key)
                for key, value in updated.items()
                if key not in current or current[key] != value
            )
        logger.debug(
            "array_source.updated", source_id=self.source_id, records=len(changes)
        )
        self._channel.emit(
            data_changed(values=cells, rows=[updated for _, updated in changes])
        )

    # -- Internals -------------------------------------------------------------

    def _require_ready(self) -> None:
        if not self._ready:
            msg = f"Data source '{self.source_id}' is not ready"
            raise NotReadyError(msg)

    def _require_idle(self, operation: str) -> None:
        # Positions in queued range events refer to the ordering that produced
        # them; a reorder or structural change mid-delivery would invalidate them.
        if self._channel.dispatching:
            msg = (
                f"Cannot {operation} '{self.source_id}' "
                "while events are being delivered"
            )
            raise ProtocolError(msg)

    def _build_index(
        self, rows: Sequence[dict[str, Any]], existing: dict[RecordId, Any]
    ) -> dict[RecordId, dict[str, Any]]:
        index: dict[RecordId, dict[str, Any]] = {}
        for row in rows:
            record_id = self._id_of(row)
            if record_id in index or record_id in existing:
                raise DuplicateIdError(record_id)
            index[record_id] = row
        return index

    def _id_of(self, row: Record) -> RecordId:
        try:
            return row[self._id_field]
        except KeyError:
            msg = f"Record is missing the id field '{self._id_field}': {row!r}"
            raise ValueError(msg) from None

    def _replace(self, current: dict[str, Any], updated: dict[str, Any]) -> None:
        for i, row in enumerate(self._records):
            if row is current:
                self._records[i] = updated
                break
        self._index[updated[self._id_field]] = updated
