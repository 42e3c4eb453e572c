"""Consumer-side view that reconciles itself from data source events.

``ViewMirror`` does what a grid does with the notification channel: it
applies range events incrementally, re-fetches everything on
``dataloaded`` and patches rows on ``datachanged``.  It works against both
synchronous and deferred sources.  Deferred fetches fill placeholder slots
when they complete; results of fetches issued before the latest
``dataloaded`` are discarded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Sequence
from typing import Any

import structlog

from grid_datasource.base import DataSource, Record, RecordId
from grid_datasource.errors import NotFoundError, StaleDataError
from grid_datasource.events import DataSourceEvent, EventType
from grid_datasource.ranges import apply_range_event

logger = structlog.get_logger()


class PendingRow:
    """Placeholder for a row whose deferred fetch has not completed yet."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<pending>"


class ViewMirror:
    def __init__(self, source: DataSource, *, id_field: str = "id") -> None:
        self._source = source
        self._id_field = id_field
        self.rows: list[Any] = []
        self.events: list[DataSourceEvent] = []
        self._generation = 0
        self._pending: set[asyncio.Task[None]] = set()
        self._dispose = source.subscribe(self._on_event)
        if source.is_ready():
            self._reload()

    @property
    def settled(self) -> bool:
        return not self._pending

    def ids(self) -> list[RecordId | None]:
        return [
            None if isinstance(row, PendingRow) else row[self._id_field]
            for row in self.rows
        ]

    async def settle(self) -> None:
        """Wait until every deferred fetch has been applied."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def close(self) -> None:
        self._dispose()

    # -- Event handling --------------------------------------------------------

    def _on_event(self, event: DataSourceEvent) -> None:
        self.events.append(event)
        if event.type in (EventType.READY, EventType.DATA_LOADED):
            self._reload()
        elif event.type == EventType.ROWS_ADDED:
            apply_range_event(self.rows, event, self._fetch_range)
        elif event.type == EventType.ROWS_REMOVED:
            apply_range_event(self.rows, event, self._fetch_range)
        elif event.type == EventType.DATA_CHANGED:
            self._apply_change(event)

    def _reload(self) -> None:
        self._generation += 1
        result = self._source.get_data()
        if isinstance(result, Awaitable):
            self.rows = []
            self._defer(self._fill_all(result, self._generation))
        else:
            self.rows = list(result)

    def _fetch_range(self, start: int, end: int) -> Sequence[Any]:
        result = self._source.get_data(start, end)
        if not isinstance(result, Awaitable):
            return result
        slots = [PendingRow() for _ in range(end - start)]
        self._defer(self._fill_slots(result, slots, self._generation))
        return slots

    def _apply_change(self, event: DataSourceEvent) -> None:
        change = event.change
        updated: dict[RecordId, Record] = {
            row[self._id_field]: row for row in change.rows or ()
        }
        for cell in change.values or ():
            if cell.record_id in updated:
                continue
            try:
                updated[cell.record_id] = self._source.get_record_by_id(cell.record_id)
            except NotFoundError:
                logger.warning(
                    "view_mirror.changed_record_unknown", record_id=cell.record_id
                )
        if not updated:
            # No ids to reconcile by: fall back to a full refresh
            self._reload()
            return
        for i, row in enumerate(self.rows):
            if isinstance(row, PendingRow):
                continue
            replacement = updated.get(row[self._id_field])
            if replacement is not None:
                self.rows[i] = replacement

    # -- Deferred fetches ------------------------------------------------------

    def _defer(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _await_current(
        self, result: Awaitable[Sequence[Record]], generation: int
    ) -> Sequence[Record] | None:
        """Await a fetch; None if a later ``dataloaded`` made it obsolete."""
        try:
            rows = await result
        except StaleDataError:
            rows = None
        if rows is None or generation != self._generation:
            logger.debug("view_mirror.stale_fetch_dropped", generation=generation)
            return None
        return rows

    async def _fill_all(
        self, result: Awaitable[Sequence[Record]], generation: int
    ) -> None:
        rows = await self._await_current(result, generation)
        if rows is not None:
            self.rows = list(rows)

    async def _fill_slots(
        self,
        result: Awaitable[Sequence[Record]],
        slots: list[PendingRow],
        generation: int,
    ) -> None:
        rows = await self._await_current(result, generation)
        if rows is None:
            return
        positions = {id(slot): i for i, slot in enumerate(self.rows)}
        for slot, row in zip(slots, rows, strict=False):
            i = positions.get(id(slot))
            if i is not None:
                self.rows[i] = row
