"""In-order, single-threaded event channel for one data source instance."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog

from grid_datasource.errors import ProtocolError
from grid_datasource.events import DataSourceEvent, EventType

logger = structlog.get_logger()

EventHandler = Callable[[DataSourceEvent], None]
Disposer = Callable[[], None]


@dataclass(slots=True, eq=False)
class _Subscription:
    handler: EventHandler
    types: frozenset[EventType] | None
    active: bool = True

    def wants(self, event: DataSourceEvent) -> bool:
        return self.active and (self.types is None or event.type in self.types)


class EventChannel:
    """Synchronous callback registry with a single total delivery order.

    Events emitted while a dispatch is in progress (for example from inside
    a handler) are queued and delivered once the current event has reached
    every subscriber, so handlers always run to completion before the next
    event for the same instance.
    """

    def __init__(self, name: str = "datasource") -> None:
        self._name = name
        self._subscriptions: list[_Subscription] = []
        self._queue: deque[DataSourceEvent] = deque()
        self._dispatching = False
        self._sequence = 0
        self._ready_emitted = False

    @property
    def subscriber_count(self) -> int:
        return sum(1 for s in self._subscriptions if s.active)

    @property
    def dispatching(self) -> bool:
        return self._dispatching

    @property
    def last_sequence(self) -> int:
        return self._sequence - 1

    def subscribe(self, handler: EventHandler, *types: EventType) -> Disposer:
        """Register *handler*; returns an idempotent disposer.

        With no *types* the handler receives every event kind.
        """
        sub = _Subscription(handler, frozenset(types) if types else None)
        self._subscriptions.append(sub)

        def dispose() -> None:
            if not sub.active:
                return
            sub.active = False
            self._subscriptions = [s for s in self._subscriptions if s is not sub]

        return dispose

    def emit(self, event: DataSourceEvent) -> None:
        self.emit_batch([event])

    def emit_batch(self, events: Iterable[DataSourceEvent]) -> None:
        """Validate every event of one logical change, then dispatch them all."""
        batch = list(events)
        ready_seen = self._ready_emitted
        for event in batch:
            event.validate()
            if event.type == EventType.READY:
                if ready_seen:
                    msg = f"'{self._name}' emitted 'ready' more than once"
                    raise ProtocolError(msg)
                ready_seen = True
        self._ready_emitted = ready_seen
        self._queue.extend(batch)
        if not self._dispatching:
            self._drain()

    def _drain(self) -> None:
        self._dispatching = True
        first_error: Exception | None = None
        try:
            while self._queue:
                event = self._queue.popleft()
                event.sequence = self._sequence
                self._sequence += 1
                # Snapshot: subscribers added mid-dispatch start with the next event
                for sub in list(self._subscriptions):
                    if not sub.wants(event):
                        continue
                    try:
                        sub.handler(event)
                    except Exception as exc:
                        logger.exception(
                            "channel.handler_failed",
                            channel=self._name,
                            event_type=str(event.type),
                            sequence=event.sequence,
                        )
                        if first_error is None:
                            first_error = exc
        finally:
            self._dispatching = False
        if first_error is not None:
            raise first_error
