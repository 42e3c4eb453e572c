"""Backend-agnostic data source protocol.

Defines the DataSource capability set a grid depends on, the optional
editing and sorting capabilities, and helpers to probe for them.  Backends
(in-memory arrays, remote paged APIs) satisfy the protocols structurally;
nothing here requires inheritance.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, TypeVar, runtime_checkable

from grid_datasource.channel import Disposer, EventHandler
from grid_datasource.config.models import RangePolicy, SortDirection
from grid_datasource.errors import UnsupportedOperationError
from grid_datasource.events import EventType

T = TypeVar("T")

RecordId = str | int
Record = Mapping[str, Any]
MaybeAwaitable = T | Awaitable[T]
Comparator = Callable[[Record, Record], int]


@dataclass(frozen=True, slots=True)
class SortKey:
    """One column of a sort order descriptor."""

    key: str
    direction: SortDirection = SortDirection.ASC


def comparator_for(order: Sequence[SortKey]) -> Comparator:
    """Build a comparator that orders records by each key of *order* in turn.

    Missing values sort before present ones regardless of direction.
    """

    def compare(a: Record, b: Record) -> int:
        for sort_key in order:
            left, right = a.get(sort_key.key), b.get(sort_key.key)
            if left == right:
                continue
            if left is None:
                return -1
            if right is None:
                return 1
            result = -1 if left < right else 1
            return -result if sort_key.direction == SortDirection.DESC else result
        return 0

    return compare


def sort_key_for(comparator: Comparator) -> Callable[[Record], Any]:
    return functools.cmp_to_key(comparator)


@runtime_checkable
class DataSource(Protocol):
    """Protocol every grid data source must satisfy.

    Retrieval may complete synchronously or return an awaitable; identity
    lookup is always synchronous and only covers records already handed out
    by ``get_data``.
    """

    @property
    def range_policy(self) -> RangePolicy:
        """Whether out-of-bounds ranges raise or are clamped."""
        ...

    def is_ready(self) -> bool:
        """Return True once the source accepts queries.  Never raises."""
        ...

    def record_count(self) -> MaybeAwaitable[int]:
        """Return the number of records in the data set."""
        ...

    def get_data(
        self, start: int | None = None, end: int | None = None
    ) -> MaybeAwaitable[Sequence[Record]]:
        """Return all records, or those at positions ``[start, end)``."""
        ...

    def get_record_by_id(self, record_id: RecordId) -> Record:
        """Return a previously fetched record by its identifier."""
        ...

    def subscribe(self, handler: EventHandler, *types: EventType) -> Disposer:
        """Register an event handler; the returned callable unsubscribes it."""
        ...


@runtime_checkable
class EditableDataSource(Protocol):
    def set_value(self, row_id: RecordId, key: str, value: Any) -> None:
        """Change one field; a matching ``datachanged`` event follows."""
        ...


@runtime_checkable
class SortableDataSource(Protocol):
    def sort(self, comparator: Comparator, order: Sequence[SortKey]) -> None:
        """Reorder the records; a ``dataloaded`` event follows."""
        ...


class Capability(StrEnum):
    """Optional operations a data source may offer."""

    EDIT = "edit"
    SORT = "sort"


_CAPABILITY_PROTOCOLS: dict[Capability, type] = {
    Capability.EDIT: EditableDataSource,
    Capability.SORT: SortableDataSource,
}


def supports(source: object, capability: Capability) -> bool:
    return isinstance(source, _CAPABILITY_PROTOCOLS[capability])


def capabilities(source: object) -> frozenset[Capability]:
    """Return the optional capabilities *source* exposes."""
    return frozenset(c for c in Capability if supports(source, c))


def require(source: object, capability: Capability) -> None:
    """Raise :class:`UnsupportedOperationError` if *capability* is missing."""
    if not supports(source, capability):
        raise UnsupportedOperationError(capability.value, source)


async def resolve(value: MaybeAwaitable[T]) -> T:
    """Await *value* if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value
