"""Ordering and coalescing of structural (rowsadded / rowsremoved) events.

A consumer applies range events literally, one at a time, against the view
it already holds.  For that to reproduce the source's final ordering:

* ``rowsadded`` ranges are expressed in post-insertion positions and must be
  emitted from the lowest final index to the highest, so every block is
  inserted after all blocks that precede it in the final ordering.
* ``rowsremoved`` ranges are expressed in pre-removal positions and must be
  emitted from the highest index to the lowest, so removing one block never
  shifts a block that has yet to be removed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, MutableSequence, Sequence
from typing import Any

from grid_datasource.errors import ProtocolError, RangeError
from grid_datasource.events import DataSourceEvent, EventType, RowRange


def contiguous_blocks(positions: Iterable[int]) -> list[RowRange]:
    """Coalesce positions into ascending runs of consecutive indices."""
    blocks: list[RowRange] = []
    start = end = None
    for pos in sorted(set(positions)):
        if pos < 0:
            msg = f"Position must be >= 0, got {pos}"
            raise ValueError(msg)
        if end is not None and pos == end:
            end += 1
            continue
        if start is not None:
            blocks.append(RowRange(start, end))
        start, end = pos, pos + 1
    if start is not None:
        blocks.append(RowRange(start, end))
    return blocks


def insertion_ranges(final_positions: Iterable[int]) -> list[RowRange]:
    """Ranges for ``rowsadded`` events, in emission order (ascending)."""
    return contiguous_blocks(final_positions)


def removal_ranges(positions: Iterable[int]) -> list[RowRange]:
    """Ranges for ``rowsremoved`` events, in emission order (descending)."""
    return list(reversed(contiguous_blocks(positions)))


def final_insert_positions(
    initial_size: int, inserts: Sequence[tuple[int, int]]
) -> list[int]:
    """Map a batch of ``(position, count)`` inserts to final positions.

    Each insert's *position* is expressed against the ordering produced by
    the inserts before it in the same batch.  Returns the final position of
    every inserted record, ascending.
    """
    size = initial_size
    placed: list[int] = []
    for position, count in inserts:
        if not 0 <= position <= size:
            raise RangeError(position, position, size)
        if count < 0:
            msg = f"Insert count must be >= 0, got {count}"
            raise ValueError(msg)
        placed = [p + count if p >= position else p for p in placed]
        placed.extend(range(position, position + count))
        size += count
    return sorted(placed)


def apply_range_event(
    rows: MutableSequence[Any],
    event: DataSourceEvent,
    fetch: Callable[[int, int], Sequence[Any]],
) -> None:
    """Apply one structural event to *rows* using its indices literally.

    *fetch* supplies the records of a ``rowsadded`` range; it is called with
    the event's own post-insertion ``start``/``end``.
    """
    span = event.range
    if event.type == EventType.ROWS_ADDED:
        if span.start > len(rows):
            msg = f"rowsadded start {span.start} beyond view of {len(rows)} row(s)"
            raise ProtocolError(msg)
        added = list(fetch(span.start, span.end))
        if len(added) != len(span):
            msg = f"Fetched {len(added)} row(s) for a {len(span)}-row insertion"
            raise ProtocolError(msg)
        rows[span.start : span.start] = added
    elif event.type == EventType.ROWS_REMOVED:
        if span.end > len(rows):
            msg = f"rowsremoved end {span.end} beyond view of {len(rows)} row(s)"
            raise ProtocolError(msg)
        del rows[span.start : span.end]
    else:
        msg = f"'{event.type}' is not a structural event"
        raise ProtocolError(msg)
