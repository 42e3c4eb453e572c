"""Reusable conformance checks for data source implementations.

Each check returns a :class:`CheckResult` instead of raising, so a whole
suite can run against a backend and be reported in one pass.  Checks test
the backend's declared range policy; none assume clamping.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from grid_datasource.base import (
    Capability,
    Comparator,
    DataSource,
    RecordId,
    SortKey,
    resolve,
    supports,
)
from grid_datasource.config.models import RangePolicy
from grid_datasource.errors import NotFoundError, RangeError
from grid_datasource.events import STRUCTURAL_EVENTS, DataSourceEvent, EventType
from grid_datasource.mirror import ViewMirror

logger = structlog.get_logger()


@dataclass
class CheckResult:
    name: str
    passed: bool
    detail: str = ""
    skipped: bool = False


@dataclass
class ConformanceReport:
    results: list[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def summary(self) -> dict[str, str]:
        return {
            r.name: "skipped" if r.skipped else ("passed" if r.passed else "failed")
            for r in self.results
        }


class _Recorder:
    def __init__(self, source: DataSource) -> None:
        self.events: list[DataSourceEvent] = []
        self._dispose = source.subscribe(self.events.append)

    def close(self) -> None:
        self._dispose()

    def of_type(self, *types: EventType) -> list[DataSourceEvent]:
        return [e for e in self.events if e.type in types]


def _ids(rows: Sequence[Any], id_field: str) -> list[RecordId]:
    return [row[id_field] for row in rows]


async def check_ready_transition(
    source: DataSource, make_ready: Callable[[], Any]
) -> CheckResult:
    """``ready`` fires exactly once and flips ``is_ready()`` permanently."""
    name = "ready_transition"
    if source.is_ready():
        return CheckResult(name, False, "source was ready before the transition")
    recorder = _Recorder(source)
    try:
        await resolve(make_ready())
        readies = len(recorder.of_type(EventType.READY))
        if readies != 1:
            return CheckResult(name, False, f"'ready' emitted {readies} time(s)")
        if not source.is_ready():
            return CheckResult(name, False, "is_ready() false after 'ready'")
        return CheckResult(name, True)
    except Exception as exc:
        return CheckResult(name, False, f"{type(exc).__name__}: {exc}")
    finally:
        recorder.close()


async def check_full_range(source: DataSource, *, id_field: str = "id") -> CheckResult:
    """``get_data(0, record_count())`` equals ``get_data()``."""
    name = "full_range"
    try:
        count = await resolve(source.record_count())
        everything = await resolve(source.get_data())
        ranged = await resolve(source.get_data(0, count))
    except Exception as exc:
        return CheckResult(name, False, f"{type(exc).__name__}: {exc}")
    if len(everything) != count:
        return CheckResult(
            name, False, f"get_data() returned {len(everything)} of {count} records"
        )
    if _ids(everything, id_field) != _ids(ranged, id_field):
        return CheckResult(name, False, "ranged retrieval differs from full retrieval")
    return CheckResult(name, True, f"{count} record(s)")


async def check_range_policy(
    source: DataSource, *, id_field: str = "id", repeats: int = 2
) -> CheckResult:
    """Out-of-bounds ranges behave per the declared policy on every call."""
    name = "range_policy"
    policy = source.range_policy
    try:
        count = await resolve(source.record_count())
        everything = _ids(await resolve(source.get_data()), id_field)
    except Exception as exc:
        return CheckResult(name, False, f"{type(exc).__name__}: {exc}")
    probes = [(0, count + 1), (-1, count)]
    if count:
        probes.append((1, 0))
    for start, end in probes:
        for _ in range(repeats):
            try:
                rows = await resolve(source.get_data(start, end))
            except RangeError:
                if policy == RangePolicy.STRICT:
                    continue
                return CheckResult(
                    name, False, f"clamp policy raised for [{start}, {end})"
                )
            except Exception as exc:
                return CheckResult(name, False, f"{type(exc).__name__}: {exc}")
            if policy == RangePolicy.STRICT:
                return CheckResult(
                    name, False, f"strict policy accepted [{start}, {end})"
                )
            lo = min(max(start, 0), count)
            hi = min(max(end, lo), count)
            if _ids(rows, id_field) != everything[lo:hi]:
                return CheckResult(
                    name, False, f"clamped [{start}, {end}) returned wrong rows"
                )
    return CheckResult(name, True, str(policy))


async def check_lookup(
    source: DataSource, *, id_field: str = "id", sample: int = 50
) -> CheckResult:
    """Fetched records resolve by id; unknown ids raise NotFoundError."""
    name = "lookup"
    try:
        count = await resolve(source.record_count())
        rows = await resolve(source.get_data(0, min(sample, count)))
        for row in rows:
            found = source.get_record_by_id(row[id_field])
            if found[id_field] != row[id_field]:
                return CheckResult(name, False, f"id {row[id_field]!r} resolved wrong")
        missing = f"missing-{uuid.uuid4().hex}"
        try:
            source.get_record_by_id(missing)
        except NotFoundError:
            pass
        else:
            return CheckResult(name, False, "unknown id did not raise NotFoundError")
    except Exception as exc:
        return CheckResult(name, False, f"{type(exc).__name__}: {exc}")
    return CheckResult(name, True, f"{len(rows)} record(s) resolved")


async def check_set_value(
    source: DataSource, record_id: RecordId, key: str, value: Any
) -> CheckResult:
    """An edit is announced by ``datachanged`` and visible to lookups."""
    name = "set_value"
    if not supports(source, Capability.EDIT):
        return CheckResult(name, True, "read-only source", skipped=True)
    recorder = _Recorder(source)
    try:
        await resolve(source.set_value(record_id, key, value))  # type: ignore[attr-defined]
        announced = any(
            record_id in e.change.record_ids()
            for e in recorder.of_type(EventType.DATA_CHANGED)
        )
        if not announced:
            return CheckResult(name, False, "no datachanged event referenced the edit")
        if source.get_record_by_id(record_id).get(key) != value:
            return CheckResult(name, False, "lookup does not reflect the edit")
    except Exception as exc:
        return CheckResult(name, False, f"{type(exc).__name__}: {exc}")
    finally:
        recorder.close()
    return CheckResult(name, True)


async def check_sort(
    source: DataSource,
    comparator: Comparator,
    order: Sequence[SortKey] = (),
) -> CheckResult:
    """A sort triggers ``dataloaded`` and never range events."""
    name = "sort"
    if not supports(source, Capability.SORT):
        return CheckResult(name, True, "source does not sort", skipped=True)
    recorder = _Recorder(source)
    try:
        await resolve(source.sort(comparator, order))  # type: ignore[attr-defined]
        if not recorder.of_type(EventType.DATA_LOADED):
            return CheckResult(name, False, "sort did not emit dataloaded")
        if recorder.of_type(*STRUCTURAL_EVENTS):
            return CheckResult(name, False, "sort emitted range events")
        rows = await resolve(source.get_data())
        for left, right in zip(rows, rows[1:], strict=False):
            if comparator(left, right) > 0:
                return CheckResult(name, False, "records are not in comparator order")
    except Exception as exc:
        return CheckResult(name, False, f"{type(exc).__name__}: {exc}")
    finally:
        recorder.close()
    return CheckResult(name, True)


async def check_replay(
    source: DataSource,
    mutate: Callable[[], Awaitable[None] | None],
    *,
    id_field: str = "id",
) -> CheckResult:
    """Replaying emitted events on a mirror reproduces the final ordering."""
    name = "replay"
    mirror = ViewMirror(source, id_field=id_field)
    try:
        await mirror.settle()
        await resolve(mutate())
        await mirror.settle()
        expected = _ids(await resolve(source.get_data()), id_field)
    except Exception as exc:
        return CheckResult(name, False, f"{type(exc).__name__}: {exc}")
    finally:
        mirror.close()
    if mirror.ids() != expected:
        return CheckResult(
            name, False, f"mirror {mirror.ids()!r} != source {expected!r}"
        )
    return CheckResult(name, True, f"{len(mirror.events)} event(s) replayed")


async def run_conformance(
    source: DataSource,
    *,
    id_field: str = "id",
    edit: tuple[RecordId, str, Any] | None = None,
    sort: tuple[Comparator, Sequence[SortKey]] | None = None,
) -> ConformanceReport:
    """Run every applicable check against a ready *source*."""
    report = ConformanceReport()
    ready = source.is_ready()
    report.results.append(CheckResult("readiness", ready, "" if ready else "not ready"))
    report.results.append(await check_full_range(source, id_field=id_field))
    report.results.append(await check_range_policy(source, id_field=id_field))
    report.results.append(await check_lookup(source, id_field=id_field))
    if edit is not None:
        report.results.append(await check_set_value(source, *edit))
    if sort is not None:
        report.results.append(await check_sort(source, *sort))
    for result in report.results:
        log = logger.info if result.passed else logger.warning
        log(
            "conformance.check",
            check=result.name,
            passed=result.passed,
            skipped=result.skipped,
            detail=result.detail,
        )
    return report
