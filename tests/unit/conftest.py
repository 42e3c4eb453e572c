"""Shared fixtures for data source unit tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from grid_datasource.channel import Disposer, EventHandler
from grid_datasource.config.models import RangePolicy
from grid_datasource.events import EventType
from grid_datasource.memory import ArrayDataSource

COLORS = [
    {"id": 1, "name": "red"},
    {"id": 2, "name": "blue"},
    {"id": 3, "name": "green"},
    {"id": 4, "name": "orange"},
]

SEVEN_COLORS = [
    {"id": 1, "name": "red"},
    {"id": 5, "name": "mauve"},
    {"id": 2, "name": "blue"},
    {"id": 6, "name": "teal"},
    {"id": 7, "name": "purple"},
    {"id": 3, "name": "green"},
    {"id": 4, "name": "orange"},
]


class DeferredSource:
    """Wraps an ArrayDataSource so retrieval returns awaitables.

    The request is captured when the call is made, as a remote backend
    would send it, and resolves on a later loop iteration.
    """

    def __init__(self, inner: ArrayDataSource) -> None:
        self.inner = inner

    @property
    def range_policy(self) -> RangePolicy:
        return self.inner.range_policy

    def is_ready(self) -> bool:
        return self.inner.is_ready()

    def subscribe(self, handler: EventHandler, *types: EventType) -> Disposer:
        return self.inner.subscribe(handler, *types)

    def record_count(self) -> Any:
        return self._later(self.inner.record_count())

    def get_data(self, start: int | None = None, end: int | None = None) -> Any:
        return self._later(self.inner.get_data(start, end))

    def get_record_by_id(self, record_id: Any) -> dict[str, Any]:
        return self.inner.get_record_by_id(record_id)

    async def _later(self, value: Any) -> Any:
        await asyncio.sleep(0)
        return value


@pytest.fixture
def colors() -> ArrayDataSource:
    return ArrayDataSource(COLORS)


@pytest.fixture
def seven_colors() -> ArrayDataSource:
    return ArrayDataSource(SEVEN_COLORS)
