"""Unit tests for the paged HttpDataSource."""

from __future__ import annotations

import httpx
import pytest
import respx

from grid_datasource.base import Capability, capabilities, require
from grid_datasource.config.models import (
    DataSourceConfig,
    HttpSourceConfig,
    RangePolicy,
    RetryConfig,
)
from grid_datasource.errors import (
    NotFoundError,
    NotReadyError,
    RangeError,
    RemoteError,
    StaleDataError,
    UnsupportedOperationError,
)
from grid_datasource.events import DataSourceEvent, EventType
from grid_datasource.remote import HttpDataSource

BASE = "http://api.test/colors"
ROWS = [{"id": i, "name": f"color-{i}"} for i in range(5)]


def _make_source(
    *,
    page_size: int = 2,
    policy: RangePolicy = RangePolicy.STRICT,
    auth_token: str | None = None,
    max_attempts: int = 2,
) -> HttpDataSource:
    return HttpDataSource(
        DataSourceConfig(
            source_id="remote",
            backend="http",
            range_policy=policy,
            http=HttpSourceConfig(
                base_url=BASE, page_size=page_size, auth_token=auth_token
            ),
            retry=RetryConfig(
                max_attempts=max_attempts,
                initial_wait_seconds=0.01,
                max_wait_seconds=0.05,
                jitter=False,
            ),
        )
    )


def _serve(
    respx_mock: respx.MockRouter, rows: list[dict] | None = None
) -> respx.Route:
    rows = list(ROWS) if rows is None else rows

    def count(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"count": len(rows)})

    respx_mock.get(f"{BASE}/count").side_effect = count

    def records(request: httpx.Request) -> httpx.Response:
        start = int(request.url.params["start"])
        end = int(request.url.params["end"])
        return httpx.Response(200, json={"records": rows[start:end]})

    route = respx_mock.get(url__startswith=f"{BASE}/records")
    route.side_effect = records
    return route


def test_requires_http_config():
    with pytest.raises(ValueError, match="http sub-config"):
        HttpDataSource(DataSourceConfig())


def test_read_only_capabilities():
    source = _make_source()
    assert capabilities(source) == frozenset()
    with pytest.raises(UnsupportedOperationError):
        require(source, Capability.EDIT)


@pytest.mark.asyncio
@pytest.mark.respx(assert_all_called=False)
class TestHttpDataSource:
    async def test_start_emits_ready(self, respx_mock: respx.MockRouter):
        _serve(respx_mock)
        source = _make_source()
        events: list[DataSourceEvent] = []
        source.subscribe(events.append)
        assert source.is_ready() is False

        async with source:
            assert source.is_ready() is True
            assert await source.record_count() == 5
            await source.start()

        assert [e.type for e in events] == [EventType.READY]

    async def test_not_ready_before_start(self):
        source = _make_source()
        with pytest.raises(NotReadyError):
            await source.record_count()
        with pytest.raises(NotReadyError):
            await source.get_data()

    async def test_get_data_is_split_into_pages(self, respx_mock: respx.MockRouter):
        route = _serve(respx_mock)
        async with _make_source(page_size=2) as source:
            rows = await source.get_data()

        assert rows == ROWS
        requested = [
            (call.request.url.params["start"], call.request.url.params["end"])
            for call in route.calls
        ]
        assert requested == [("0", "2"), ("2", "4"), ("4", "5")]

    async def test_full_range_matches_get_data(self, respx_mock: respx.MockRouter):
        _serve(respx_mock)
        async with _make_source() as source:
            count = await source.record_count()
            assert await source.get_data(0, count) == await source.get_data()

    async def test_lookup_uses_cache_only(self, respx_mock: respx.MockRouter):
        route = _serve(respx_mock)
        async with _make_source() as source:
            with pytest.raises(NotFoundError):
                source.get_record_by_id(3)
            await source.get_data(2, 4)
            calls = route.call_count

            assert source.get_record_by_id(3)["name"] == "color-3"
            assert route.call_count == calls

    async def test_strict_range_fails_without_request(
        self, respx_mock: respx.MockRouter
    ):
        route = _serve(respx_mock)
        async with _make_source() as source:
            for _ in range(2):
                with pytest.raises(RangeError):
                    await source.get_data(3, 9)
        assert route.call_count == 0

    async def test_clamp_range(self, respx_mock: respx.MockRouter):
        _serve(respx_mock)
        async with _make_source(policy=RangePolicy.CLAMP) as source:
            rows = await source.get_data(3, 9)
        assert [r["id"] for r in rows] == [3, 4]

    async def test_refresh_emits_dataloaded_and_drops_cache(
        self, respx_mock: respx.MockRouter
    ):
        rows = list(ROWS)
        _serve(respx_mock, rows)
        async with _make_source() as source:
            await source.get_data()
            events: list[DataSourceEvent] = []
            source.subscribe(events.append)

            del rows[3:]
            await source.refresh()

            assert [e.type for e in events] == [EventType.DATA_LOADED]
            assert await source.record_count() == 3
            assert source.generation == 1
            with pytest.raises(NotFoundError):
                source.get_record_by_id(0)

    async def test_refresh_mid_fetch_raises_stale(
        self, respx_mock: respx.MockRouter, monkeypatch: pytest.MonkeyPatch
    ):
        _serve(respx_mock)
        async with _make_source(page_size=2) as source:
            fetch_page = source._fetch_page
            refreshed: list[bool] = []

            async def refreshing_fetch(start: int, end: int) -> list[dict]:
                page = await fetch_page(start, end)
                if not refreshed:
                    refreshed.append(True)
                    await source.refresh()
                return page

            monkeypatch.setattr(source, "_fetch_page", refreshing_fetch)
            with pytest.raises(StaleDataError):
                await source.get_data()

    async def test_auth_header_set(self, respx_mock: respx.MockRouter):
        _serve(respx_mock)
        async with _make_source(auth_token="secret-token"):
            pass
        request = respx_mock.calls[0].request
        assert request.headers["Authorization"] == "Bearer secret-token"

    async def test_retries_on_5xx(self, respx_mock: respx.MockRouter):
        route = respx_mock.get(f"{BASE}/count")
        route.side_effect = [
            httpx.Response(503),
            httpx.Response(200, json={"count": 0}),
        ]
        async with _make_source(max_attempts=3) as source:
            assert await source.record_count() == 0
        assert route.call_count == 2

    async def test_gives_up_after_max_attempts(self, respx_mock: respx.MockRouter):
        route = respx_mock.get(f"{BASE}/count").mock(return_value=httpx.Response(500))
        source = _make_source(max_attempts=2)
        with pytest.raises(httpx.HTTPStatusError):
            await source.start()
        assert route.call_count == 2
        assert source._client is None
        assert source.is_ready() is False

    async def test_malformed_count(self, respx_mock: respx.MockRouter):
        respx_mock.get(f"{BASE}/count").mock(
            return_value=httpx.Response(200, json={"total": 3})
        )
        source = _make_source()
        with pytest.raises(RemoteError, match="count"):
            async with source:
                pass
        assert source._client is None
        assert source.is_ready() is False

    async def test_short_page(self, respx_mock: respx.MockRouter):
        respx_mock.get(f"{BASE}/count").mock(
            return_value=httpx.Response(200, json={"count": 4})
        )
        respx_mock.get(url__startswith=f"{BASE}/records").mock(
            return_value=httpx.Response(200, json={"records": [{"id": 1}]})
        )
        async with _make_source(page_size=10) as source:
            with pytest.raises(RemoteError, match="Expected 4"):
                await source.get_data()

    async def test_record_without_id(self, respx_mock: respx.MockRouter):
        respx_mock.get(f"{BASE}/count").mock(
            return_value=httpx.Response(200, json={"count": 1})
        )
        respx_mock.get(url__startswith=f"{BASE}/records").mock(
            return_value=httpx.Response(200, json={"records": [{"name": "x"}]})
        )
        async with _make_source() as source:
            with pytest.raises(RemoteError, match="without 'id'"):
                await source.get_data()
