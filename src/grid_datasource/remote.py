"""Read-only data source backed by a paged HTTP API.

Every retrieval is a coroutine.  Records handed out by ``get_data`` are
cached by id so ``get_record_by_id`` stays synchronous and never fetches.
The record count is the one observed by the last ``start``/``refresh``; a
refresh emits ``dataloaded`` and invalidates any ``get_data`` still in
flight (it raises :class:`StaleDataError` instead of returning rows from the
discarded ordering).

Expected endpoints::

    GET {base_url}/count                     -> {"count": 42}
    GET {base_url}/records?start=0&end=100   -> {"records": [...]}
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from grid_datasource.base import RecordId
from grid_datasource.channel import Disposer, EventChannel, EventHandler
from grid_datasource.config.models import DataSourceConfig, RangePolicy
from grid_datasource.errors import (
    NotFoundError,
    NotReadyError,
    RemoteError,
    StaleDataError,
)
from grid_datasource.events import DataSourceEvent, EventType
from grid_datasource.memory import clamp_range

logger = structlog.get_logger()


class HttpDataSource:
    """Paged, remote data source.  Offers neither editing nor sorting."""

    def __init__(self, config: DataSourceConfig) -> None:
        self._config = config
        if config.http is None:
            msg = "HttpDataSource requires an http sub-config"
            raise ValueError(msg)
        self._http = config.http
        self._client: httpx.AsyncClient | None = None
        self._channel = EventChannel(config.source_id)
        self._ready = False
        self._count = 0
        self._generation = 0
        self._cache: dict[RecordId, dict[str, Any]] = {}

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def range_policy(self) -> RangePolicy:
        return self._config.range_policy

    @property
    def generation(self) -> int:
        return self._generation

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Open the HTTP client, read the record count and become ready."""
        if self._client is None:
            headers: dict[str, str] = dict(self._http.headers)
            if self._http.auth_token is not None:
                headers["Authorization"] = (
                    f"Bearer {self._http.auth_token.get_secret_value()}"
                )
            self._client = httpx.AsyncClient(
                base_url=self._http.base_url,
                headers=headers,
                timeout=httpx.Timeout(self._http.timeout_seconds),
            )
        if self._ready:
            return
        try:
            self._count = await self._fetch_count()
        except Exception:
            await self.close()
            raise
        self._ready = True
        logger.info(
            "http_source.ready",
            source_id=self.source_id,
            url=self._http.base_url,
            records=self._count,
        )
        self._channel.emit(DataSourceEvent(EventType.READY))

    async def refresh(self) -> None:
        """Re-read the record count, drop the cache and emit ``dataloaded``."""
        self._require_ready()
        count = await self._fetch_count()
        self._generation += 1
        self._count = count
        self._cache.clear()
        logger.info(
            "http_source.refreshed",
            source_id=self.source_id,
            records=count,
            generation=self._generation,
        )
        self._channel.emit(DataSourceEvent(EventType.DATA_LOADED))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("http_source.closed", source_id=self.source_id)

    async def __aenter__(self) -> HttpDataSource:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- Contract --------------------------------------------------------------

    def is_ready(self) -> bool:
        return self._ready

    def subscribe(self, handler: EventHandler, *types: EventType) -> Disposer:
        return self._channel.subscribe(handler, *types)

    async def record_count(self) -> int:
        self._require_ready()
        return self._count

    async def get_data(
        self, start: int | None = None, end: int | None = None
    ) -> list[dict[str, Any]]:
        self._require_ready()
        generation = self._generation
        lo, hi = clamp_range(start, end, self._count, self.range_policy)
        rows: list[dict[str, Any]] = []
        for page_start in range(lo, hi, self._http.page_size):
            page_end = min(page_start + self._http.page_size, hi)
            page = await self._fetch_page(page_start, page_end)
            if generation != self._generation:
                msg = (
                    f"Data source '{self.source_id}' was refreshed while "
                    f"fetching [{lo}, {hi})"
                )
                raise StaleDataError(msg)
            rows.extend(page)
        for row in rows:
            self._cache[row[self._config.id_field]] = row
        return rows

    def get_record_by_id(self, record_id: RecordId) -> dict[str, Any]:
        try:
            return self._cache[record_id]
        except KeyError:
            raise NotFoundError(record_id) from None

    # -- HTTP ------------------------------------------------------------------

    def _require_ready(self) -> None:
        if not self._ready:
            msg = f"Data source '{self.source_id}' is not ready; call start() first"
            raise NotReadyError(msg)

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        if self._client is None:
            msg = "HttpDataSource not started; call start() first"
            raise NotReadyError(msg)
        client = self._client
        retry_cfg = self._config.retry
        retrying = AsyncRetrying(
            stop=stop_after_attempt(retry_cfg.max_attempts),
            wait=wait_exponential_jitter(
                initial=retry_cfg.initial_wait_seconds,
                max=retry_cfg.max_wait_seconds,
                exp_base=retry_cfg.multiplier,
                jitter=retry_cfg.initial_wait_seconds if retry_cfg.jitter else 0,
            ),
            retry=retry_if_exception_type(
                (httpx.HTTPStatusError, httpx.TransportError)
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await client.get(path, params=params)
                response.raise_for_status()
        try:
            return response.json()
        except ValueError as exc:
            msg = f"Non-JSON response from {path}"
            raise RemoteError(msg) from exc

    async def _fetch_count(self) -> int:
        payload = await self._get_json("/count")
        count = payload.get("count") if isinstance(payload, dict) else None
        if not isinstance(count, int) or count < 0:
            msg = f"Malformed count payload: {payload!r}"
            raise RemoteError(msg)
        return count

    async def _fetch_page(self, start: int, end: int) -> list[dict[str, Any]]:
        payload = await self._get_json("/records", {"start": start, "end": end})
        records = payload.get("records") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            msg = f"Malformed records payload for [{start}, {end})"
            raise RemoteError(msg)
        if len(records) != end - start:
            msg = (
                f"Expected {end - start} record(s) for [{start}, {end}), "
                f"got {len(records)}"
            )
            raise RemoteError(msg)
        id_field = self._config.id_field
        for record in records:
            if not isinstance(record, dict) or id_field not in record:
                msg = f"Record without '{id_field}' in page [{start}, {end})"
                raise RemoteError(msg)
        logger.debug(
            "http_source.page_fetched",
            source_id=self.source_id,
            start=start,
            end=end,
        )
        return records
