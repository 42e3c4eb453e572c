"""Data source factory: maps BackendType to concrete classes."""

from __future__ import annotations

from collections.abc import Callable

from grid_datasource.base import DataSource
from grid_datasource.config.models import BackendType, DataSourceConfig
from grid_datasource.memory import ArrayDataSource
from grid_datasource.remote import HttpDataSource

_BACKEND_REGISTRY: dict[BackendType, Callable[[DataSourceConfig], DataSource]] = {
    BackendType.MEMORY: ArrayDataSource.from_config,
    BackendType.HTTP: HttpDataSource,
}


def create_data_source(config: DataSourceConfig) -> DataSource:
    """Create a data source from configuration.

    Adding a backend = one class + one dict entry in ``_BACKEND_REGISTRY``.
    Remote backends are returned unstarted; await their ``start()``.
    """
    build = _BACKEND_REGISTRY.get(config.backend)
    if build is None:
        msg = f"Unknown backend: {config.backend}"
        raise ValueError(msg)
    return build(config)
