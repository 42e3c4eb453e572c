"""Unit tests for the data source factory."""

import pytest

from grid_datasource.config.models import (
    BackendType,
    DataSourceConfig,
    HttpSourceConfig,
)
from grid_datasource.factory import create_data_source
from grid_datasource.memory import ArrayDataSource
from grid_datasource.remote import HttpDataSource


class TestCreateDataSource:
    def test_memory_backend(self):
        config = DataSourceConfig(source_id="colors", records=[{"id": 1}, {"id": 2}])
        source = create_data_source(config)
        assert isinstance(source, ArrayDataSource)
        assert source.source_id == "colors"
        assert source.is_ready() is True
        assert source.record_count() == 2

    def test_memory_backend_without_records_is_not_ready(self):
        source = create_data_source(DataSourceConfig())
        assert isinstance(source, ArrayDataSource)
        assert source.is_ready() is False

    def test_http_backend_unstarted(self):
        config = DataSourceConfig(
            backend=BackendType.HTTP,
            http=HttpSourceConfig(base_url="http://api.test"),
        )
        source = create_data_source(config)
        assert isinstance(source, HttpDataSource)
        assert source.is_ready() is False

    def test_unknown_backend(self):
        config = DataSourceConfig.model_construct(backend="sqlite")
        with pytest.raises(ValueError, match="Unknown backend"):
            create_data_source(config)
