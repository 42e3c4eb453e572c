"""Capability protocol checks for every backend."""

from __future__ import annotations

import pytest
from conftest import DeferredSource

from grid_datasource.base import (
    Capability,
    DataSource,
    EditableDataSource,
    SortableDataSource,
    capabilities,
    require,
    supports,
)
from grid_datasource.config.models import DataSourceConfig, HttpSourceConfig
from grid_datasource.errors import UnsupportedOperationError
from grid_datasource.memory import ArrayDataSource
from grid_datasource.remote import HttpDataSource


def _http_source() -> HttpDataSource:
    return HttpDataSource(
        DataSourceConfig(
            backend="http", http=HttpSourceConfig(base_url="http://api.test")
        )
    )


class TestProtocolConformance:
    def test_array_source_satisfies_all_protocols(self):
        source = ArrayDataSource([{"id": 1}])
        assert isinstance(source, DataSource)
        assert isinstance(source, EditableDataSource)
        assert isinstance(source, SortableDataSource)
        assert capabilities(source) == {Capability.EDIT, Capability.SORT}

    def test_http_source_is_read_only(self):
        source = _http_source()
        assert isinstance(source, DataSource)
        assert not isinstance(source, EditableDataSource)
        assert not isinstance(source, SortableDataSource)
        assert capabilities(source) == frozenset()

    def test_deferred_wrapper_satisfies_data_source(self):
        source = DeferredSource(ArrayDataSource([{"id": 1}]))
        assert isinstance(source, DataSource)
        assert not supports(source, Capability.EDIT)

    def test_plain_object_is_not_a_data_source(self):
        assert not isinstance(object(), DataSource)


class TestRequire:
    def test_present_capability(self):
        require(ArrayDataSource(), Capability.SORT)

    def test_missing_capability_names_it(self):
        with pytest.raises(UnsupportedOperationError, match="edit") as exc_info:
            require(_http_source(), Capability.EDIT)
        assert exc_info.value.capability == "edit"
        assert isinstance(exc_info.value, NotImplementedError)
