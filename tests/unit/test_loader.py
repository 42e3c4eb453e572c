"""Unit tests for the YAML config loader and env var resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from grid_datasource.config.loader import (
    load_datasource_config,
    load_yaml,
    resolve_env_vars,
)
from grid_datasource.config.models import BackendType, RangePolicy

EXAMPLES = Path(__file__).resolve().parents[2] / "examples"


class TestResolveEnvVars:
    def test_plain_string_unchanged(self):
        assert resolve_env_vars("hello") == "hello"

    def test_substitutes_env_var(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GRID_API_URL", "http://api.prod")
        assert resolve_env_vars("${GRID_API_URL}") == "http://api.prod"

    def test_default_when_var_missing(self):
        assert resolve_env_vars("${MISSING_VAR:-fallback}") == "fallback"

    def test_env_var_overrides_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("RANGE_POLICY", "clamp")
        assert resolve_env_vars("${RANGE_POLICY:-strict}") == "clamp"

    def test_empty_default(self):
        assert resolve_env_vars("${MISSING_VAR:-}") == ""

    def test_missing_var_no_default_raises(self):
        with pytest.raises(ValueError, match="UNDEFINED_VAR"):
            resolve_env_vars("${UNDEFINED_VAR}")

    def test_default_with_colons(self):
        result = resolve_env_vars("${MISSING:-http://localhost:8000}")
        assert result == "http://localhost:8000"

    def test_recursive(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("COLOR", "teal")
        data = {"records": [{"id": 1, "name": "${COLOR}"}], "nested": {"n": 3}}
        result = resolve_env_vars(data)
        assert result == {"records": [{"id": 1, "name": "teal"}], "nested": {"n": 3}}


class TestLoadYaml:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "absent.yaml")

    def test_parse_error_reports_position(self, tmp_path: Path):
        path = tmp_path / "broken.yaml"
        path.write_text("source_id: [unclosed\n")
        with pytest.raises(ValueError, match="line"):
            load_yaml(path)

    def test_top_level_must_be_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(TypeError, match="mapping"):
            load_yaml(path)


class TestLoadDatasourceConfig:
    def test_memory_example(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("RANGE_POLICY", raising=False)
        cfg = load_datasource_config(EXAMPLES / "memory-source.yaml")
        assert cfg.source_id == "colors"
        assert cfg.backend == BackendType.MEMORY
        assert cfg.range_policy == RangePolicy.STRICT
        assert cfg.records is not None
        assert [r["name"] for r in cfg.records] == ["red", "blue", "green", "orange"]
        assert cfg.retry.max_attempts == 3

    def test_env_selects_policy(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("RANGE_POLICY", "clamp")
        cfg = load_datasource_config(EXAMPLES / "memory-source.yaml")
        assert cfg.range_policy == RangePolicy.CLAMP

    def test_http_example(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("GRID_API_URL", raising=False)
        monkeypatch.delenv("GRID_API_TOKEN", raising=False)
        cfg = load_datasource_config(EXAMPLES / "http-source.yaml")
        assert cfg.backend == BackendType.HTTP
        assert cfg.http is not None
        assert cfg.http.base_url == "http://localhost:8000/colors"
        assert cfg.http.auth_token is None
        assert cfg.retry.max_attempts == 5

    def test_invalid_config_raises_value_error(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("backend: http\n")
        with pytest.raises(ValueError, match="Invalid data source config"):
            load_datasource_config(path)
