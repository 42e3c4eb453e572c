"""Built-in data source defaults, merged under every config file."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from grid_datasource.config.models import DataSourceConfig

DEFAULTS_PATH = Path(__file__).parent / "defaults" / "datasource.yaml"


def load_defaults() -> dict[str, Any]:
    with DEFAULTS_PATH.open() as f:
        return yaml.safe_load(f) or {}


def merge_configs(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Return *base* overlaid with *overrides*; nested mappings merge by key.

    Lists (such as ``records``) are replaced wholesale.  Neither input is
    modified.
    """
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = merge_configs(current, value)
        merged[key] = value
    return merged


def build_datasource_config(overrides: dict[str, Any]) -> DataSourceConfig:
    """Validate *overrides* layered over the built-in defaults."""
    return DataSourceConfig.model_validate(merge_configs(load_defaults(), overrides))
