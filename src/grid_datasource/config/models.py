"""Pydantic configuration models for data sources."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator


class BackendType(StrEnum):
    """Supported data source backends."""

    MEMORY = "memory"
    HTTP = "http"


class RangePolicy(StrEnum):
    """How ``get_data(start, end)`` treats ranges outside the record set."""

    STRICT = "strict"
    CLAMP = "clamp"


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


class RetryConfig(BaseModel):
    """Retry / backoff configuration for remote fetches."""

    max_attempts: int = Field(default=3, ge=1)
    initial_wait_seconds: float = Field(default=0.5, gt=0)
    max_wait_seconds: float = Field(default=10.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True


class HttpSourceConfig(BaseModel):
    """Configuration for a remote, paged HTTP data source."""

    base_url: str
    page_size: int = Field(default=100, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)
    auth_token: SecretStr | None = None

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            msg = f"base_url must be an http(s) URL, got '{v}'"
            raise ValueError(msg)
        return v.rstrip("/")

    @field_validator("auth_token", mode="before")
    @classmethod
    def blank_token_is_none(cls, v: Any) -> Any:
        return None if v == "" else v


class DataSourceConfig(BaseModel, extra="forbid"):
    """Configuration for a single data source instance."""

    source_id: str = "datasource"
    backend: BackendType = BackendType.MEMORY
    range_policy: RangePolicy = RangePolicy.STRICT
    id_field: str = Field(default="id", min_length=1)
    # Initial records for the memory backend; ignored by remote backends.
    records: list[dict[str, Any]] | None = None
    http: HttpSourceConfig | None = None
    retry: RetryConfig = RetryConfig()

    @model_validator(mode="after")
    def check_backend_requirements(self) -> Self:
        """Ensure the sub-config matching the backend is provided."""
        if self.backend == BackendType.HTTP and self.http is None:
            msg = "http config is required when backend is 'http'"
            raise ValueError(msg)
        if self.records is not None:
            for i, record in enumerate(self.records):
                if self.id_field not in record:
                    msg = f"records[{i}] is missing the id field '{self.id_field}'"
                    raise ValueError(msg)
        return self
