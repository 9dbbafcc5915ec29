"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, staffdb.toml only contains
overrides. A local development store needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class StoreConfig(BaseModel):
    """[store] section."""

    model_config = {"frozen": True}

    url: str = "sqlite:///staffdb.db"
    echo: bool = False
    validate_schema: bool = True


class PoolConfig(BaseModel):
    """[pool] section.

    ``acquire_timeout_ms`` bounds how long :meth:`acquire` blocks when every
    connection is checked out. Connection failures are retried
    ``retry_count`` times, sleeping ``backoff_base_ms * 2**attempt`` capped
    at ``backoff_max_ms``.
    """

    model_config = {"frozen": True}

    pool_min: int = Field(default=1, ge=0)
    pool_max: int = Field(default=5, ge=1)
    acquire_timeout_ms: int = Field(default=5000, gt=0)
    retry_count: int = Field(default=3, ge=0)
    backoff_base_ms: int = Field(default=100, ge=0)
    backoff_max_ms: int = Field(default=5000, ge=0)

    @model_validator(mode="after")
    def check_bounds(self) -> PoolConfig:
        if self.pool_min > self.pool_max:
            msg = f"pool_min ({self.pool_min}) exceeds pool_max ({self.pool_max})"
            raise ValueError(msg)
        return self


class TransactionConfig(BaseModel):
    """[transaction] section."""

    model_config = {"frozen": True}

    tx_timeout_ms: int = Field(default=30000, gt=0)
