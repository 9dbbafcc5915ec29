"""Unified settings — init kwargs, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags or an options mapping from the host application
  2. Env vars     — ``STAFFDB_*`` prefix, ``__`` for nested sections
  3. TOML file    — ``staffdb.toml`` or ``[tool.staffdb]`` in ``pyproject.toml``
  4. Code defaults — baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource`.
"""

from __future__ import annotations

import threading
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from staffdb.config.discovery import PYPROJECT_FILENAME, PYPROJECT_TABLE, find_config
from staffdb.config.models import PoolConfig, StoreConfig, TransactionConfig

# Recognized keys of the flat options object a host application may pass.
OPTION_KEYS: dict[str, tuple[str, str]] = {
    "url": ("store", "url"),
    "poolMin": ("pool", "pool_min"),
    "poolMax": ("pool", "pool_max"),
    "acquireTimeoutMs": ("pool", "acquire_timeout_ms"),
    "retryCount": ("pool", "retry_count"),
    "backoffBaseMs": ("pool", "backoff_base_ms"),
    "backoffMaxMs": ("pool", "backoff_max_ms"),
    "txTimeoutMs": ("transaction", "tx_timeout_ms"),
}


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from ``staffdb.toml`` or a ``pyproject.toml`` ``[tool.staffdb]`` table."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise ValueError(msg) from exc
            if toml_path.name == PYPROJECT_FILENAME:
                for key in PYPROJECT_TABLE:
                    self._data = self._data.get(key, {})

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        """Return the full TOML data dict for Pydantic to merge."""
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class StaffSettings(BaseSettings):
    """Settings for the data-access layer and its CLI.

    Constructed once at startup and handed to :class:`~staffdb.Store`.
    Frozen after construction.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "STAFFDB_",
        "env_nested_delimiter": "__",
    }

    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    verbose: bool = False
    log_json: bool = False
    trace_statements: bool = False

    # --- TOML sections ---
    store: StoreConfig = Field(default_factory=StoreConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    transaction: TransactionConfig = Field(default_factory=TransactionConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def load(
        cls,
        *,
        config_path: str | Path | None = None,
        start: Path | None = None,
        **overrides: Any,
    ) -> StaffSettings:
        """Construct settings, discovering ``staffdb.toml`` unless *config_path* is given."""
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(start)

        _tls.toml_path = toml_path
        try:
            return cls(config_path=toml_path, **overrides)
        finally:
            _tls.toml_path = None

    @classmethod
    def from_options(cls, options: Mapping[str, Any], **kwargs: Any) -> StaffSettings:
        """Build settings from a flat options object (``poolMax``, ``txTimeoutMs``, ...).

        Raises:
            ValueError: If *options* contains an unrecognized key.
        """
        unknown = sorted(set(options) - set(OPTION_KEYS))
        if unknown:
            msg = f"Unrecognized options: {', '.join(unknown)}"
            raise ValueError(msg)

        sections: dict[str, dict[str, Any]] = {}
        for key, value in options.items():
            section, field_name = OPTION_KEYS[key]
            sections.setdefault(section, {})[field_name] = value
        return cls.load(**sections, **kwargs)
