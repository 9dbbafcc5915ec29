"""Shared pytest fixtures and test helpers for staffdb tests."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from staffdb.config.settings import StaffSettings
from staffdb.infrastructure.database.engine import create_store_engine, init_schema
from staffdb.infrastructure.store import Store


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer config and env vars out of the tests."""
    monkeypatch.delenv("STAFFDB_CONFIG", raising=False)
    monkeypatch.delenv("STAFFDB_STORE__URL", raising=False)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def store_url(tmp_path: Path) -> str:
    """URL of a file-backed SQLite store with the entity tables created."""
    url = f"sqlite:///{tmp_path / 'staff.db'}"
    engine = create_store_engine(url)
    try:
        init_schema(engine)
    finally:
        engine.dispose()
    return url


def make_settings(url: str, tmp_path: Path, **pool: Any) -> StaffSettings:
    pool_options = {"pool_min": 1, "pool_max": 5, "acquire_timeout_ms": 2000, **pool}
    return StaffSettings.load(start=tmp_path, store={"url": url}, pool=pool_options)


@pytest.fixture
def settings(store_url: str, tmp_path: Path) -> StaffSettings:
    return make_settings(store_url, tmp_path)


@pytest.fixture
def store(settings: StaffSettings) -> Iterator[Store]:
    """Fully initialized Store over the temporary SQLite file."""
    s = Store(settings)
    try:
        yield s
    finally:
        s.close()


# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------


def add_department(store: Store, dept_id: int, name: str = "Engineering", **kwargs: Any) -> None:
    result = store.departments.insert({"id": dept_id, "name": name, **kwargs})
    assert result.ok, result.error


def add_employee(
    store: Store,
    emp_id: int,
    *,
    email: str | None = None,
    department_id: int | None = None,
    salary: float = 5000,
    name: str = "A. Lee",
) -> None:
    result = store.employees.insert(
        {
            "id": emp_id,
            "name": name,
            "email": email or f"e{emp_id}@x.com",
            "salary": salary,
            "department_id": department_id,
        }
    )
    assert result.ok, result.error


def add_project(
    store: Store,
    project_id: int,
    *,
    employee_id: int | None = None,
    start: date = date(2024, 1, 1),
    end: date | None = None,
) -> None:
    result = store.projects.insert(
        {
            "id": project_id,
            "name": f"Project {project_id}",
            "start_date": start,
            "end_date": end,
            "employee_id": employee_id,
        }
    )
    assert result.ok, result.error
