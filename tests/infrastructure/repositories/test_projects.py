"""Tests for ProjectRepository."""

from __future__ import annotations

from datetime import date

from staffdb.infrastructure.store import Store
from tests.conftest import add_employee, add_project


class TestProjects:
    def test_insert_and_find(self, store: Store) -> None:
        add_employee(store, 1)
        add_project(store, 7, employee_id=1, start=date(2024, 2, 1), end=date(2024, 6, 30))
        record = store.projects.find_by_id(7).data["record"]
        assert record.start_date == date(2024, 2, 1)
        assert record.end_date == date(2024, 6, 30)
        assert record.employee_id == 1

    def test_end_before_start(self, store: Store) -> None:
        result = store.projects.insert(
            {
                "id": 1,
                "name": "Backwards",
                "start_date": date(2024, 5, 1),
                "end_date": date(2024, 4, 1),
            }
        )
        assert result.code == "VALIDATION_ERROR"
        assert store.projects.count().data["count"] == 0

    def test_iso_string_dates_accepted(self, store: Store) -> None:
        result = store.projects.insert({"id": 1, "name": "P", "start_date": "2024-03-01"})
        assert result.ok
        assert result.data["record"].start_date == date(2024, 3, 1)

    def test_update_end_date_revalidates(self, store: Store) -> None:
        add_project(store, 1, start=date(2024, 1, 10))
        result = store.projects.update(1, {"end_date": date(2024, 1, 1)})
        assert result.code == "VALIDATION_ERROR"
        assert store.projects.update(1, {"end_date": date(2024, 2, 1)}).ok

    def test_unassigned_filter(self, store: Store) -> None:
        add_employee(store, 1)
        add_project(store, 1, employee_id=1)
        add_project(store, 2)
        records = store.projects.find_all({"employee_id": None}).data["records"]
        assert [p.id for p in records] == [2]

    def test_delete_never_conflicts(self, store: Store) -> None:
        add_employee(store, 1)
        add_project(store, 1, employee_id=1)
        assert store.projects.delete(1).ok
        assert store.employees.delete(1).ok

    def test_reassign_employee(self, store: Store) -> None:
        add_employee(store, 1)
        add_employee(store, 2)
        add_project(store, 1, employee_id=1)
        add_project(store, 2, employee_id=1)
        result = store.projects.reassign_employee(1, 2)
        assert result.data["count"] == 2
        assert store.projects.count({"employee_id": 2}).data["count"] == 2
        assert store.employees.delete(1).ok
