"""Tests for EmployeeRepository."""

from __future__ import annotations

from staffdb.domain.records import Employee
from staffdb.infrastructure.store import Store
from tests.conftest import add_department, add_employee, add_project


class TestScenario:
    def test_department_with_employee_cannot_be_deleted(self, store: Store) -> None:
        assert store.departments.insert({"id": 10, "name": "Engineering"}).ok
        inserted = store.employees.insert(
            {
                "id": 100,
                "name": "A. Lee",
                "email": "a@x.com",
                "salary": 5000,
                "department_id": 10,
            }
        )
        assert inserted.ok

        records = store.employees.find_all({"department_id": 10}).data["records"].to_list()
        assert records == [
            Employee(id=100, name="A. Lee", email="a@x.com", salary=5000, department_id=10)
        ]

        result = store.departments.delete(10)
        assert result.code == "REFERENTIAL_CONFLICT"
        assert result.error is not None
        assert result.error.detail["entity"] == "Employee"
        assert result.error.detail["count"] == 1


class TestInsert:
    def test_missing_department_persists_nothing(self, store: Store) -> None:
        result = store.employees.insert(
            {"id": 1, "name": "B", "email": "b@x.com", "salary": 10, "department_id": 77}
        )
        assert result.code == "CONSTRAINT_VIOLATION"
        assert result.error is not None
        assert result.error.detail["constraint"] == "fk_employees_department_id"
        assert store.employees.count().data["count"] == 0

    def test_duplicate_email(self, store: Store) -> None:
        add_employee(store, 1, email="same@x.com")
        result = store.employees.insert(
            {"id": 2, "name": "C", "email": "same@x.com", "salary": 10}
        )
        assert result.code == "CONSTRAINT_VIOLATION"
        assert result.error is not None
        assert result.error.detail == {"constraint": "uq_employees_email", "kind": "unique"}

    def test_malformed_email(self, store: Store) -> None:
        result = store.employees.insert({"id": 2, "name": "C", "email": "nope", "salary": 10})
        assert result.code == "VALIDATION_ERROR"
        assert result.error is not None
        assert result.error.detail["errors"][0]["field"] == "email"

    def test_non_positive_salary(self, store: Store) -> None:
        result = store.employees.insert({"id": 2, "name": "C", "email": "c@x.com", "salary": 0})
        assert result.code == "VALIDATION_ERROR"

    def test_salary_round_trips_as_float(self, store: Store) -> None:
        add_employee(store, 1, salary=1234.5)
        record = store.employees.find_by_id(1).data["record"]
        assert record.salary == 1234.5
        assert isinstance(record.salary, float)


class TestUpdate:
    def test_move_to_missing_department(self, store: Store) -> None:
        add_department(store, 10)
        add_employee(store, 1, department_id=10)
        result = store.employees.update(1, {"department_id": 99})
        assert result.code == "CONSTRAINT_VIOLATION"
        assert store.employees.find_by_id(1).data["record"].department_id == 10

    def test_raise_salary(self, store: Store) -> None:
        add_employee(store, 1, salary=100)
        result = store.employees.update(1, {"salary": 150.25})
        assert result.ok
        assert store.employees.find_by_id(1).data["record"].salary == 150.25

    def test_unknown_field(self, store: Store) -> None:
        add_employee(store, 1)
        result = store.employees.update(1, {"title": "CTO"})
        assert result.code == "VALIDATION_ERROR"
        assert result.error is not None
        assert result.error.detail["fields"] == ["title"]

    def test_empty_changes(self, store: Store) -> None:
        add_employee(store, 1)
        assert store.employees.update(1, {}).code == "VALIDATION_ERROR"


class TestDelete:
    def test_blocked_by_projects(self, store: Store) -> None:
        add_employee(store, 1)
        add_project(store, 1, employee_id=1)
        result = store.employees.delete(1)
        assert result.code == "REFERENTIAL_CONFLICT"
        assert result.error is not None
        assert result.error.detail["entity"] == "Project"
        assert result.error.detail["count"] == 1

    def test_delete_unreferenced(self, store: Store) -> None:
        add_department(store, 10)
        add_employee(store, 1, department_id=10)
        assert store.employees.delete(1).ok
        assert store.departments.delete(10).ok


class TestReassignDepartment:
    def test_clear_department(self, store: Store) -> None:
        add_department(store, 10)
        add_employee(store, 1, department_id=10)
        add_employee(store, 2, department_id=10)
        result = store.employees.reassign_department(10, None)
        assert result.ok
        assert result.op == "employees.reassign_department"
        assert result.data["count"] == 2
        assert store.employees.count({"department_id": None}).data["count"] == 2

    def test_target_must_exist(self, store: Store) -> None:
        add_department(store, 10)
        add_employee(store, 1, department_id=10)
        result = store.employees.reassign_department(10, 55)
        assert result.code == "CONSTRAINT_VIOLATION"

    def test_invalid_target(self, store: Store) -> None:
        assert store.employees.reassign_department(10, 0).code == "VALIDATION_ERROR"
