"""Repository for the departments table."""

from __future__ import annotations

from staffdb.domain.records import Department
from staffdb.infrastructure.database.mapping import DEPARTMENT_MAPPING, EMPLOYEE_MAPPING
from staffdb.infrastructure.repositories.base import BaseRepository, Dependent


class DepartmentRepository(BaseRepository[Department]):
    """CRUD for departments. Deletes are blocked while employees reference them."""

    mapping = DEPARTMENT_MAPPING
    dependents = (Dependent("Employee", EMPLOYEE_MAPPING, "department_id"),)
