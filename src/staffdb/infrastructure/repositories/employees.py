"""Repository for the employees table."""

from __future__ import annotations

from staffdb.domain.records import Employee
from staffdb.infrastructure.database.mapping import EMPLOYEE_MAPPING, PROJECT_MAPPING
from staffdb.infrastructure.repositories.base import BaseRepository, Dependent
from staffdb.result import Result


class EmployeeRepository(BaseRepository[Employee]):
    """CRUD for employees. Deletes are blocked while projects reference them."""

    mapping = EMPLOYEE_MAPPING
    dependents = (Dependent("Project", PROJECT_MAPPING, "employee_id"),)

    def reassign_department(self, from_department: int, to_department: int | None) -> Result:
        """Move every employee of *from_department* to *to_department* (None clears it).

        The usual way to unblock a department delete. ``data["count"]`` is
        the number of employees moved.
        """
        return self._reassign(
            "reassign_department", "department_id", from_department, to_department
        )
