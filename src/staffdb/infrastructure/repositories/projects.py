"""Repository for the projects table."""

from __future__ import annotations

from staffdb.domain.records import Project
from staffdb.infrastructure.database.mapping import PROJECT_MAPPING
from staffdb.infrastructure.repositories.base import BaseRepository
from staffdb.result import Result


class ProjectRepository(BaseRepository[Project]):
    """CRUD for projects. Nothing references projects, so deletes never conflict."""

    mapping = PROJECT_MAPPING

    def reassign_employee(self, from_employee: int, to_employee: int | None) -> Result:
        """Hand every project of *from_employee* to *to_employee* (None unassigns)."""
        return self._reassign("reassign_employee", "employee_id", from_employee, to_employee)
