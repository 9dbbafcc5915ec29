"""Entity repositories over the shared StatementExecutor."""

from staffdb.infrastructure.repositories.base import BaseRepository, Dependent, RecordSequence
from staffdb.infrastructure.repositories.departments import DepartmentRepository
from staffdb.infrastructure.repositories.employees import EmployeeRepository
from staffdb.infrastructure.repositories.projects import ProjectRepository

__all__ = [
    "BaseRepository",
    "DepartmentRepository",
    "Dependent",
    "EmployeeRepository",
    "ProjectRepository",
    "RecordSequence",
]
