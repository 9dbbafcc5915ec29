"""Domain layer — typed records and the error taxonomy.

Pure Python + pydantic. Must never import from infrastructure or cli.
"""

from staffdb.domain.errors import (
    ConstraintViolation,
    DataAccessError,
    MappingError,
    NotFound,
    OperationCancelled,
    PoolExhausted,
    RecordValidationError,
    ReferentialConflict,
    StoreConnectionError,
    TransactionClosed,
    TransactionTimeout,
)
from staffdb.domain.records import Department, Employee, Project, Record

__all__ = [
    "ConstraintViolation",
    "DataAccessError",
    "Department",
    "Employee",
    "MappingError",
    "NotFound",
    "OperationCancelled",
    "PoolExhausted",
    "Project",
    "Record",
    "RecordValidationError",
    "ReferentialConflict",
    "StoreConnectionError",
    "TransactionClosed",
    "TransactionTimeout",
]
