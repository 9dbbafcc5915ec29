"""Relational store access via SQLAlchemy Core: schema, engine, pool, executor."""

from staffdb.infrastructure.database.engine import create_store_engine, init_schema
from staffdb.infrastructure.database.executor import StatementExecutor
from staffdb.infrastructure.database.mapping import (
    DEPARTMENT_MAPPING,
    EMPLOYEE_MAPPING,
    MAPPINGS,
    PROJECT_MAPPING,
    EntityMapping,
    validate_schema,
)
from staffdb.infrastructure.database.pool import ConnectionProvider
from staffdb.infrastructure.database.schema import departments, employees, metadata, projects

__all__ = [
    "DEPARTMENT_MAPPING",
    "EMPLOYEE_MAPPING",
    "MAPPINGS",
    "PROJECT_MAPPING",
    "ConnectionProvider",
    "EntityMapping",
    "StatementExecutor",
    "create_store_engine",
    "departments",
    "employees",
    "init_schema",
    "metadata",
    "projects",
    "validate_schema",
]
