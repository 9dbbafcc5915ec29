"""SQLAlchemy Core table definitions for the staffdb store.

The store owns the schema; these definitions describe the contract the
data-access layer assumes. Every constraint is named so store-reported
violations can be traced back to the rule that failed.
"""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKeyConstraint,
    Index,
    Integer,
    MetaData,
    Numeric,
    PrimaryKeyConstraint,
    String,
    Table,
    UniqueConstraint,
)

metadata = MetaData()

departments = Table(
    "departments",
    metadata,
    Column("id", Integer, autoincrement=False),
    Column("name", String(50), nullable=False),
    Column("location", String(50)),
    PrimaryKeyConstraint("id", name="pk_departments"),
    CheckConstraint("id > 0", name="ck_departments_id_positive"),
    CheckConstraint("length(name) > 0", name="ck_departments_name_not_empty"),
)

employees = Table(
    "employees",
    metadata,
    Column("id", Integer, autoincrement=False),
    Column("name", String(100), nullable=False),
    Column("email", String(100), nullable=False),
    # asdecimal=False: records carry salary as float
    Column("salary", Numeric(12, 2, asdecimal=False), nullable=False),
    Column("department_id", Integer),
    PrimaryKeyConstraint("id", name="pk_employees"),
    UniqueConstraint("email", name="uq_employees_email"),
    ForeignKeyConstraint(
        ["department_id"], ["departments.id"], name="fk_employees_department_id"
    ),
    CheckConstraint("id > 0", name="ck_employees_id_positive"),
    CheckConstraint("salary > 0", name="ck_employees_salary_positive"),
)

projects = Table(
    "projects",
    metadata,
    Column("id", Integer, autoincrement=False),
    Column("name", String(100), nullable=False),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date),
    Column("employee_id", Integer),
    PrimaryKeyConstraint("id", name="pk_projects"),
    ForeignKeyConstraint(["employee_id"], ["employees.id"], name="fk_projects_employee_id"),
    CheckConstraint("id > 0", name="ck_projects_id_positive"),
    CheckConstraint(
        "end_date IS NULL OR end_date >= start_date", name="ck_projects_end_after_start"
    ),
)

# ---------------------------------------------------------------------------
# Indexes for foreign-key lookups (dependent counts, filtered listings)
# ---------------------------------------------------------------------------

Index("ix_employees_department_id", employees.c.department_id)
Index("ix_projects_employee_id", projects.c.employee_id)
