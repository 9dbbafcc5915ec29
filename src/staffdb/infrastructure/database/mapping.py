"""Explicit schema-to-record mapping table.

Each entity declares which column backs each record field and the semantic
kind of that column (integer, numeric, string, date). The table is used in
three places:

- at startup, :func:`validate_schema` compares it with the column types the
  store reports, so drift fails fast instead of at first access;
- when reading, :meth:`EntityMapping.to_record` rejects values whose Python
  type does not match the declared kind;
- when writing, :meth:`EntityMapping.to_params` produces the bound values.

Every mismatch is a :class:`MappingError`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import ValidationError
from sqlalchemy import inspect
from sqlalchemy.sql import sqltypes

from staffdb.domain.errors import MappingError
from staffdb.domain.records import Department, Employee, Project, Record
from staffdb.infrastructure.database.schema import departments, employees, projects

if TYPE_CHECKING:
    from sqlalchemy import Column, Connection, Table
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)


class Kind(StrEnum):
    """Semantic column kinds understood by the mapping layer."""

    INTEGER = "integer"
    NUMERIC = "numeric"
    STRING = "string"
    DATE = "date"


_STORE_TYPES: dict[Kind, tuple[type[sqltypes.TypeEngine[Any]], ...]] = {
    Kind.INTEGER: (sqltypes.Integer,),
    Kind.NUMERIC: (sqltypes.Numeric, sqltypes.Integer),
    Kind.STRING: (sqltypes.String,),
    Kind.DATE: (sqltypes.Date,),
}


def value_matches(kind: Kind, value: Any) -> bool:
    """True if *value* is an acceptable Python value for a column of *kind*."""
    if isinstance(value, bool):
        return False
    if kind is Kind.INTEGER:
        return isinstance(value, int)
    if kind is Kind.NUMERIC:
        return isinstance(value, int | float | Decimal)
    if kind is Kind.STRING:
        return isinstance(value, str)
    return isinstance(value, date) and not isinstance(value, datetime)


@dataclass(frozen=True)
class FieldMapping:
    field: str
    column: str
    kind: Kind
    nullable: bool = False


@dataclass(frozen=True)
class EntityMapping(Generic[R]):
    """Field-to-column mapping for one record type."""

    record_cls: type[R]
    table: Table
    fields: tuple[FieldMapping, ...]

    @property
    def entity(self) -> str:
        return self.record_cls.entity

    @property
    def field_names(self) -> frozenset[str]:
        return frozenset(f.field for f in self.fields)

    def column(self, field: str) -> Column[Any]:
        for f in self.fields:
            if f.field == field:
                return self.table.c[f.column]
        msg = f"{self.entity} has no field {field!r}"
        raise KeyError(msg)

    @property
    def columns(self) -> list[Column[Any]]:
        return [self.table.c[f.column] for f in self.fields]

    def to_params(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Translate record field values into column-keyed bound parameters."""
        by_field = {f.field: f for f in self.fields}
        return {by_field[name].column: value for name, value in values.items()}

    def to_record(self, row: Mapping[str, Any]) -> R:
        """Build a record from a result row, checking every column's type.

        Raises:
            MappingError: If a column is missing, has an unexpected type, or
                the row violates the record's own invariants.
        """
        values: dict[str, Any] = {}
        for f in self.fields:
            if f.column not in row:
                msg = f"Column {self.table.name}.{f.column} missing from result row"
                raise MappingError(msg, detail={"entity": self.entity, "column": f.column})
            value = row[f.column]
            if value is None:
                if not f.nullable:
                    msg = f"Column {self.table.name}.{f.column} is NULL but required"
                    raise MappingError(msg, detail={"entity": self.entity, "column": f.column})
            elif not value_matches(f.kind, value):
                msg = (
                    f"Column {self.table.name}.{f.column} returned "
                    f"{type(value).__name__}, expected {f.kind}"
                )
                raise MappingError(
                    msg,
                    detail={
                        "entity": self.entity,
                        "column": f.column,
                        "expected": str(f.kind),
                        "actual": type(value).__name__,
                    },
                )
            values[f.field] = value

        try:
            return self.record_cls.model_validate(values)
        except ValidationError as exc:
            msg = f"Stored {self.entity} row violates record invariants: {exc.error_count()} error(s)"
            raise MappingError(msg, detail={"entity": self.entity}) from exc


DEPARTMENT_MAPPING = EntityMapping(
    record_cls=Department,
    table=departments,
    fields=(
        FieldMapping("id", "id", Kind.INTEGER),
        FieldMapping("name", "name", Kind.STRING),
        FieldMapping("location", "location", Kind.STRING, nullable=True),
    ),
)

EMPLOYEE_MAPPING = EntityMapping(
    record_cls=Employee,
    table=employees,
    fields=(
        FieldMapping("id", "id", Kind.INTEGER),
        FieldMapping("name", "name", Kind.STRING),
        FieldMapping("email", "email", Kind.STRING),
        FieldMapping("salary", "salary", Kind.NUMERIC),
        FieldMapping("department_id", "department_id", Kind.INTEGER, nullable=True),
    ),
)

PROJECT_MAPPING = EntityMapping(
    record_cls=Project,
    table=projects,
    fields=(
        FieldMapping("id", "id", Kind.INTEGER),
        FieldMapping("name", "name", Kind.STRING),
        FieldMapping("start_date", "start_date", Kind.DATE),
        FieldMapping("end_date", "end_date", Kind.DATE, nullable=True),
        FieldMapping("employee_id", "employee_id", Kind.INTEGER, nullable=True),
    ),
)

MAPPINGS: tuple[EntityMapping[Any], ...] = (DEPARTMENT_MAPPING, EMPLOYEE_MAPPING, PROJECT_MAPPING)


def validate_schema(
    bind: Engine | Connection,
    mappings: tuple[EntityMapping[Any], ...] = MAPPINGS,
) -> None:
    """Check the store's reported columns against the mapping table.

    Raises:
        MappingError: Listing every missing table, missing column and
            incompatible column type found.
    """
    inspector = inspect(bind)
    problems: list[str] = []
    for mapping in mappings:
        table_name = mapping.table.name
        if not inspector.has_table(table_name):
            problems.append(f"missing table {table_name}")
            continue
        reported = {col["name"]: col["type"] for col in inspector.get_columns(table_name)}
        for f in mapping.fields:
            col_type = reported.get(f.column)
            if col_type is None:
                problems.append(f"missing column {table_name}.{f.column}")
            elif not isinstance(col_type, _STORE_TYPES[f.kind]):
                problems.append(
                    f"column {table_name}.{f.column} has type {col_type!r}, expected {f.kind}"
                )

    if problems:
        logger.error("Store schema does not match record mapping: %s", "; ".join(problems))
        msg = f"Store schema does not match record mapping ({len(problems)} problem(s))"
        raise MappingError(msg, detail={"problems": problems})
