"""Typed records for the three stored entities.

Records are frozen pydantic models. Field constraints mirror the store's
check constraints so invalid input fails fast, before any statement runs.
Validation failures surface as :class:`RecordValidationError`, never as the
raw pydantic exception.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date
from typing import Annotated, Any, ClassVar, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from staffdb.domain.errors import RecordValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")

R = TypeVar("R", bound="Record")


class Record(BaseModel):
    """Base for stored records. ``entity`` names the type in error payloads."""

    model_config = {"frozen": True, "extra": "forbid"}

    entity: ClassVar[str] = "Record"

    id: int = Field(gt=0)


def _require_text(value: str) -> str:
    if not value.strip():
        msg = "must not be blank"
        raise ValueError(msg)
    return value


Text = Annotated[str, AfterValidator(_require_text)]


class Department(Record):
    entity: ClassVar[str] = "Department"

    name: Text = Field(min_length=1, max_length=50)
    location: str | None = Field(default=None, max_length=50)


class Employee(Record):
    entity: ClassVar[str] = "Employee"

    name: Text = Field(min_length=1, max_length=100)
    email: str = Field(max_length=100)
    salary: float = Field(gt=0)
    department_id: int | None = Field(default=None, gt=0)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        if not _EMAIL_RE.match(value):
            msg = "must look like local@domain"
            raise ValueError(msg)
        return value


class Project(Record):
    entity: ClassVar[str] = "Project"

    name: Text = Field(min_length=1, max_length=100)
    start_date: date
    end_date: date | None = None
    employee_id: int | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_dates(self) -> Project:
        if self.end_date is not None and self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _summarize(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in err["loc"]) or "__root__",
            "message": err["msg"],
        }
        for err in exc.errors()
    ]


def validate_record(record_cls: type[R], data: Mapping[str, Any] | R) -> R:
    """Validate *data* as *record_cls*, raising RecordValidationError on failure."""
    if isinstance(data, record_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    try:
        return record_cls.model_validate(dict(data))
    except ValidationError as exc:
        errors = _summarize(exc)
        fields = ", ".join(e["field"] for e in errors)
        raise RecordValidationError(
            f"Invalid {record_cls.entity}: {fields}",
            detail={"entity": record_cls.entity, "errors": errors},
        ) from exc


def apply_changes(record: R, changes: Mapping[str, Any]) -> tuple[R, dict[str, Any]]:
    """Merge a partial update onto *record*.

    Returns the validated merged record and the normalized values of the
    supplied fields. Fields absent from *changes* keep their stored values.

    Raises:
        RecordValidationError: On an empty, unknown, immutable or invalid field.
    """
    record_cls = type(record)
    if not changes:
        raise RecordValidationError(
            f"No fields supplied for {record_cls.entity} update",
            detail={"entity": record_cls.entity},
        )
    if "id" in changes:
        raise RecordValidationError(
            f"{record_cls.entity} identifier is immutable",
            detail={"entity": record_cls.entity, "field": "id"},
        )
    unknown = sorted(set(changes) - set(record_cls.model_fields))
    if unknown:
        raise RecordValidationError(
            f"Unknown {record_cls.entity} fields: {', '.join(unknown)}",
            detail={"entity": record_cls.entity, "fields": unknown},
        )

    merged = validate_record(record_cls, {**record.model_dump(), **changes})
    effective = {key: getattr(merged, key) for key in changes}
    return merged, effective
