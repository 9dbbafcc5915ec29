"""BaseRepository — CRUD for one entity over the StatementExecutor.

Repositories hold no state between calls: every operation round-trips to the
store. Each public method returns a :class:`~staffdb.result.Result`; the
error taxonomy is raised internally and converted at this boundary.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from sqlalchemy import delete, func, insert, select, update

from staffdb.domain.errors import (
    ConstraintViolation,
    DataAccessError,
    NotFound,
    RecordValidationError,
    ReferentialConflict,
)
from staffdb.domain.records import Record, apply_changes, validate_record
from staffdb.result import Result

if TYPE_CHECKING:
    from sqlalchemy import Select
    from sqlalchemy.sql import ColumnElement

    from staffdb.infrastructure.database.executor import StatementExecutor
    from staffdb.infrastructure.database.mapping import EntityMapping

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)

# Expected outcomes that do not poison an enclosing transaction.
_BENIGN_CODES = frozenset({"NOT_FOUND"})


@dataclass(frozen=True)
class Dependent:
    """Another entity whose rows reference this one through *column*."""

    entity: str
    mapping: EntityMapping[Any]
    column: str


class RecordSequence(Generic[R]):
    """Finite, restartable, lazy sequence of records.

    Nothing runs until iteration starts, and every iteration re-queries the
    store, so two passes may observe different data. A sequence obtained
    inside a transaction must be consumed before the transaction ends;
    iterating it afterwards raises :class:`TransactionClosed`.
    """

    def __init__(
        self,
        executor: StatementExecutor,
        mapping: EntityMapping[R],
        statement: Select[Any],
    ) -> None:
        self._executor = executor
        self._mapping = mapping
        self._statement = statement

    def __iter__(self) -> Iterator[R]:
        for row in self._executor.stream(self._statement):
            yield self._mapping.to_record(row)

    def to_list(self) -> list[R]:
        return list(self)

    def first(self) -> R | None:
        for record in self:
            return record
        return None


class BaseRepository(Generic[R]):
    """CRUD operations for one entity type.

    Subclasses set :attr:`mapping` and, where other tables reference this
    one, :attr:`dependents`.
    """

    mapping: ClassVar[EntityMapping[Any]]
    dependents: ClassVar[tuple[Dependent, ...]] = ()

    def __init__(self, executor: StatementExecutor) -> None:
        self._executor = executor

    @property
    def entity(self) -> str:
        return self.mapping.entity

    @property
    def _table(self) -> Any:
        return self.mapping.table

    @property
    def _id_column(self) -> ColumnElement[Any]:
        return self.mapping.column("id")

    # ------------------------------------------------------------------
    # Boundary
    # ------------------------------------------------------------------

    def _run(self, op: str, fn: Callable[[], Result]) -> Result:
        """Run *fn*, converting raised data-access errors into a failed Result."""
        name = self._op(op)
        try:
            result = fn()
        except DataAccessError as exc:
            expected = exc.code in {"NOT_FOUND", "VALIDATION_ERROR"}
            level = logging.DEBUG if expected else logging.WARNING
            logger.log(level, "%s failed: %s [%s]", name, exc.message, exc.code)
            result = Result.failure(name, exc)
        if not result.ok and result.code not in _BENIGN_CODES:
            self._executor.record_failure(result)
        return result

    def _op(self, op: str) -> str:
        return f"{self._table.name}.{op}"

    def _not_found(self, record_id: int) -> NotFound:
        return NotFound(
            f"No {self.entity} with id {record_id}",
            detail={"entity": self.entity, "id": record_id},
        )

    def _filter_clauses(self, filters: Mapping[str, Any] | None) -> list[ColumnElement[bool]]:
        if not filters:
            return []
        unknown = sorted(set(filters) - self.mapping.field_names)
        if unknown:
            raise RecordValidationError(
                f"Unknown {self.entity} filter fields: {', '.join(unknown)}",
                detail={"entity": self.entity, "fields": unknown},
            )
        clauses: list[ColumnElement[bool]] = []
        for field, value in filters.items():
            column = self.mapping.column(field)
            clauses.append(column.is_(None) if value is None else column == value)
        return clauses

    def _load(self, record_id: int) -> R:
        stmt = select(*self.mapping.columns).where(self._id_column == record_id)
        record = self._executor.fetch_one(self.mapping, stmt)
        if record is None:
            raise self._not_found(record_id)
        return record

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def insert(self, record: R | Mapping[str, Any]) -> Result:
        """Validate and insert *record*. ``data["id"]`` holds the identifier."""

        def _do() -> Result:
            validated = validate_record(self.mapping.record_cls, record)
            params = self.mapping.to_params(validated.model_dump())
            self._executor.execute(insert(self._table).values(params))
            logger.info("Inserted %s %s", self.entity, validated.id)
            return Result.success(self._op("insert"), id=validated.id, record=validated)

        return self._run("insert", _do)

    def find_by_id(self, record_id: int) -> Result:
        """Fetch one record. ``data["record"]`` on success, ``NOT_FOUND`` otherwise."""

        def _do() -> Result:
            return Result.success(self._op("find_by_id"), record=self._load(record_id))

        return self._run("find_by_id", _do)

    def find_all(self, filters: Mapping[str, Any] | None = None) -> Result:
        """Lazy, restartable listing ordered by id. ``data["records"]`` is a RecordSequence.

        *filters* are equality matches on record fields; ``None`` matches NULL.
        """

        def _do() -> Result:
            stmt = (
                select(*self.mapping.columns)
                .where(*self._filter_clauses(filters))
                .order_by(self._id_column)
            )
            records = RecordSequence(self._executor, self.mapping, stmt)
            return Result.success(self._op("find_all"), records=records)

        return self._run("find_all", _do)

    def count(self, filters: Mapping[str, Any] | None = None) -> Result:
        def _do() -> Result:
            stmt = select(func.count()).select_from(self._table).where(
                *self._filter_clauses(filters)
            )
            total = int(self._executor.scalar(stmt) or 0)
            return Result.success(self._op("count"), count=total)

        return self._run("count", _do)

    def exists(self, record_id: int) -> Result:
        def _do() -> Result:
            stmt = select(self._id_column).where(self._id_column == record_id)
            found = self._executor.scalar(stmt) is not None
            return Result.success(self._op("exists"), exists=found)

        return self._run("exists", _do)

    def update(self, record_id: int, changes: Mapping[str, Any]) -> Result:
        """Apply a partial update. Only fields present in *changes* are written.

        Concurrent updates are last-write-wins per field at the store's
        isolation level.
        """

        def _do() -> Result:
            current = self._load(record_id)
            merged, effective = apply_changes(current, changes)
            stmt = (
                update(self._table)
                .where(self._id_column == record_id)
                .values(self.mapping.to_params(effective))
            )
            if self._executor.execute(stmt) == 0:
                raise self._not_found(record_id)
            logger.info("Updated %s %s (%s)", self.entity, record_id, ", ".join(sorted(effective)))
            return Result.success(self._op("update"), record=merged)

        return self._run("update", _do)

    def delete(self, record_id: int) -> Result:
        """Delete one record; never cascades.

        Fails with ``REFERENTIAL_CONFLICT`` naming the dependent entity and
        its row count while other rows still reference this one.
        """

        def _do() -> Result:
            # Inside a transaction a failed statement may abort the whole
            # transaction on some stores, so count dependents up front.
            counts = self._dependent_counts(record_id) if self._executor.in_transaction else None
            stmt = delete(self._table).where(self._id_column == record_id)
            try:
                affected = self._executor.execute(stmt)
            except ConstraintViolation as exc:
                if exc.detail.get("kind") != "foreign_key":
                    raise
                if counts is None:
                    counts = self._dependent_counts(record_id)
                raise self._conflict(record_id, counts, exc) from exc
            if affected == 0:
                raise self._not_found(record_id)
            logger.info("Deleted %s %s", self.entity, record_id)
            return Result.success(self._op("delete"), id=record_id, deleted=True)

        return self._run("delete", _do)

    # ------------------------------------------------------------------
    # Referential helpers
    # ------------------------------------------------------------------

    def _dependent_counts(self, record_id: int) -> dict[str, int]:
        counts: dict[str, int] = {}
        for dep in self.dependents:
            column = dep.mapping.column(dep.column)
            stmt = select(func.count()).select_from(dep.mapping.table).where(column == record_id)
            counts[dep.entity] = int(self._executor.scalar(stmt) or 0)
        return counts

    def _conflict(
        self, record_id: int, counts: dict[str, int], cause: ConstraintViolation
    ) -> ReferentialConflict:
        blocking = {entity: n for entity, n in counts.items() if n > 0} or counts
        entity, count = next(iter(blocking.items()), ("unknown", 0))
        return ReferentialConflict(
            f"{self.entity} {record_id} is referenced by {count} {entity} row(s)",
            detail={
                "entity": entity,
                "count": count,
                "dependents": blocking,
                "constraint": cause.detail.get("constraint"),
            },
        )

    def _reassign(self, op: str, field: str, from_id: int, to_id: int | None) -> Result:
        """Point every row referencing *from_id* through *field* at *to_id* (or NULL)."""

        def _do() -> Result:
            if to_id is not None and to_id <= 0:
                raise RecordValidationError(
                    f"{field} must be a positive identifier",
                    detail={"entity": self.entity, "field": field},
                )
            column = self.mapping.column(field)
            stmt = (
                update(self._table)
                .where(column == from_id)
                .values(self.mapping.to_params({field: to_id}))
            )
            moved = self._executor.execute(stmt)
            logger.info(
                "Reassigned %d %s row(s) %s: %s -> %s", moved, self.entity, field, from_id, to_id
            )
            return Result.success(self._op(op), count=moved)

        return self._run(op, _do)
