"""StatementExecutor — the single path from repositories to the store.

INVARIANT: caller-supplied values travel only as bound parameters. Raw SQL
strings are wrapped in :func:`sqlalchemy.text` and take ``:name``
placeholders; Core constructs bind their values the same way. Nothing is
ever formatted into SQL text, whatever characters a value contains.

Connection scope:

- Standalone executor: every call checks a connection out of the
  :class:`ConnectionProvider`, runs inside its own short transaction, and
  releases the connection on every exit path.
- Inside a transaction: every call reuses the transaction's connection,
  never releases it, and first runs the transaction's check (closed,
  cancelled, past its deadline). An executor is inside a transaction when it
  was bound to one (see :meth:`bind`) or when a transaction over the same
  provider is active in the calling thread or task.

Store exceptions are translated into the error taxonomy here, so nothing
above this module sees a SQLAlchemy or DBAPI exception.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import ForeignKeyConstraint, PrimaryKeyConstraint, UniqueConstraint, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.sql import Delete, Executable, Insert, Update

from staffdb.domain.errors import (
    ConstraintViolation,
    DataAccessError,
    MappingError,
    StoreConnectionError,
)
from staffdb.infrastructure.database.schema import metadata

if TYPE_CHECKING:
    from sqlalchemy import Connection, Table

    from staffdb.domain.records import Record
    from staffdb.infrastructure.database.mapping import EntityMapping
    from staffdb.infrastructure.database.pool import ConnectionProvider
    from staffdb.infrastructure.transactions import TransactionContext
    from staffdb.result import Result

logger = logging.getLogger(__name__)

R = TypeVar("R", bound="Record")

Statement = str | Executable
RowSet = list[dict[str, Any]]

# Set by TransactionCoordinator for the duration of a unit of work.
active_transaction: ContextVar[TransactionContext | None] = ContextVar(
    "active_transaction", default=None
)


# ---------------------------------------------------------------------------
# Constraint identification
# ---------------------------------------------------------------------------

_SQLITE_MESSAGES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"UNIQUE constraint failed: (?P<target>[\w.]+)"), "unique"),
    (re.compile(r"CHECK constraint failed: (?P<target>\w+)"), "check"),
    (re.compile(r"NOT NULL constraint failed: (?P<target>[\w.]+)"), "not_null"),
    (re.compile(r"FOREIGN KEY constraint failed"), "foreign_key"),
)

_SQLSTATE_KINDS = {
    "23505": "unique",
    "23503": "foreign_key",
    "23514": "check",
    "23502": "not_null",
}


def _column_constraints() -> dict[str, tuple[str, str]]:
    """Map ``table.column`` to ``(constraint name, kind)`` for single-column keys."""
    index: dict[str, tuple[str, str]] = {}
    for table in metadata.tables.values():
        for constraint in table.constraints:
            cols = list(constraint.columns)
            if len(cols) != 1 or not isinstance(constraint.name, str):
                continue
            if isinstance(constraint, PrimaryKeyConstraint):
                index[f"{table.name}.{cols[0].name}"] = (constraint.name, "primary_key")
            elif isinstance(constraint, UniqueConstraint):
                index[f"{table.name}.{cols[0].name}"] = (constraint.name, "unique")
    return index


_COLUMN_CONSTRAINTS = _column_constraints()


def _statement_table(statement: Statement) -> Table | None:
    if isinstance(statement, Insert | Update | Delete):
        return statement.table  # type: ignore[return-value]
    return None


def _foreign_key_name(statement: Statement) -> str | None:
    """Best guess at the violated foreign key when the store does not name it.

    Writes into a table can only violate that table's own foreign keys;
    deletes can only violate foreign keys pointing at the table.
    """
    table = _statement_table(statement)
    if table is None:
        return None
    if isinstance(statement, Delete):
        candidates = [
            fk.name
            for other in metadata.tables.values()
            for fk in other.foreign_key_constraints
            if fk.referred_table is table
        ]
    else:
        candidates = [
            c.name for c in table.constraints if isinstance(c, ForeignKeyConstraint)
        ]
    named = [name for name in candidates if isinstance(name, str)]
    return named[0] if len(named) == 1 else None


def describe_integrity_error(
    exc: sa_exc.IntegrityError, statement: Statement
) -> dict[str, Any]:
    """Identify the violated constraint as ``{"constraint": ..., "kind": ...}``."""
    orig = exc.orig
    diag = getattr(orig, "diag", None)
    name: str | None = getattr(diag, "constraint_name", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    kind = _SQLSTATE_KINDS.get(str(sqlstate), "unknown")

    if name is None:
        message = str(orig)
        for pattern, pattern_kind in _SQLITE_MESSAGES:
            match = pattern.search(message)
            if match is None:
                continue
            kind = pattern_kind
            target = match.groupdict().get("target")
            if target and kind == "unique" and target in _COLUMN_CONSTRAINTS:
                name, kind = _COLUMN_CONSTRAINTS[target]
            elif target:
                name = target
            break

    if name is None and kind == "foreign_key":
        name = _foreign_key_name(statement)
    return {"constraint": name, "kind": kind}


def translate_error(exc: sa_exc.SQLAlchemyError, statement: Statement) -> DataAccessError:
    """Map a SQLAlchemy exception onto the data-access error taxonomy.

    Only schema mismatches become :class:`MappingError`; errors with no
    specific meaning stay plain :class:`DataAccessError`.
    """
    if isinstance(exc, sa_exc.IntegrityError):
        detail = describe_integrity_error(exc, statement)
        label = detail["constraint"] or detail["kind"]
        return ConstraintViolation(f"Constraint violated: {label}", detail=detail)
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return StoreConnectionError(f"Connection lost: {exc.orig}")
    if isinstance(exc, sa_exc.DataError):
        return ConstraintViolation(
            f"Value rejected by store: {exc.orig}", detail={"constraint": None, "kind": "data"}
        )
    if isinstance(exc, sa_exc.ProgrammingError):
        return MappingError(f"Statement does not match store schema: {exc.orig}")
    if isinstance(exc, sa_exc.OperationalError):
        message = str(exc.orig)
        if "no such table" in message or "no such column" in message:
            return MappingError(f"Statement does not match store schema: {message}")
        return StoreConnectionError(f"Store operation failed: {message}")
    if isinstance(exc, sa_exc.InterfaceError | sa_exc.DisconnectionError):
        return StoreConnectionError(f"Store connection failed: {exc}")
    if isinstance(exc, sa_exc.ResourceClosedError):
        return StoreConnectionError(f"Store connection already closed: {exc}")
    return DataAccessError(f"Unexpected store error: {exc}")


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class StatementExecutor:
    """Executes parameterized statements and maps rows to records."""

    def __init__(
        self,
        provider: ConnectionProvider,
        *,
        transaction: TransactionContext | None = None,
    ) -> None:
        self._provider = provider
        self._transaction = transaction

    def bind(self, transaction: TransactionContext) -> StatementExecutor:
        """Return an executor pinned to *transaction*'s connection."""
        return StatementExecutor(self._provider, transaction=transaction)

    @property
    def provider(self) -> ConnectionProvider:
        return self._provider

    @property
    def transaction(self) -> TransactionContext | None:
        """The transaction statements currently run in, if any."""
        if self._transaction is not None:
            return self._transaction
        active = active_transaction.get()
        if active is not None and active.provider is self._provider:
            return active
        return None

    @property
    def in_transaction(self) -> bool:
        return self.transaction is not None

    def record_failure(self, result: Result) -> None:
        """Report a failed outcome to the enclosing transaction, if there is one."""
        transaction = self.transaction
        if transaction is not None:
            transaction.record_failure(result)

    @contextmanager
    def _scope(self, *, write: bool) -> Iterator[Connection]:
        transaction = self.transaction
        if transaction is not None:
            transaction.check()
            yield transaction.connection
            return

        with self._provider.connection() as conn:
            if write:
                with conn.begin():
                    yield conn
            else:
                yield conn

    @contextmanager
    def _translating(self, statement: Statement) -> Iterator[None]:
        try:
            yield
        except sa_exc.SQLAlchemyError as exc:
            error = translate_error(exc, statement)
            if isinstance(error, MappingError):
                logger.error("Mapping failure: %s", error.message)
            raise error from exc
        except ValueError as exc:
            # Raised by result processors when a stored value cannot be
            # converted to the column's declared type.
            logger.error("Mapping failure: %s", exc)
            msg = f"Store value could not be converted: {exc}"
            raise MappingError(msg) from exc

    @staticmethod
    def _prepare(statement: Statement) -> Executable:
        if isinstance(statement, str):
            return text(statement)
        return statement

    @staticmethod
    def _trace(statement: Executable, params: Mapping[str, Any]) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            # Parameter values are never logged, only their names.
            logger.debug("execute: %s params=%s", statement, sorted(params))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def execute(
        self, statement: Statement, params: Mapping[str, Any] | None = None
    ) -> RowSet | int:
        """Execute one statement with bound *params*.

        Returns:
            The rows as dicts for row-returning statements, otherwise the
            affected row count.
        """
        stmt = self._prepare(statement)
        bound = dict(params or {})
        self._trace(stmt, bound)
        with self._translating(statement), self._scope(write=True) as conn:
            result = conn.execute(stmt, bound)
            if result.returns_rows:
                return [dict(row) for row in result.mappings()]
            return result.rowcount

    def stream(
        self, statement: Statement, params: Mapping[str, Any] | None = None
    ) -> Iterator[dict[str, Any]]:
        """Yield result rows lazily; the connection is held until exhausted or closed."""
        stmt = self._prepare(statement)
        bound = dict(params or {})
        self._trace(stmt, bound)
        with self._translating(statement), self._scope(write=False) as conn:
            for row in conn.execute(stmt, bound).mappings():
                yield dict(row)

    def fetch_one(
        self,
        mapping: EntityMapping[R],
        statement: Statement,
        params: Mapping[str, Any] | None = None,
    ) -> R | None:
        rows = self.execute(statement, params)
        if not isinstance(rows, list) or not rows:
            return None
        return mapping.to_record(rows[0])

    def scalar(self, statement: Statement, params: Mapping[str, Any] | None = None) -> Any:
        rows = self.execute(statement, params)
        if not isinstance(rows, list) or not rows:
            return None
        return next(iter(rows[0].values()))
