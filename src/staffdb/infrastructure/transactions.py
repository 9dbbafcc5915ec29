"""TransactionCoordinator — all-or-nothing units of repository work.

``run_in_transaction(work)`` checks out one connection, begins a
transaction and hands *work* a :class:`TransactionContext` whose
repositories all execute on that connection, so later operations observe
earlier uncommitted writes. The transaction:

- commits when *work* returns a successful Result and nothing inside failed;
- rolls back when *work* raises, returns a failed Result, or any repository
  call made while it is active failed (``NOT_FOUND`` lookups excepted);
- rolls back with ``TRANSACTION_TIMEOUT`` once its deadline passes, and with
  ``CANCELLED`` once its :class:`CancellationToken` fires. Both are checked
  before every statement and again before commit.

Repositories reached any other way (``store.departments`` and friends) also
run on the open transaction's connection while *work* executes in the same
thread or task. A call made while a transaction is already active joins that
transaction instead of opening a new one; a failure inside the nested call
rolls back the outer transaction.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlalchemy import exc as sa_exc

from staffdb.config.models import TransactionConfig
from staffdb.domain.errors import (
    DataAccessError,
    OperationCancelled,
    RecordValidationError,
    TransactionClosed,
    TransactionTimeout,
)
from staffdb.infrastructure.database.executor import active_transaction, translate_error
from staffdb.infrastructure.repositories import (
    DepartmentRepository,
    EmployeeRepository,
    ProjectRepository,
)
from staffdb.result import Result

if TYPE_CHECKING:
    from sqlalchemy import Connection
    from sqlalchemy.engine import RootTransaction

    from staffdb.infrastructure.database.executor import StatementExecutor
    from staffdb.infrastructure.database.pool import ConnectionProvider

logger = logging.getLogger(__name__)

_OP = "transaction"


class CancellationToken:
    """Caller-held flag that aborts a transaction at its next statement."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class TransactionContext:
    """Repositories bound to one open transaction.

    Attributes:
        departments: Department repository on the transaction's connection.
        employees: Employee repository on the transaction's connection.
        projects: Project repository on the transaction's connection.
        connection: The underlying SQLAlchemy connection.
        provider: The pool the connection was checked out of.
    """

    def __init__(
        self,
        connection: Connection,
        executor: StatementExecutor,
        *,
        deadline: float,
        timeout_ms: int,
        cancel: CancellationToken | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.connection = connection
        self.provider: ConnectionProvider = executor.provider
        self._deadline = deadline
        self._timeout_ms = timeout_ms
        self._cancel = cancel
        self._clock = clock
        self._failure: Result | None = None
        self._closed = False

        bound = executor.bind(self)
        self.departments = DepartmentRepository(bound)
        self.employees = EmployeeRepository(bound)
        self.projects = ProjectRepository(bound)

    @property
    def failure(self) -> Result | None:
        """First failed outcome recorded inside this transaction, if any."""
        return self._failure

    @property
    def closed(self) -> bool:
        return self._closed

    def record_failure(self, result: Result) -> None:
        if self._failure is None:
            self._failure = result

    def close(self) -> None:
        self._closed = True

    def check(self) -> None:
        """Raise unless the transaction can still run statements."""
        if self._closed:
            msg = "Transaction already ended; consume its results inside the unit of work"
            raise TransactionClosed(msg)
        if self._cancel is not None and self._cancel.cancelled:
            raise OperationCancelled(
                f"Transaction cancelled: {self._cancel.reason}",
                detail={"reason": self._cancel.reason},
            )
        if self._clock() > self._deadline:
            raise TransactionTimeout(
                f"Transaction exceeded {self._timeout_ms} ms",
                detail={"timeout_ms": self._timeout_ms},
            )


Work = Callable[[TransactionContext], Any]


def _as_result(value: Any) -> Result:
    if isinstance(value, Result):
        return value
    return Result.success(_OP, value=value)


class TransactionCoordinator:
    """Runs units of work inside a single store transaction."""

    def __init__(
        self,
        executor: StatementExecutor,
        config: TransactionConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._executor = executor
        self._config = config or TransactionConfig()
        self._clock = clock

    @staticmethod
    def current() -> TransactionContext | None:
        """The transaction active in this thread or task, if any."""
        return active_transaction.get()

    def run_in_transaction(
        self,
        work: Work,
        *,
        timeout_ms: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> Result:
        """Run *work* atomically and return its Result (or the failure that aborted it)."""
        outer = active_transaction.get()
        if outer is not None:
            return self._join(outer, work)

        if timeout_ms is None:
            timeout = self._config.tx_timeout_ms
        elif timeout_ms <= 0:
            return Result.failure(
                _OP,
                RecordValidationError(
                    f"timeout_ms must be positive, got {timeout_ms}",
                    detail={"field": "timeout_ms"},
                ),
            )
        else:
            timeout = timeout_ms

        provider = self._executor.provider
        try:
            conn = provider.acquire()
        except DataAccessError as exc:
            return Result.failure(_OP, exc)

        ctx = TransactionContext(
            conn,
            self._executor,
            deadline=self._clock() + timeout / 1000,
            timeout_ms=timeout,
            cancel=cancel,
            clock=self._clock,
        )
        token = active_transaction.set(ctx)
        broken = False
        try:
            try:
                trans = conn.begin()
            except sa_exc.SQLAlchemyError as exc:
                broken = True
                error = translate_error(exc, "BEGIN")
                logger.warning("Could not begin transaction: %s [%s]", error.message, error.code)
                return Result.failure(_OP, error)

            try:
                result = _as_result(work(ctx))
                ctx.check()
            except DataAccessError as exc:
                broken = not self._rollback(trans)
                logger.warning("Transaction rolled back: %s [%s]", exc.message, exc.code)
                return Result.failure(_OP, exc)
            except BaseException:
                broken = not self._rollback(trans)
                raise

            failure = result if not result.ok else ctx.failure
            if failure is not None:
                broken = not self._rollback(trans)
                logger.warning("Transaction rolled back after failed %s", failure.op)
                return failure

            try:
                trans.commit()
            except sa_exc.SQLAlchemyError as exc:
                broken = not self._rollback(trans)
                error = translate_error(exc, "COMMIT")
                logger.warning("Commit failed: %s [%s]", error.message, error.code)
                return Result.failure(_OP, error)
            logger.debug("Transaction committed")
            return result
        finally:
            ctx.close()
            active_transaction.reset(token)
            provider.release(conn, broken=broken)

    def _join(self, outer: TransactionContext, work: Work) -> Result:
        """Run *work* inside the already-open *outer* transaction."""
        try:
            result = _as_result(work(outer))
        except DataAccessError as exc:
            result = Result.failure(_OP, exc)
        if not result.ok:
            outer.record_failure(result)
        return result

    @staticmethod
    def _rollback(trans: RootTransaction) -> bool:
        """Roll back if still active. Returns False if the connection is unusable."""
        try:
            if trans.is_active:
                trans.rollback()
        except sa_exc.SQLAlchemyError:
            logger.warning("Rollback failed; discarding connection", exc_info=True)
            return False
        return True
