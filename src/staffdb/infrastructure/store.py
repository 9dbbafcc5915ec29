"""Store — the single entry point into the data-access layer.

The Store is constructed once at startup and owns every piece of
process-wide state: the connection provider (and its pool), the shared
statement executor, one repository per entity and the transaction
coordinator. Repositories receive their executor explicitly; nothing reads
ambient globals. Tear it down with :meth:`close` (or use it as a context
manager).

Construction fails fast: an unreachable store raises
:class:`StoreConnectionError` and a schema that does not match the record
mapping raises :class:`MappingError`. After that, every operation returns a
:class:`~staffdb.result.Result`.

Usage::

    with Store(StaffSettings.load()) as store:
        store.departments.insert({"id": 10, "name": "Engineering"})

        def move(tx):
            tx.employees.update(100, {"department_id": 20})
            return tx.projects.reassign_employee(100, 101)

        result = store.run_in_transaction(move)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from staffdb.config.settings import StaffSettings
from staffdb.domain.errors import DataAccessError
from staffdb.infrastructure.database.engine import init_schema
from staffdb.infrastructure.database.executor import StatementExecutor
from staffdb.infrastructure.database.mapping import validate_schema
from staffdb.infrastructure.database.pool import ConnectionProvider
from staffdb.infrastructure.repositories import (
    DepartmentRepository,
    EmployeeRepository,
    ProjectRepository,
)
from staffdb.infrastructure.transactions import (
    CancellationToken,
    TransactionCoordinator,
    Work,
)

if TYPE_CHECKING:
    from types import TracebackType

    from staffdb.result import Result

logger = logging.getLogger(__name__)


class Store:
    """Owns the connection pool and exposes repositories and transactions."""

    def __init__(
        self,
        settings: StaffSettings | None = None,
        *,
        provider: ConnectionProvider | None = None,
        create_schema: bool = False,
    ) -> None:
        self._settings = settings or StaffSettings.load()
        self._provider = provider or ConnectionProvider.from_config(
            self._settings.store, self._settings.pool
        )
        try:
            if create_schema:
                init_schema(self._provider.engine)
            self._provider.start()
            if self._settings.store.validate_schema:
                with self._provider.connection() as conn:
                    validate_schema(conn)
        except DataAccessError:
            self._provider.close()
            raise

        self._executor = StatementExecutor(self._provider)
        self.departments = DepartmentRepository(self._executor)
        self.employees = EmployeeRepository(self._executor)
        self.projects = ProjectRepository(self._executor)
        self.transactions = TransactionCoordinator(self._executor, self._settings.transaction)

    @property
    def settings(self) -> StaffSettings:
        return self._settings

    @property
    def provider(self) -> ConnectionProvider:
        return self._provider

    @property
    def executor(self) -> StatementExecutor:
        return self._executor

    def run_in_transaction(
        self,
        work: Work,
        *,
        timeout_ms: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> Result:
        """Shortcut for :meth:`TransactionCoordinator.run_in_transaction`."""
        return self.transactions.run_in_transaction(work, timeout_ms=timeout_ms, cancel=cancel)

    def health_check(self) -> bool:
        return self._provider.health_check()

    def stats(self) -> dict[str, Any]:
        """Pool statistics plus row counts per entity."""
        counts: dict[str, Any] = {}
        for name, repo in (
            ("departments", self.departments),
            ("employees", self.employees),
            ("projects", self.projects),
        ):
            result = repo.count()
            counts[name] = result.data["count"] if result.ok else None
        return {"pool": self._provider.stats(), "counts": counts}

    def close(self) -> None:
        self._provider.close()

    def __enter__(self) -> Store:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
