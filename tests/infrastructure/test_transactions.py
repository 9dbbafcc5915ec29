"""Tests for TransactionCoordinator — commit, rollback, nesting and deadlines."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection

from staffdb.config.models import TransactionConfig
from staffdb.domain.errors import DataAccessError, MappingError
from staffdb.infrastructure.store import Store
from staffdb.infrastructure.transactions import (
    CancellationToken,
    TransactionContext,
    TransactionCoordinator,
)
from staffdb.result import Result
from tests.conftest import add_department, add_employee, add_project, make_settings


class TestCommit:
    def test_commits_all_writes(self, store: Store) -> None:
        def work(tx: TransactionContext) -> Result:
            tx.departments.insert({"id": 1, "name": "A"})
            return tx.departments.insert({"id": 2, "name": "B"})

        result = store.run_in_transaction(work)
        assert result.ok
        assert result.op == "departments.insert"
        assert store.departments.count().data["count"] == 2
        assert store.provider.stats()["checked_out"] == 0

    def test_plain_return_value_is_wrapped(self, store: Store) -> None:
        result = store.run_in_transaction(lambda tx: 42)
        assert result.ok
        assert result.op == "transaction"
        assert result.data == {"value": 42}

    def test_read_your_writes(self, store: Store) -> None:
        seen: dict[str, object] = {}

        def work(tx: TransactionContext) -> None:
            tx.departments.insert({"id": 1, "name": "A"})
            seen["inside"] = tx.departments.find_by_id(1).ok
            seen["listed"] = [d.id for d in tx.departments.find_all().data["records"]]
            # A fresh thread has no active transaction and sees committed rows only.
            outside = threading.Thread(
                target=lambda: seen.update(outside=store.departments.find_by_id(1).code)
            )
            outside.start()
            outside.join()

        assert store.run_in_transaction(work).ok
        assert seen == {"inside": True, "listed": [1], "outside": "NOT_FOUND"}
        assert store.departments.find_by_id(1).ok

    def test_not_found_lookup_does_not_abort(self, store: Store) -> None:
        def work(tx: TransactionContext) -> Result:
            if not tx.departments.exists(5).data["exists"]:
                assert tx.departments.find_by_id(5).code == "NOT_FOUND"
            return tx.departments.insert({"id": 5, "name": "Created"})

        assert store.run_in_transaction(work).ok
        assert store.departments.exists(5).data["exists"] is True

    def test_current_is_scoped_to_work(self, store: Store) -> None:
        seen: list[TransactionContext | None] = []
        store.run_in_transaction(lambda tx: seen.append(TransactionCoordinator.current()))
        assert seen[0] is not None
        assert TransactionCoordinator.current() is None


class TestRollback:
    def test_second_write_failure_rolls_back_first(self, store: Store) -> None:
        add_department(store, 1)

        def work(tx: TransactionContext) -> Result:
            tx.departments.insert({"id": 2, "name": "New"})
            return tx.departments.insert({"id": 1, "name": "Duplicate"})

        result = store.run_in_transaction(work)
        assert result.code == "CONSTRAINT_VIOLATION"
        assert store.departments.exists(2).data["exists"] is False
        assert store.provider.stats()["checked_out"] == 0

    def test_swallowed_failure_still_rolls_back(self, store: Store) -> None:
        def work(tx: TransactionContext) -> str:
            tx.departments.insert({"id": 1, "name": "A"})
            tx.employees.insert(
                {"id": 1, "name": "B", "email": "b@x.com", "salary": 1, "department_id": 9}
            )
            return "done"

        result = store.run_in_transaction(work)
        assert result.code == "CONSTRAINT_VIOLATION"
        assert store.departments.count().data["count"] == 0

    def test_failed_result_rolls_back(self, store: Store) -> None:
        def work(tx: TransactionContext) -> Result:
            tx.departments.insert({"id": 1, "name": "A"})
            return Result(ok=False, op="custom.check")

        result = store.run_in_transaction(work)
        assert not result.ok
        assert result.op == "custom.check"
        assert store.departments.count().data["count"] == 0

    def test_raised_exception_rolls_back_and_propagates(self, store: Store) -> None:
        def work(tx: TransactionContext) -> None:
            tx.departments.insert({"id": 1, "name": "A"})
            raise RuntimeError("caller bug")

        with pytest.raises(RuntimeError, match="caller bug"):
            store.run_in_transaction(work)
        assert store.departments.count().data["count"] == 0
        assert store.provider.stats()["checked_out"] == 0
        assert TransactionCoordinator.current() is None

    def test_referential_conflict_inside_transaction(self, store: Store) -> None:
        add_department(store, 10)
        add_employee(store, 100, department_id=10)

        def work(tx: TransactionContext) -> Result:
            tx.departments.update(10, {"location": "Moved"})
            return tx.departments.delete(10)

        result = store.run_in_transaction(work)
        assert result.code == "REFERENTIAL_CONFLICT"
        assert result.error is not None
        assert result.error.detail["entity"] == "Employee"
        assert result.error.detail["count"] == 1
        assert store.departments.find_by_id(10).data["record"].location is None


class TestNesting:
    def test_nested_call_joins_outer(self, store: Store) -> None:
        contexts: list[TransactionContext] = []

        def inner(tx: TransactionContext) -> Result:
            contexts.append(tx)
            return tx.departments.insert({"id": 2, "name": "Inner"})

        def outer(tx: TransactionContext) -> Result:
            contexts.append(tx)
            tx.departments.insert({"id": 1, "name": "Outer"})
            return store.run_in_transaction(inner)

        assert store.run_in_transaction(outer).ok
        assert contexts[0] is contexts[1]
        assert store.departments.count().data["count"] == 2

    def test_inner_failure_rolls_back_outer(self, store: Store) -> None:
        def inner(tx: TransactionContext) -> Result:
            return Result(ok=False, op="inner.check")

        def outer(tx: TransactionContext) -> str:
            tx.departments.insert({"id": 1, "name": "Outer"})
            store.run_in_transaction(inner)
            return "outer ignored the failure"

        result = store.run_in_transaction(outer)
        assert not result.ok
        assert result.op == "inner.check"
        assert store.departments.count().data["count"] == 0


class TestDeadlines:
    def test_timeout_rolls_back(self, store: Store) -> None:
        now = [0.0]
        coordinator = TransactionCoordinator(
            store.executor, TransactionConfig(tx_timeout_ms=1000), clock=lambda: now[0]
        )

        def work(tx: TransactionContext) -> Result:
            tx.departments.insert({"id": 1, "name": "A"})
            now[0] = 5.0
            return tx.departments.insert({"id": 2, "name": "B"})

        result = coordinator.run_in_transaction(work)
        assert result.code == "TRANSACTION_TIMEOUT"
        assert result.error is not None
        assert result.error.detail == {"timeout_ms": 1000}
        assert store.departments.count().data["count"] == 0

    def test_timeout_checked_before_commit(self, store: Store) -> None:
        now = [0.0]
        coordinator = TransactionCoordinator(store.executor, clock=lambda: now[0])

        def work(tx: TransactionContext) -> Result:
            result = tx.departments.insert({"id": 1, "name": "A"})
            now[0] = 1000.0
            return result

        result = coordinator.run_in_transaction(work, timeout_ms=200)
        assert result.code == "TRANSACTION_TIMEOUT"
        assert store.departments.count().data["count"] == 0

    def test_cancellation(self, store: Store) -> None:
        token = CancellationToken()

        def work(tx: TransactionContext) -> Result:
            tx.departments.insert({"id": 1, "name": "A"})
            token.cancel("user pressed stop")
            return tx.departments.insert({"id": 2, "name": "B"})

        result = store.run_in_transaction(work, cancel=token)
        assert result.code == "CANCELLED"
        assert result.error is not None
        assert result.error.detail == {"reason": "user pressed stop"}
        assert store.departments.count().data["count"] == 0

    def test_pool_exhausted_at_begin(self, store_url: str, tmp_path: Path) -> None:
        settings = make_settings(store_url, tmp_path, pool_max=1, acquire_timeout_ms=50)
        with Store(settings) as store:
            held = store.provider.acquire()
            try:
                called: list[bool] = []
                result = store.run_in_transaction(lambda tx: called.append(True))
            finally:
                store.provider.release(held)
        assert result.code == "POOL_EXHAUSTED"
        assert result.op == "transaction"
        assert called == []


class TestScenarios:
    def test_move_employee_between_departments(self, store: Store) -> None:
        add_department(store, 10)
        add_department(store, 20, name="Research")
        add_employee(store, 100, department_id=10)
        add_project(store, 1, employee_id=100)

        def work(tx: TransactionContext) -> Result:
            moved = tx.employees.update(100, {"department_id": 20})
            if not moved.ok:
                return moved
            return tx.departments.delete(10)

        assert store.run_in_transaction(work).ok
        assert store.employees.find_by_id(100).data["record"].department_id == 20
        assert store.departments.exists(10).data["exists"] is False
        assert store.projects.find_by_id(1).data["record"].employee_id == 100


class TestStoreRepositoriesJoin:
    def test_store_repository_writes_join_the_unit(self, store: Store) -> None:
        def work(tx: TransactionContext) -> Result:
            tx.departments.insert({"id": 1, "name": "Via context"})
            inserted = store.departments.insert({"id": 2, "name": "Via store"})
            assert inserted.ok
            assert store.departments.count().data["count"] == 2
            return Result(ok=False, op="custom.abort")

        result = store.run_in_transaction(work)
        assert result.op == "custom.abort"
        assert store.departments.count().data["count"] == 0
        assert store.provider.stats()["checked_out"] == 0

    def test_store_repository_failure_poisons_the_unit(self, store: Store) -> None:
        add_department(store, 1)

        def work(tx: TransactionContext) -> str:
            tx.departments.insert({"id": 2, "name": "B"})
            store.departments.insert({"id": 1, "name": "Duplicate"})
            return "ignored the failure"

        result = store.run_in_transaction(work)
        assert result.code == "CONSTRAINT_VIOLATION"
        assert store.departments.exists(2).data["exists"] is False

    def test_shared_executor_reports_transaction(self, store: Store) -> None:
        seen: list[bool] = []
        store.run_in_transaction(lambda tx: seen.append(store.executor.in_transaction))
        assert seen == [True]
        assert store.executor.in_transaction is False


class TestClosedTransaction:
    def test_sequence_used_after_commit(self, store: Store) -> None:
        add_department(store, 1)
        result = store.run_in_transaction(lambda tx: tx.departments.find_all())
        assert result.ok
        with pytest.raises(DataAccessError) as exc_info:
            list(result.data["records"])
        assert exc_info.value.code == "TRANSACTION_CLOSED"
        assert not isinstance(exc_info.value, MappingError)

    def test_context_repository_used_after_commit(self, store: Store) -> None:
        kept: list[TransactionContext] = []
        store.run_in_transaction(kept.append)
        assert kept[0].closed
        result = kept[0].departments.insert({"id": 1, "name": "Late"})
        assert result.code == "TRANSACTION_CLOSED"
        assert store.departments.count().data["count"] == 0


class TestTimeoutArgument:
    @pytest.mark.parametrize("timeout_ms", [0, -5])
    def test_non_positive_timeout_rejected(self, store: Store, timeout_ms: int) -> None:
        called: list[bool] = []
        result = store.run_in_transaction(lambda tx: called.append(True), timeout_ms=timeout_ms)
        assert result.code == "VALIDATION_ERROR"
        assert result.op == "transaction"
        assert called == []
        assert store.provider.stats()["checked_out"] == 0


class TestBeginFailure:
    def test_begin_error_becomes_result(
        self, store: Store, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def failing_begin(self: Connection) -> None:
            raise sa_exc.OperationalError("BEGIN", {}, Exception("disk I/O error"))

        monkeypatch.setattr(Connection, "begin", failing_begin)
        called: list[bool] = []
        result = store.run_in_transaction(lambda tx: called.append(True))
        assert not result.ok
        assert result.code == "CONNECTION_ERROR"
        assert result.op == "transaction"
        assert called == []
        assert store.provider.stats()["checked_out"] == 0
