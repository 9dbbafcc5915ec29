"""Error taxonomy for the data-access layer.

Every failure the layer can report is a :class:`DataAccessError` carrying a
stable ``code``.  Inside the layer these are raised; at the repository and
transaction boundary they are converted into failed
:class:`~staffdb.result.Result` objects, so callers always receive a tagged
outcome.

Only :class:`StoreConnectionError` is retryable, and only the connection
provider retries it.
"""

from __future__ import annotations

from typing import Any


class DataAccessError(Exception):
    """Base class for all errors surfaced by staffdb."""

    code: str = "DATA_ACCESS_ERROR"
    retryable: bool = False

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail: dict[str, Any] = detail or {}


class StoreConnectionError(DataAccessError, ConnectionError):
    """Transport or authentication failure talking to the store."""

    code = "CONNECTION_ERROR"
    retryable = True


class PoolExhausted(DataAccessError):
    """No pooled connection became available within the acquire timeout."""

    code = "POOL_EXHAUSTED"


class RecordValidationError(DataAccessError):
    """A record failed client-side validation. Nothing was sent to the store."""

    code = "VALIDATION_ERROR"


class ConstraintViolation(DataAccessError):
    """The store rejected a write on a uniqueness, check or key constraint."""

    code = "CONSTRAINT_VIOLATION"


class ReferentialConflict(DataAccessError):
    """A delete was blocked because other rows still reference the target."""

    code = "REFERENTIAL_CONFLICT"


class MappingError(DataAccessError):
    """A store value or column type does not match the record mapping."""

    code = "MAPPING_ERROR"


class NotFound(DataAccessError):
    """No row exists for the requested identifier."""

    code = "NOT_FOUND"


class TransactionTimeout(DataAccessError):
    """A transaction ran past its maximum duration and was rolled back."""

    code = "TRANSACTION_TIMEOUT"


class OperationCancelled(DataAccessError):
    """The caller cancelled the operation; any open transaction was rolled back."""

    code = "CANCELLED"


class TransactionClosed(DataAccessError):
    """A statement targeted a transaction that has already committed or rolled back."""

    code = "TRANSACTION_CLOSED"
