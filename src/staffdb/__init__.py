"""staffdb — data-access layer for departments, employees and projects."""

from staffdb.config.settings import StaffSettings
from staffdb.infrastructure.store import Store
from staffdb.infrastructure.transactions import CancellationToken, TransactionContext
from staffdb.result import Result, ResultError

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "Result",
    "ResultError",
    "StaffSettings",
    "Store",
    "TransactionContext",
    "__version__",
]
