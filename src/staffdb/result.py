"""Result and ResultError — the tagged outcome of every public operation.

INVARIANT: repository and transaction methods return Result; errors from
:mod:`staffdb.domain.errors` never escape those boundaries as exceptions.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from staffdb.domain.errors import DataAccessError


class ResultError(BaseModel):
    """Structured error payload within a Result."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class Result(BaseModel):
    """Universal return type for data-access operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"employees.insert"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing, counts, etc.).
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ResultError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def success(cls, op: str, **data: Any) -> Result:
        return cls(ok=True, op=op, data=data)

    @classmethod
    def failure(cls, op: str, exc: DataAccessError) -> Result:
        """Wrap a raised :class:`DataAccessError` as a failed result."""
        return cls(
            ok=False,
            op=op,
            error=ResultError(code=exc.code, message=exc.message, detail=exc.detail),
        )

    @property
    def code(self) -> str | None:
        """Error code, or None on success."""
        return self.error.code if self.error is not None else None
