from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .errors import ErrorKind, ReservationError

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Tagged outcome of an engine operation.

    Exactly one of ``value`` (on success) or ``error`` (on failure) is meaningful.
    ``reason`` narrows ``error`` where a kind has several causes, e.g. the
    period rejection code behind ``VALIDATION_FAILED``.
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(
        cls,
        error: ErrorKind,
        *,
        reason: Optional[str] = None,
        message: Optional[str] = None,
    ) -> "OperationResult[T]":
        return cls(ok=False, error=error, reason=reason, message=message)

    @classmethod
    def from_error(cls, exc: ReservationError) -> "OperationResult[T]":
        return cls.failure(exc.kind, reason=exc.reason, message=exc.message)

    def unwrap(self) -> T:
        if not self.ok:
            raise ValueError(f"operation failed: {self.error} ({self.reason or self.message})")
        return self.value  # type: ignore[return-value]
