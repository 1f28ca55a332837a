from __future__ import annotations

from enum import StrEnum
from typing import ClassVar, Optional


class ErrorKind(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    DOCUMENT_REQUIRED = "DOCUMENT_REQUIRED"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    CONFLICT = "CONFLICT"
    INVALID_STATE = "INVALID_STATE"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    STORE_FAILURE = "STORE_FAILURE"


class ReservationError(Exception):
    """Base for every failure the reservation engine reports to its callers."""

    kind: ClassVar[ErrorKind] = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, *, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason


class InvalidInputError(ReservationError):
    kind = ErrorKind.INVALID_INPUT


class PeriodValidationError(ReservationError):
    kind = ErrorKind.VALIDATION_FAILED


class DocumentRequiredError(ReservationError):
    kind = ErrorKind.DOCUMENT_REQUIRED


class SpaceNotFoundError(ReservationError):
    kind = ErrorKind.NOT_FOUND


class ReservationNotFoundError(ReservationError):
    kind = ErrorKind.NOT_FOUND


class DocumentNotFoundError(ReservationError):
    kind = ErrorKind.NOT_FOUND


class NotOwnerError(ReservationError):
    kind = ErrorKind.UNAUTHORIZED


class AvailabilityConflictError(ReservationError):
    kind = ErrorKind.CONFLICT


class InvalidStateError(ReservationError):
    kind = ErrorKind.INVALID_STATE


class VersionConflictError(ReservationError):
    kind = ErrorKind.VERSION_CONFLICT


class StoreFailureError(ReservationError):
    kind = ErrorKind.STORE_FAILURE


class DocumentStorageError(Exception):
    """Raised by document storage adapters when an upload or delete fails."""
