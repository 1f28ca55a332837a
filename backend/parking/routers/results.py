from typing import TypeVar

from fastapi import HTTPException, status

from ..domain.errors import ErrorKind
from ..domain.results import OperationResult

T = TypeVar("T")

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DOCUMENT_REQUIRED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.VERSION_CONFLICT: status.HTTP_412_PRECONDITION_FAILED,
    ErrorKind.STORE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def unwrap_or_raise(result: OperationResult[T]) -> T:
    if result.ok:
        return result.value  # type: ignore[return-value]
    kind = result.error or ErrorKind.STORE_FAILURE
    raise HTTPException(
        status_code=STATUS_BY_KIND[kind],
        detail={"error": kind.value, "reason": result.reason, "message": result.message},
    )
