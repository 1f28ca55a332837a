from functools import lru_cache

from fastapi import Header, HTTPException, status

from .config import get_settings
from .database import async_session
from .infrastructure.documents import LocalDocumentStorage
from .service import ReservationService
from .utils.auth import decode_access_token, extract_bearer_token


@lru_cache
def get_reservation_service() -> ReservationService:
    settings = get_settings()
    return ReservationService(
        async_session,
        LocalDocumentStorage(settings.document_dir),
        settings=settings,
    )


async def get_current_user_id(authorization: str | None = Header(default=None)) -> int:
    token = extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="bearer token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    settings = get_settings()
    try:
        return decode_access_token(token, secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
