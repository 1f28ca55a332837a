import re
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, status

from ..deps import get_current_user_id, get_reservation_service
from ..domain.documents import StoredDocument
from ..models import ReservationStatus
from ..schemas import DocumentRef, ReservationCreate, ReservationRead, ReservationUpdate, ReservationVersion
from ..service import ReservationService
from .results import unwrap_or_raise

router = APIRouter(prefix="", tags=["reservations"], dependencies=[Depends(get_current_user_id)])

_ETAG_RE = re.compile(r'^(?:W/)?"?(\d+)"?$')


def _extract_version(if_match: Optional[str], payload: Optional[ReservationVersion]) -> Optional[int]:
    """If-Match wins over the body; both are optional, but when given must be >= 1."""
    if if_match is not None:
        match = _ETAG_RE.match(if_match.strip())
        if match is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid If-Match header")
        version = int(match.group(1))
    elif payload is not None and payload.version is not None:
        version = payload.version
    else:
        return None
    if version < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version must be >= 1")
    return version


def _to_stored(ref: Optional[DocumentRef]) -> Optional[StoredDocument]:
    if ref is None:
        return None
    return StoredDocument(file_id=ref.file_id, file_name=ref.file_name, file_size=ref.file_size)


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    service: ReservationService = Depends(get_reservation_service),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    result = await service.create_reservation(
        user_id=user_id,
        space_number=payload.space_number,
        start_date=payload.start_date,
        end_date=payload.end_date,
        shift_type=payload.shift_type,
        document=_to_stored(payload.schedule_document),
        request_key=payload.request_key,
    )
    return ReservationRead.from_db(reservation=unwrap_or_raise(result))


@router.get("/me/reservations", response_model=List[ReservationRead])
async def list_my_reservations(
    status_filter: Optional[ReservationStatus] = Query(default=ReservationStatus.ACTIVE, alias="status"),
    service: ReservationService = Depends(get_reservation_service),
    user_id: int = Depends(get_current_user_id),
) -> list[ReservationRead]:
    result = await service.get_user_reservations(user_id, status_filter)
    return [ReservationRead.from_db(reservation=r) for r in unwrap_or_raise(result)]


@router.get("/me/reservations/{reservation_id}", response_model=ReservationRead)
async def get_my_reservation(
    reservation_id: int = Path(..., ge=1),
    service: ReservationService = Depends(get_reservation_service),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    result = await service.get_reservation(user_id=user_id, reservation_id=reservation_id)
    return ReservationRead.from_db(reservation=unwrap_or_raise(result))


@router.patch("/me/reservations/{reservation_id}", response_model=ReservationRead)
async def update_reservation(
    payload: ReservationUpdate,
    reservation_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    service: ReservationService = Depends(get_reservation_service),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    version = _extract_version(if_match, ReservationVersion(version=payload.version))
    result = await service.update_reservation(
        user_id=user_id,
        reservation_id=reservation_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        shift_type=payload.shift_type,
        document=_to_stored(payload.schedule_document),
        version=version,
    )
    return ReservationRead.from_db(reservation=unwrap_or_raise(result))


@router.post("/me/reservations/{reservation_id}/release", response_model=ReservationRead)
async def release_reservation(
    reservation_id: int = Path(..., ge=1),
    payload: Optional[ReservationVersion] = None,
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    service: ReservationService = Depends(get_reservation_service),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    result = await service.release_reservation(
        user_id=user_id,
        reservation_id=reservation_id,
        version=_extract_version(if_match, payload),
    )
    return ReservationRead.from_db(reservation=unwrap_or_raise(result))


@router.post("/me/reservations/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    reservation_id: int = Path(..., ge=1),
    payload: Optional[ReservationVersion] = None,
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    service: ReservationService = Depends(get_reservation_service),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    result = await service.cancel_reservation(
        user_id=user_id,
        reservation_id=reservation_id,
        version=_extract_version(if_match, payload),
    )
    return ReservationRead.from_db(reservation=unwrap_or_raise(result))


@router.delete("/me/reservations/{reservation_id}/document", response_model=ReservationRead)
async def remove_document(
    reservation_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    service: ReservationService = Depends(get_reservation_service),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    result = await service.remove_document(
        user_id=user_id,
        reservation_id=reservation_id,
        version=_extract_version(if_match, None),
    )
    return ReservationRead.from_db(reservation=unwrap_or_raise(result))
