from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..domain.documents import DocumentStorage, StoredDocument
from ..domain.errors import (
    AvailabilityConflictError,
    DocumentNotFoundError,
    DocumentRequiredError,
    InvalidInputError,
    InvalidStateError,
    PeriodValidationError,
    ReservationNotFoundError,
    SpaceNotFoundError,
    VersionConflictError,
)
from ..domain.periods import DateInput, PeriodRejection, parse_date, requires_document, validate_period
from ..domain.repositories import ReservationRepository, SpaceRepository
from ..domain.services import covers, ensure_owner, find_conflict
from ..domain.shifts import parse_shift
from ..models import Reservation, ReservationStatus, ShiftType, space_id_for
from ..utils.time import utc_now_naive


@dataclass(frozen=True)
class ReservationRequest:
    """A create request that passed every check that needs no store access."""

    space_id: str
    space_number: int
    start_date: date
    end_date: date
    shift_type: ShiftType
    requires_document: bool


@dataclass(frozen=True)
class CreateOutcome:
    reservation: Reservation
    created: bool


def prepare_reservation_request(
    *,
    space_number: object,
    start_date: DateInput,
    end_date: DateInput,
    shift_type: object,
    now: datetime | date,
    has_document: bool,
    space_count: int = 20,
    document_threshold_days: int = 2,
) -> ReservationRequest:
    if space_number is None or start_date is None or end_date is None or shift_type is None:
        raise InvalidInputError(
            "missing required fields: space_number, start_date, end_date, shift_type",
            reason="MISSING_FIELDS",
        )
    shift = parse_shift(shift_type)
    if shift is None:
        raise InvalidInputError(
            "invalid shift type, must be one of: " + ", ".join(s.value for s in ShiftType),
            reason="INVALID_SHIFT",
        )
    if isinstance(space_number, bool) or not isinstance(space_number, int):
        raise InvalidInputError("space number must be an integer", reason="INVALID_SPACE")
    if not 1 <= space_number <= space_count:
        raise InvalidInputError(f"space number must be between 1 and {space_count}", reason="INVALID_SPACE")

    check = validate_period(start_date, end_date, now)
    if not check.valid:
        raise PeriodValidationError(check.message or "invalid period", reason=check.reason)
    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        raise PeriodValidationError("invalid date format", reason=PeriodRejection.INVALID_DATE)

    needs_document = requires_document(start, end, threshold_days=document_threshold_days)
    if needs_document and not has_document:
        raise DocumentRequiredError(
            f"schedule document is required for reservations longer than {document_threshold_days} days"
        )
    return ReservationRequest(
        space_id=space_id_for(space_number),
        space_number=space_number,
        start_date=start,
        end_date=end,
        shift_type=shift,
        requires_document=needs_document,
    )


async def create_reservation(
    space_repo: SpaceRepository,
    res_repo: ReservationRepository,
    request: ReservationRequest,
    *,
    user_id: int,
    document: Optional[StoredDocument] = None,
    request_key: Optional[str] = None,
) -> CreateOutcome:
    """
    Admit a prepared request. Must run inside one transaction: the space row lock,
    the read of its active reservations and the insert happen together.
    """
    # Lock the space before any other read so every later read sees the latest commits.
    space = await space_repo.get_for_update(request.space_id)
    if request_key is not None:
        existing = await res_repo.get_by_request_key(user_id, request_key)
        if existing is not None:
            if not _same_request(existing, request):
                raise InvalidInputError(
                    "request key was already used for a different reservation",
                    reason="REQUEST_KEY_REUSED",
                )
            return CreateOutcome(reservation=existing, created=False)

    if space is None or not space.is_active:
        raise SpaceNotFoundError("parking space not found")

    active = await res_repo.list_active_for_space(space.id)
    blocking = find_conflict(space.id, request.start_date, request.end_date, request.shift_type, active)
    if blocking is not None:
        raise AvailabilityConflictError(
            "parking space is not available for the selected period and shift",
            reason=f"blocked_by:{blocking.id}",
        )

    reservation = await res_repo.create(
        user_id=user_id,
        space_id=space.id,
        start_date=request.start_date,
        end_date=request.end_date,
        shift_type=request.shift_type,
        requires_document=request.requires_document,
        document_file_id=document.file_id if document else None,
        document_file_name=document.file_name if document else None,
        document_file_size=document.file_size if document else None,
        request_key=request_key,
    )
    return CreateOutcome(reservation=reservation, created=True)


def _same_request(reservation: Reservation, request: ReservationRequest) -> bool:
    return (
        reservation.space_id == request.space_id
        and reservation.start_date == request.start_date
        and reservation.end_date == request.end_date
        and reservation.shift_type == request.shift_type
    )


async def attach_document(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    document: StoredDocument,
) -> Reservation:
    reservation = await res_repo.get_for_update(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    _apply_document(reservation, document)
    reservation.updated_at = utc_now_naive()
    return await res_repo.save(reservation)


async def discard_reservation(res_repo: ReservationRepository, *, reservation_id: int) -> None:
    """Physically remove a reservation whose required document never made it to storage."""
    reservation = await res_repo.get_for_update(reservation_id)
    if reservation is not None:
        await res_repo.delete(reservation)


async def _load_owned_for_update(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
    version: Optional[int],
) -> Reservation:
    reservation = await res_repo.get_for_update(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    ensure_owner(reservation, user_id)
    if version is not None and reservation.version != version:
        raise VersionConflictError("version mismatch")
    return reservation


def _apply_document(reservation: Reservation, document: StoredDocument) -> None:
    reservation.document_file_id = document.file_id
    reservation.document_file_name = document.file_name
    reservation.document_file_size = document.file_size
    reservation.document_deleted_at = None


def _touch(reservation: Reservation) -> None:
    reservation.updated_at = utc_now_naive()
    reservation.version += 1


async def update_reservation(
    space_repo: SpaceRepository,
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
    now: datetime | date,
    start_date: DateInput = None,
    end_date: DateInput = None,
    shift_type: object = None,
    document: Optional[StoredDocument] = None,
    version: Optional[int] = None,
    document_threshold_days: int = 2,
) -> Reservation:
    current = await res_repo.get(reservation_id)
    if current is None:
        raise ReservationNotFoundError("reservation not found")
    ensure_owner(current, user_id)

    # Lock order: space first, then the reservation row.
    await space_repo.get_for_update(current.space_id)
    reservation = await _load_owned_for_update(
        res_repo, reservation_id=reservation_id, user_id=user_id, version=version
    )
    if reservation.status != ReservationStatus.ACTIVE:
        raise InvalidStateError(f"reservation is {reservation.status.value}")

    shift = reservation.shift_type
    if shift_type is not None:
        parsed_shift = parse_shift(shift_type)
        if parsed_shift is None:
            raise InvalidInputError("invalid shift type", reason="INVALID_SHIFT")
        shift = parsed_shift

    new_start: DateInput = start_date if start_date is not None else reservation.start_date
    new_end: DateInput = end_date if end_date is not None else reservation.end_date
    if start_date is not None or end_date is not None:
        check = validate_period(new_start, new_end, now)
        if not check.valid:
            raise PeriodValidationError(check.message or "invalid period", reason=check.reason)
    start = parse_date(new_start)
    end = parse_date(new_end)
    if start is None or end is None:
        raise PeriodValidationError("invalid date format", reason=PeriodRejection.INVALID_DATE)

    needs_document = requires_document(start, end, threshold_days=document_threshold_days)
    if needs_document and document is None and not reservation.has_document:
        raise DocumentRequiredError(
            f"schedule document is required for reservations longer than {document_threshold_days} days"
        )

    active = await res_repo.list_active_for_space(reservation.space_id)
    blocking = find_conflict(
        reservation.space_id, start, end, shift, active, exclude_reservation_id=reservation.id
    )
    if blocking is not None:
        raise AvailabilityConflictError(
            "parking space is not available for the selected period and shift",
            reason=f"blocked_by:{blocking.id}",
        )

    reservation.start_date = start
    reservation.end_date = end
    reservation.shift_type = shift
    reservation.requires_document = needs_document
    if document is not None:
        _apply_document(reservation, document)
    _touch(reservation)
    return await res_repo.save(reservation)


async def release_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
    today: date,
    version: Optional[int] = None,
) -> Reservation:
    reservation = await _load_owned_for_update(
        res_repo, reservation_id=reservation_id, user_id=user_id, version=version
    )
    if reservation.status == ReservationStatus.RELEASED:
        return reservation
    if reservation.status != ReservationStatus.ACTIVE:
        raise InvalidStateError(f"reservation is {reservation.status.value}")
    if today < reservation.start_date:
        raise InvalidStateError("reservation has not started yet; cancel it instead", reason="NOT_STARTED")

    now = utc_now_naive()
    reservation.end_date = min(reservation.end_date, today)
    reservation.status = ReservationStatus.RELEASED
    reservation.released_at = now
    _touch(reservation)
    return await res_repo.save(reservation)


async def cancel_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
    version: Optional[int] = None,
) -> tuple[Reservation, ReservationStatus]:
    reservation = await res_repo.get_for_update(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    ensure_owner(reservation, user_id)
    previous = reservation.status
    # Idempotent: already cancelled returns as-is
    if reservation.status == ReservationStatus.CANCELLED:
        return reservation, previous
    if reservation.status != ReservationStatus.ACTIVE:
        raise InvalidStateError(f"reservation is {reservation.status.value}")
    if version is not None and reservation.version != version:
        raise VersionConflictError("version mismatch")

    reservation.status = ReservationStatus.CANCELLED
    reservation.cancelled_at = utc_now_naive()
    _touch(reservation)
    return await res_repo.save(reservation), previous


async def remove_document(
    res_repo: ReservationRepository,
    storage: DocumentStorage,
    *,
    reservation_id: int,
    user_id: int,
    version: Optional[int] = None,
) -> Reservation:
    reservation = await _load_owned_for_update(
        res_repo, reservation_id=reservation_id, user_id=user_id, version=version
    )
    if reservation.document_file_id is None:
        raise DocumentNotFoundError("no document found for this reservation")
    if reservation.status == ReservationStatus.ACTIVE and reservation.requires_document:
        raise InvalidStateError("an active reservation of this length must keep its document")

    await storage.delete_document(reservation.document_file_id)
    reservation.document_file_id = None
    reservation.document_file_name = None
    reservation.document_file_size = None
    reservation.document_deleted_at = utc_now_naive()
    _touch(reservation)
    return await res_repo.save(reservation)


async def get_user_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
) -> Reservation:
    reservation = await res_repo.get(reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    ensure_owner(reservation, user_id)
    return reservation


async def list_user_reservations(
    res_repo: ReservationRepository,
    *,
    user_id: int,
    status: ReservationStatus | None = ReservationStatus.ACTIVE,
) -> list[Reservation]:
    return await res_repo.list_by_user(user_id, status)


async def list_space_reservations(
    space_repo: SpaceRepository,
    res_repo: ReservationRepository,
    *,
    space_id: str,
    day: date,
) -> list[Reservation]:
    space = await space_repo.get(space_id)
    if space is None:
        raise SpaceNotFoundError("parking space not found")
    rows = await res_repo.list_active_on(day, space_id=space_id)
    return [r for r in rows if covers(r, day)]
