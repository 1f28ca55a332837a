from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Protocol

from ..models import ReservationStatus, ShiftType
from .errors import NotOwnerError
from .shifts import conflicts


class Booking(Protocol):
    id: int
    user_id: int
    space_id: str
    start_date: date
    end_date: date
    shift_type: ShiftType
    status: ReservationStatus


def overlaps(start_date: date, end_date: date, booking: Booking) -> bool:
    return start_date <= booking.end_date and end_date >= booking.start_date


def covers(booking: Booking, day: date) -> bool:
    return booking.start_date <= day <= booking.end_date


def find_conflict(
    space_id: str,
    start_date: date,
    end_date: date,
    shift_type: ShiftType,
    bookings: Iterable[Booking],
    exclude_reservation_id: Optional[int] = None,
) -> Optional[Booking]:
    """Return the first active booking on the space that blocks the candidate, if any."""
    for booking in bookings:
        if booking.status != ReservationStatus.ACTIVE or booking.space_id != space_id:
            continue
        if exclude_reservation_id is not None and booking.id == exclude_reservation_id:
            continue
        if overlaps(start_date, end_date, booking) and conflicts(booking.shift_type, shift_type):
            return booking
    return None


def is_available(
    space_id: str,
    start_date: date,
    end_date: date,
    shift_type: ShiftType,
    bookings: Iterable[Booking],
    exclude_reservation_id: Optional[int] = None,
) -> bool:
    return (
        find_conflict(space_id, start_date, end_date, shift_type, bookings, exclude_reservation_id)
        is None
    )


def ensure_owner(booking: Booking, user_id: int) -> None:
    """Single authorization guard run before any mutation of a reservation."""
    if booking.user_id != user_id:
        raise NotOwnerError("reservation belongs to another user")
