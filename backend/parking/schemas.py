from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .domain.documents import is_safe_file_id
from .models import ParkingSpace, Reservation, ReservationStatus, ShiftType
from .usecases.dashboard import SpaceDashboard


class DocumentRef(BaseModel):
    file_id: str
    file_name: str
    file_size: int = Field(ge=0)

    @field_validator("file_id")
    @classmethod
    def _relative_file_id(cls, value: str) -> str:
        if not is_safe_file_id(value):
            raise ValueError("file_id must be a relative storage id")
        return value


class ParkingSpaceRead(BaseModel):
    space_id: str
    space_number: int
    is_active: bool

    @classmethod
    def from_db(cls, *, space: ParkingSpace) -> "ParkingSpaceRead":
        return cls(space_id=space.id, space_number=space.space_number, is_active=space.is_active)


class ReservationCreate(BaseModel):
    space_number: int
    start_date: str
    end_date: str
    shift_type: str
    schedule_document: Optional[DocumentRef] = None
    request_key: Optional[str] = Field(default=None, max_length=64)


class ReservationUpdate(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    shift_type: Optional[str] = None
    schedule_document: Optional[DocumentRef] = None
    version: Optional[int] = Field(default=None, ge=1)


class ReservationVersion(BaseModel):
    version: Optional[int] = Field(default=None, ge=1)


class ReservationRead(BaseModel):
    reservation_id: int
    user_id: int
    space_id: str
    start_date: date
    end_date: date
    shift_type: ShiftType
    shift_hours: str
    status: ReservationStatus
    version: int
    requires_document: bool
    document: Optional[DocumentRef] = None
    created_at: datetime
    updated_at: datetime
    released_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_db(cls, *, reservation: Reservation) -> "ReservationRead":
        document = None
        if reservation.document_file_id is not None:
            document = DocumentRef(
                file_id=reservation.document_file_id,
                file_name=reservation.document_file_name or "",
                file_size=reservation.document_file_size or 0,
            )
        return cls(
            reservation_id=reservation.id,
            user_id=reservation.user_id,
            space_id=reservation.space_id,
            start_date=reservation.start_date,
            end_date=reservation.end_date,
            shift_type=reservation.shift_type,
            shift_hours=reservation.shift_type.interval,
            status=reservation.status,
            version=reservation.version,
            requires_document=reservation.requires_document,
            document=document,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
            released_at=reservation.released_at,
            cancelled_at=reservation.cancelled_at,
        )


class ShiftAvailabilityRead(BaseModel):
    morning: bool
    afternoon: bool
    full_day: bool


class SpaceDashboardRead(BaseModel):
    space: ParkingSpaceRead
    reservations: List[ReservationRead]
    is_available: ShiftAvailabilityRead

    @classmethod
    def from_entry(cls, entry: SpaceDashboard) -> "SpaceDashboardRead":
        return cls(
            space=ParkingSpaceRead.from_db(space=entry.space),
            reservations=[ReservationRead.from_db(reservation=r) for r in entry.reservations],
            is_available=ShiftAvailabilityRead(
                morning=entry.is_available.morning,
                afternoon=entry.is_available.afternoon,
                full_day=entry.is_available.full_day,
            ),
        )


class DashboardRead(BaseModel):
    day: date
    spaces: List[SpaceDashboardRead]
