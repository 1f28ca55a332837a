from __future__ import annotations

from datetime import date
from typing import Optional, Protocol

from ..models import ParkingSpace, Reservation, ReservationStatus, ShiftType


class SpaceRepository(Protocol):
    async def get(self, space_id: str) -> ParkingSpace | None: ...

    async def get_for_update(self, space_id: str) -> ParkingSpace | None: ...

    async def list_all(self) -> list[ParkingSpace]: ...

    async def create(self, *, space_id: str, space_number: int, is_active: bool = True) -> ParkingSpace: ...

    async def save(self, space: ParkingSpace) -> ParkingSpace: ...


class ReservationRepository(Protocol):
    async def get(self, reservation_id: int) -> Reservation | None: ...

    async def get_for_update(self, reservation_id: int) -> Reservation | None: ...

    async def get_by_request_key(self, user_id: int, request_key: str) -> Reservation | None: ...

    async def list_active_for_space(self, space_id: str) -> list[Reservation]: ...

    async def list_active_on(self, day: date, space_id: Optional[str] = None) -> list[Reservation]: ...

    async def list_by_user(
        self,
        user_id: int,
        status: ReservationStatus | None = ReservationStatus.ACTIVE,
    ) -> list[Reservation]: ...

    async def create(
        self,
        *,
        user_id: int,
        space_id: str,
        start_date: date,
        end_date: date,
        shift_type: ShiftType,
        requires_document: bool,
        document_file_id: Optional[str] = None,
        document_file_name: Optional[str] = None,
        document_file_size: Optional[int] = None,
        request_key: Optional[str] = None,
    ) -> Reservation: ...

    async def save(self, reservation: Reservation) -> Reservation: ...

    async def delete(self, reservation: Reservation) -> None: ...
