from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.repositories import ReservationRepository, SpaceRepository
from ..models import ParkingSpace, Reservation, ReservationStatus, ShiftType


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SqlAlchemySpaceRepository(SpaceRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, space_id: str) -> ParkingSpace | None:
        result = await self.session.scalar(select(ParkingSpace).where(ParkingSpace.id == space_id))
        return result if isinstance(result, ParkingSpace) else None

    async def get_for_update(self, space_id: str) -> ParkingSpace | None:
        # Row lock on the space serializes admissions for that space.
        result = await self.session.scalar(
            select(ParkingSpace)
            .where(ParkingSpace.id == space_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result if isinstance(result, ParkingSpace) else None

    async def list_all(self) -> List[ParkingSpace]:
        rows = await self.session.scalars(select(ParkingSpace).order_by(ParkingSpace.space_number))
        return list(rows.all())

    async def create(self, *, space_id: str, space_number: int, is_active: bool = True) -> ParkingSpace:
        space = ParkingSpace(
            id=space_id,
            space_number=space_number,
            is_active=is_active,
            created_at=_utc_now_naive(),
        )
        self.session.add(space)
        await self.session.flush()
        return space

    async def save(self, space: ParkingSpace) -> ParkingSpace:
        self.session.add(space)
        await self.session.flush()
        return space


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, reservation_id: int) -> Reservation | None:
        result = await self.session.scalar(select(Reservation).where(Reservation.id == reservation_id))
        return result if isinstance(result, Reservation) else None

    async def get_for_update(self, reservation_id: int) -> Reservation | None:
        result = await self.session.scalar(
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result if isinstance(result, Reservation) else None

    async def get_by_request_key(self, user_id: int, request_key: str) -> Reservation | None:
        stmt = (
            select(Reservation)
            .where(
                Reservation.user_id == user_id,
                Reservation.request_key == request_key,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Reservation) else None

    async def list_active_for_space(self, space_id: str) -> List[Reservation]:
        # Locking read: sees rows committed after the transaction's snapshot was taken.
        stmt = (
            select(Reservation)
            .where(
                Reservation.space_id == space_id,
                Reservation.status == ReservationStatus.ACTIVE,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def list_active_on(self, day: date, space_id: Optional[str] = None) -> List[Reservation]:
        stmt: Select[tuple[Reservation]] = (
            select(Reservation)
            .where(
                Reservation.status == ReservationStatus.ACTIVE,
                Reservation.start_date <= day,
                Reservation.end_date >= day,
            )
            .order_by(Reservation.space_id, Reservation.start_date)
        )
        if space_id is not None:
            stmt = stmt.where(Reservation.space_id == space_id)
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def list_by_user(
        self,
        user_id: int,
        status: ReservationStatus | None = ReservationStatus.ACTIVE,
    ) -> List[Reservation]:
        stmt = select(Reservation).where(Reservation.user_id == user_id).order_by(Reservation.start_date)
        if status is not None:
            stmt = stmt.where(Reservation.status == status)
        rows = await self.session.scalars(stmt)
        return list(rows.all())

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
    ) -> Reservation:
        now = _utc_now_naive()
        reservation = Reservation(
            user_id=user_id,
            space_id=space_id,
            start_date=start_date,
            end_date=end_date,
            shift_type=shift_type,
            status=ReservationStatus.ACTIVE,
            requires_document=requires_document,
            document_file_id=document_file_id,
            document_file_name=document_file_name,
            document_file_size=document_file_size,
            request_key=request_key,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def delete(self, reservation: Reservation) -> None:
        await self.session.delete(reservation)
        await self.session.flush()
