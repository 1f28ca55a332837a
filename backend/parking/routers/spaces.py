from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_reservation_service
from ..schemas import DashboardRead, ParkingSpaceRead, ReservationRead, SpaceDashboardRead
from ..service import ReservationService
from .results import unwrap_or_raise

router = APIRouter(prefix="", tags=["spaces"])


@router.get("/spaces", response_model=List[ParkingSpaceRead])
async def list_spaces(
    service: ReservationService = Depends(get_reservation_service),
) -> list[ParkingSpaceRead]:
    result = await service.list_spaces()
    return [ParkingSpaceRead.from_db(space=space) for space in unwrap_or_raise(result)]


@router.get("/spaces/{space_id}/reservations", response_model=List[ReservationRead])
async def list_space_reservations(
    space_id: str,
    day: date = Query(..., alias="date", description="calendar date (YYYY-MM-DD)"),
    service: ReservationService = Depends(get_reservation_service),
) -> list[ReservationRead]:
    result = await service.get_space_reservations(space_id, day)
    return [ReservationRead.from_db(reservation=r) for r in unwrap_or_raise(result)]


@router.get("/dashboard", response_model=DashboardRead)
async def dashboard(
    day: Optional[date] = Query(default=None, alias="date", description="defaults to today"),
    service: ReservationService = Depends(get_reservation_service),
) -> DashboardRead:
    view = unwrap_or_raise(await service.build_dashboard(day))
    return DashboardRead(
        day=view.day,
        spaces=[SpaceDashboardRead.from_entry(entry) for entry in view.spaces],
    )
