from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List

from ..domain.repositories import ReservationRepository, SpaceRepository
from ..domain.services import covers
from ..models import ParkingSpace, Reservation, ShiftType

_MORNING_BLOCKERS = {ShiftType.MORNING, ShiftType.FULL_DAY}
_AFTERNOON_BLOCKERS = {ShiftType.AFTERNOON, ShiftType.FULL_DAY}


@dataclass(frozen=True)
class ShiftAvailability:
    morning: bool
    afternoon: bool
    full_day: bool


@dataclass(frozen=True)
class SpaceDashboard:
    space: ParkingSpace
    reservations: List[Reservation] = field(default_factory=list)
    is_available: ShiftAvailability = ShiftAvailability(morning=True, afternoon=True, full_day=True)


@dataclass(frozen=True)
class Dashboard:
    day: date
    spaces: List[SpaceDashboard]


def summarize(reservations: List[Reservation]) -> ShiftAvailability:
    shifts = {r.shift_type for r in reservations}
    return ShiftAvailability(
        morning=not shifts & _MORNING_BLOCKERS,
        afternoon=not shifts & _AFTERNOON_BLOCKERS,
        full_day=not reservations,
    )


async def build_dashboard(
    space_repo: SpaceRepository,
    res_repo: ReservationRepository,
    *,
    day: date,
) -> List[SpaceDashboard]:
    spaces = await space_repo.list_all()
    by_space: Dict[str, List[Reservation]] = defaultdict(list)
    for reservation in await res_repo.list_active_on(day):
        if covers(reservation, day):
            by_space[reservation.space_id].append(reservation)

    return [
        SpaceDashboard(space=space, reservations=by_space[space.id], is_available=summarize(by_space[space.id]))
        for space in sorted(spaces, key=lambda s: s.space_number)
    ]
