from typing import Optional

from ..models import ShiftType


def conflicts(existing: ShiftType, requested: ShiftType) -> bool:
    """Whether two shifts on the same space and overlapping dates collide.

    MORNING and AFTERNOON split the day and may share a space; FULL_DAY takes
    the whole day, so it collides with every shift including another FULL_DAY.
    """
    if existing == ShiftType.FULL_DAY or requested == ShiftType.FULL_DAY:
        return True
    return existing == requested


def parse_shift(value: object) -> Optional[ShiftType]:
    """Accept an enum member, its name, or its wall-clock label."""
    if isinstance(value, ShiftType):
        return value
    if not isinstance(value, str):
        return None
    try:
        return ShiftType(value)
    except ValueError:
        pass
    for shift in ShiftType:
        if shift.interval == value:
            return shift
    return None
