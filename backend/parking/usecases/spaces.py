from typing import List

from ..domain.errors import InvalidInputError, SpaceNotFoundError
from ..domain.repositories import SpaceRepository
from ..models import ParkingSpace, space_id_for


async def initialize_parking_spaces(space_repo: SpaceRepository, *, count: int) -> List[ParkingSpace]:
    """Seed ``space-1`` .. ``space-<count>``; existing spaces are left as they are."""
    if count < 1:
        raise ValueError("count must be >= 1")
    existing = {space.space_number for space in await space_repo.list_all()}
    created: List[ParkingSpace] = []
    for number in range(1, count + 1):
        if number in existing:
            continue
        created.append(await space_repo.create(space_id=space_id_for(number), space_number=number))
    return created


async def list_spaces(space_repo: SpaceRepository) -> List[ParkingSpace]:
    spaces = await space_repo.list_all()
    return sorted(spaces, key=lambda space: space.space_number)


async def set_space_active(
    space_repo: SpaceRepository,
    *,
    space_number: int,
    active: bool,
    space_count: int,
) -> ParkingSpace:
    if not 1 <= space_number <= space_count:
        raise InvalidInputError(f"space number must be between 1 and {space_count}", reason="INVALID_SPACE")
    space = await space_repo.get_for_update(space_id_for(space_number))
    if space is None:
        raise SpaceNotFoundError("parking space not found")
    space.is_active = active
    return await space_repo.save(space)
