import pytest
from parking.domain.errors import InvalidInputError
from parking.usecases import spaces as uc


@pytest.mark.asyncio
async def test_initialize_is_idempotent(space_repo, store) -> None:
    store.spaces.clear()
    created = await uc.initialize_parking_spaces(space_repo, count=20)
    assert [s.id for s in created] == [f"space-{n}" for n in range(1, 21)]
    again = await uc.initialize_parking_spaces(space_repo, count=20)
    assert again == []
    assert len(store.spaces) == 20


@pytest.mark.asyncio
async def test_initialize_fills_gaps_only(space_repo, store) -> None:
    del store.spaces["space-7"]
    created = await uc.initialize_parking_spaces(space_repo, count=20)
    assert [s.space_number for s in created] == [7]


@pytest.mark.asyncio
async def test_initialize_rejects_empty_inventory(space_repo) -> None:
    with pytest.raises(ValueError):
        await uc.initialize_parking_spaces(space_repo, count=0)


@pytest.mark.asyncio
async def test_set_space_active_toggles_flag(space_repo, store) -> None:
    space = await uc.set_space_active(space_repo, space_number=20, active=False, space_count=20)
    assert space.is_active is False
    assert store.spaces["space-20"].is_active is False


@pytest.mark.asyncio
async def test_set_space_active_rejects_out_of_range(space_repo) -> None:
    with pytest.raises(InvalidInputError):
        await uc.set_space_active(space_repo, space_number=21, active=False, space_count=20)


@pytest.mark.asyncio
async def test_list_spaces_sorted(space_repo) -> None:
    spaces = await uc.list_spaces(space_repo)
    assert [s.space_number for s in spaces] == list(range(1, 21))
