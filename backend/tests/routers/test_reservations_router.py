from typing import Any, AsyncIterator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from parking import service as service_module
from parking.config import get_settings
from parking.deps import get_reservation_service
from parking.main import app
from parking.service import ReservationService
from parking.utils.auth import create_access_token


@pytest.fixture(autouse=True)
def _auth_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH_SECRET", "testsecret")
    monkeypatch.setattr(service_module, "emit_audit_log", lambda **kwargs: None)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _auth(user_id: int) -> dict[str, str]:
    token = create_access_token(user_id=user_id, secret="testsecret")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(make_service: Callable[..., ReservationService]) -> AsyncIterator[AsyncClient]:
    service = make_service()
    app.dependency_overrides[get_reservation_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


def _payload(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "space_number": 1,
        "start_date": "2025-01-02",
        "end_date": "2025-01-03",
        "shift_type": "MORNING",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_create_requires_bearer_token(client: AsyncClient) -> None:
    resp = await client.post("/reservations", json=_payload())
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_create_returns_201_with_shift_hours(client: AsyncClient) -> None:
    resp = await client.post("/reservations", json=_payload(), headers=_auth(1))
    assert resp.status_code == 201
    body = resp.json()
    assert body["space_id"] == "space-1"
    assert body["shift_type"] == "MORNING"
    assert body["shift_hours"] == "8:00-14:00"
    assert body["status"] == "active"
    assert body["version"] == 1


@pytest.mark.asyncio
async def test_conflicting_create_maps_to_409(client: AsyncClient) -> None:
    assert (await client.post("/reservations", json=_payload(), headers=_auth(1))).status_code == 201
    resp = await client.post("/reservations", json=_payload(shift_type="FULL_DAY"), headers=_auth(2))
    assert resp.status_code == 409
    assert resp.json()["detail"]["error"] == "CONFLICT"


@pytest.mark.asyncio
async def test_period_rejection_maps_to_400(client: AsyncClient) -> None:
    resp = await client.post(
        "/reservations",
        json=_payload(start_date="2024-12-30", end_date="2024-12-31"),
        headers=_auth(1),
    )
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"] == "VALIDATION_FAILED"
    assert detail["reason"] == "PAST_DATE"


@pytest.mark.asyncio
async def test_out_of_range_space_maps_to_400(client: AsyncClient) -> None:
    resp = await client.post("/reservations", json=_payload(space_number=21), headers=_auth(1))
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "INVALID_SPACE"


@pytest.mark.asyncio
async def test_foreign_reservation_is_forbidden(client: AsyncClient) -> None:
    created = (await client.post("/reservations", json=_payload(), headers=_auth(1))).json()
    rid = created["reservation_id"]
    resp = await client.get(f"/me/reservations/{rid}", headers=_auth(2))
    assert resp.status_code == 403
    missing = await client.get("/me/reservations/999", headers=_auth(1))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_stale_if_match_maps_to_412(client: AsyncClient) -> None:
    created = (await client.post("/reservations", json=_payload(), headers=_auth(1))).json()
    rid = created["reservation_id"]
    resp = await client.patch(
        f"/me/reservations/{rid}",
        json={"shift_type": "AFTERNOON"},
        headers={**_auth(1), "If-Match": '"5"'},
    )
    assert resp.status_code == 412
    ok = await client.patch(
        f"/me/reservations/{rid}",
        json={"shift_type": "AFTERNOON"},
        headers={**_auth(1), "If-Match": '"1"'},
    )
    assert ok.status_code == 200
    assert ok.json()["shift_type"] == "AFTERNOON"
    assert ok.json()["version"] == 2


@pytest.mark.asyncio
async def test_cancel_frees_the_space_and_leaves_active_list(client: AsyncClient) -> None:
    created = (await client.post("/reservations", json=_payload(), headers=_auth(1))).json()
    rid = created["reservation_id"]
    resp = await client.post(f"/me/reservations/{rid}/cancel", headers=_auth(1))
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    active = await client.get("/me/reservations", headers=_auth(1))
    assert active.json() == []
    cancelled = await client.get("/me/reservations", params={"status": "cancelled"}, headers=_auth(1))
    assert [r["reservation_id"] for r in cancelled.json()] == [rid]

    again = await client.post("/reservations", json=_payload(shift_type="FULL_DAY"), headers=_auth(2))
    assert again.status_code == 201


@pytest.mark.asyncio
async def test_dashboard_reports_shift_availability(client: AsyncClient) -> None:
    await client.post("/reservations", json=_payload(), headers=_auth(1))
    resp = await client.get("/dashboard", params={"date": "2025-01-02"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["day"] == "2025-01-02"
    assert len(body["spaces"]) == 20
    first = body["spaces"][0]
    assert first["space"]["space_number"] == 1
    assert first["is_available"] == {"morning": False, "afternoon": True, "full_day": False}
    assert body["spaces"][1]["is_available"] == {"morning": True, "afternoon": True, "full_day": True}


@pytest.mark.asyncio
async def test_space_listing_and_day_view_are_public(client: AsyncClient) -> None:
    await client.post("/reservations", json=_payload(), headers=_auth(1))
    spaces = await client.get("/spaces")
    assert spaces.status_code == 200
    assert [s["space_number"] for s in spaces.json()] == list(range(1, 21))

    day_view = await client.get("/spaces/space-1/reservations", params={"date": "2025-01-03"})
    assert day_view.status_code == 200
    assert len(day_view.json()) == 1
    empty = await client.get("/spaces/space-1/reservations", params={"date": "2025-01-04"})
    assert empty.json() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("file_id", ["/etc/passwd", "../../victim.db", "1/../2/plan.pdf"])
async def test_path_like_document_reference_is_rejected(client: AsyncClient, file_id: str) -> None:
    body = _payload(
        start_date="2025-01-01",
        end_date="2025-01-05",
        schedule_document={"file_id": file_id, "file_name": "plan.pdf", "file_size": 10},
    )
    resp = await client.post("/reservations", json=body, headers=_auth(1))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_dashboard_reports_the_day_it_was_built_for(client: AsyncClient) -> None:
    resp = await client.get("/dashboard")
    assert resp.status_code == 200
    assert resp.json()["day"] == "2025-01-01"
