import asyncio
from collections import defaultdict
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

import pytest
from parking import service as service_module
from parking.config import Settings
from parking.domain.documents import StoredDocument
from parking.domain.errors import DocumentStorageError
from parking.models import ParkingSpace, Reservation, ReservationStatus, ShiftType, space_id_for
from parking.service import ReservationService

FIXED_NOW = datetime(2025, 1, 1, 9, 0)


class FakeStore:
    """In-memory stand-in for the database shared by every fake session."""

    def __init__(self, space_count: int = 20) -> None:
        self.spaces: Dict[str, ParkingSpace] = {}
        self.reservations: Dict[int, Reservation] = {}
        self.next_id = 1
        self.row_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        for number in range(1, space_count + 1):
            self.spaces[space_id_for(number)] = ParkingSpace(
                id=space_id_for(number),
                space_number=number,
                is_active=True,
                created_at=FIXED_NOW,
            )

    def add_reservation(
        self,
        *,
        user_id: int,
        space_id: str,
        start_date: date,
        end_date: date,
        shift_type: ShiftType,
        status: ReservationStatus = ReservationStatus.ACTIVE,
        document_file_id: Optional[str] = None,
    ) -> Reservation:
        reservation = Reservation(
            id=self.next_id,
            user_id=user_id,
            space_id=space_id,
            start_date=start_date,
            end_date=end_date,
            shift_type=shift_type,
            status=status,
            requires_document=(end_date - start_date).days > 2,
            document_file_id=document_file_id,
            document_file_name="schedule.pdf" if document_file_id else None,
            document_file_size=10 if document_file_id else None,
            request_key=None,
            version=1,
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
        )
        self.reservations[reservation.id] = reservation
        self.next_id += 1
        return reservation


class DummySession:
    """Minimal async session stub that supports `async with session.begin()`.

    Row locks taken through `lock_row` are held until the session exits, like
    `SELECT ... FOR UPDATE` inside a transaction.
    """

    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self.held: List[asyncio.Lock] = []

    async def lock_row(self, key: str) -> None:
        lock = self.store.row_locks[key]
        if lock in self.held:
            return
        await lock.acquire()
        self.held.append(lock)

    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        while self.held:
            self.held.pop().release()
        return False

    def begin(self) -> "DummySession":
        return self


class FakeSpaceRepo:
    def __init__(self, session: DummySession) -> None:
        self.session = session
        self.store = session.store

    async def get(self, space_id: str) -> Optional[ParkingSpace]:
        await asyncio.sleep(0)
        return self.store.spaces.get(space_id)

    async def get_for_update(self, space_id: str) -> Optional[ParkingSpace]:
        await self.session.lock_row(space_id)
        await asyncio.sleep(0)
        return self.store.spaces.get(space_id)

    async def list_all(self) -> List[ParkingSpace]:
        return list(self.store.spaces.values())

    async def create(self, *, space_id: str, space_number: int, is_active: bool = True) -> ParkingSpace:
        space = ParkingSpace(id=space_id, space_number=space_number, is_active=is_active, created_at=FIXED_NOW)
        self.store.spaces[space_id] = space
        return space

    async def save(self, space: ParkingSpace) -> ParkingSpace:
        self.store.spaces[space.id] = space
        return space


class FakeReservationRepo:
    def __init__(self, session: DummySession) -> None:
        self.store = session.store

    async def get(self, reservation_id: int) -> Optional[Reservation]:
        return self.store.reservations.get(reservation_id)

    async def get_for_update(self, reservation_id: int) -> Optional[Reservation]:
        await asyncio.sleep(0)
        return self.store.reservations.get(reservation_id)

    async def get_by_request_key(self, user_id: int, request_key: str) -> Optional[Reservation]:
        for reservation in self.store.reservations.values():
            if reservation.user_id == user_id and reservation.request_key == request_key:
                return reservation
        return None

    async def list_active_for_space(self, space_id: str) -> List[Reservation]:
        # Yield between the read and the caller's write so unserialized admissions would interleave.
        await asyncio.sleep(0)
        return [
            r
            for r in self.store.reservations.values()
            if r.space_id == space_id and r.status == ReservationStatus.ACTIVE
        ]

    async def list_active_on(self, day: date, space_id: Optional[str] = None) -> List[Reservation]:
        return [
            r
            for r in self.store.reservations.values()
            if r.status == ReservationStatus.ACTIVE
            and r.start_date <= day <= r.end_date
            and (space_id is None or r.space_id == space_id)
        ]

    async def list_by_user(
        self,
        user_id: int,
        status: Optional[ReservationStatus] = ReservationStatus.ACTIVE,
    ) -> List[Reservation]:
        rows = [
            r
            for r in self.store.reservations.values()
            if r.user_id == user_id and (status is None or r.status == status)
        ]
        return sorted(rows, key=lambda r: r.start_date)

    async def create(self, **fields: object) -> Reservation:
        await asyncio.sleep(0)
        reservation = Reservation(
            id=self.store.next_id,
            status=ReservationStatus.ACTIVE,
            version=1,
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
            **fields,
        )
        self.store.reservations[reservation.id] = reservation
        self.store.next_id += 1
        return reservation

    async def save(self, reservation: Reservation) -> Reservation:
        self.store.reservations[reservation.id] = reservation
        return reservation

    async def delete(self, reservation: Reservation) -> None:
        self.store.reservations.pop(reservation.id, None)


class FakeDocumentStorage:
    def __init__(self, fail_upload: bool = False) -> None:
        self.fail_upload = fail_upload
        self.uploaded: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    async def upload_document(
        self,
        content: bytes,
        file_name: str,
        user_id: int,
        reservation_id: int,
    ) -> StoredDocument:
        if self.fail_upload:
            raise DocumentStorageError("drive unavailable")
        file_id = f"{user_id}/{reservation_id}/{file_name}"
        self.uploaded[file_id] = content
        return StoredDocument(file_id=file_id, file_name=file_name, file_size=len(content))

    async def delete_document(self, file_id: str) -> None:
        self.deleted.append(file_id)
        self.uploaded.pop(file_id, None)

    async def find_document(self, file_id: str, user_id: int) -> Optional[StoredDocument]:
        if not file_id.startswith(f"{user_id}/") or file_id not in self.uploaded:
            return None
        content = self.uploaded[file_id]
        return StoredDocument(file_id=file_id, file_name=file_id.rsplit("/", 1)[-1], file_size=len(content))

    def put(self, file_id: str, content: bytes = b"%PDF-1.7 schedule") -> StoredDocument:
        self.uploaded[file_id] = content
        return StoredDocument(file_id=file_id, file_name=file_id.rsplit("/", 1)[-1], file_size=len(content))


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def space_repo(store: FakeStore) -> FakeSpaceRepo:
    return FakeSpaceRepo(DummySession(store))


@pytest.fixture
def res_repo(store: FakeStore) -> FakeReservationRepo:
    return FakeReservationRepo(DummySession(store))


@pytest.fixture
def documents() -> FakeDocumentStorage:
    return FakeDocumentStorage()


@pytest.fixture
def make_service(
    monkeypatch: pytest.MonkeyPatch,
    store: FakeStore,
    documents: FakeDocumentStorage,
) -> Callable[..., ReservationService]:
    monkeypatch.setattr(service_module, "SqlAlchemySpaceRepository", FakeSpaceRepo)
    monkeypatch.setattr(service_module, "SqlAlchemyReservationRepository", FakeReservationRepo)

    def _make(
        *,
        storage: Optional[FakeDocumentStorage] = None,
        now: datetime = FIXED_NOW,
        timeout: float = 2.0,
    ) -> ReservationService:
        return ReservationService(
            lambda: DummySession(store),  # type: ignore[arg-type, return-value]
            storage or documents,
            settings=Settings(store_timeout_seconds=timeout, auth_secret="testsecret"),
            clock=lambda: now,
        )

    return _make


@pytest.fixture
def service(make_service: Callable[..., ReservationService]) -> ReservationService:
    return make_service()


@pytest.fixture
def failing_documents() -> FakeDocumentStorage:
    return FakeDocumentStorage(fail_upload=True)
