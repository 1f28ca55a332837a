from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .domain.documents import DocumentStorage, DocumentUpload, StoredDocument, is_safe_file_id, validate_pdf
from .domain.errors import (
    DocumentNotFoundError,
    DocumentStorageError,
    ErrorKind,
    InvalidInputError,
    ReservationError,
    ReservationNotFoundError,
    StoreFailureError,
)
from .domain.periods import DateInput, PeriodCheck, parse_date
from .domain.periods import validate_period as check_period
from .domain.results import OperationResult
from .domain.services import is_available as resolve_availability
from .domain.shifts import parse_shift
from .infrastructure.repositories import SqlAlchemyReservationRepository, SqlAlchemySpaceRepository
from .models import ParkingSpace, Reservation, ReservationStatus
from .usecases import dashboard as dashboard_usecase
from .usecases import reservations as reservation_usecase
from .usecases import spaces as space_usecase
from .usecases.dashboard import Dashboard
from .utils.audit_log import AuditLogError, emit_audit_log
from .utils.time import local_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

Repos = tuple[SqlAlchemySpaceRepository, SqlAlchemyReservationRepository]


class ReservationService:
    """Operation boundary of the reservation engine.

    Every public coroutine returns an :class:`OperationResult`; domain errors,
    store errors and timeouts are converted here and never escape. Admissions
    for one space are serialized twice over: an in-process lock keyed on the
    space id, and a row lock on the space inside the admitting transaction.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        documents: DocumentStorage,
        *,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.documents = documents
        self.settings = settings or get_settings()
        self.clock = clock or (lambda: local_now(self.settings.timezone))
        self._space_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # -- plumbing -----------------------------------------------------------

    def _bounded(self) -> asyncio.Timeout:
        return asyncio.timeout(self.settings.store_timeout_seconds)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[Repos]:
        async with self.session_factory() as session:
            async with session.begin():
                yield SqlAlchemySpaceRepository(session), SqlAlchemyReservationRepository(session)

    @asynccontextmanager
    async def _snapshot(self) -> AsyncIterator[Repos]:
        async with self.session_factory() as session:
            yield SqlAlchemySpaceRepository(session), SqlAlchemyReservationRepository(session)

    async def _run(self, operation: str, work: Callable[[], Awaitable[T]]) -> OperationResult[T]:
        try:
            value = await work()
        except ReservationError as exc:
            logger.info("%s rejected: %s %s", operation, exc.kind.value, exc.reason or exc.message)
            return OperationResult.from_error(exc)
        except TimeoutError:
            logger.error("%s timed out after %.1fs", operation, self.settings.store_timeout_seconds)
            return OperationResult.failure(ErrorKind.STORE_FAILURE, reason="TIMEOUT", message="store timed out")
        except (SQLAlchemyError, DocumentStorageError) as exc:
            logger.exception("%s failed in store", operation)
            return OperationResult.failure(ErrorKind.STORE_FAILURE, reason="STORE_ERROR", message=str(exc))
        return OperationResult.success(value)

    def _audit(self, **fields: Any) -> None:
        """Record an audit event for a change that is already committed; never fails the operation."""
        try:
            emit_audit_log(**fields)
        except AuditLogError:
            logger.exception("audit record dropped for %s", fields.get("action"))

    def _today(self) -> date:
        return self.clock().date()

    # -- pure checks --------------------------------------------------------

    def validate_period(self, start_date: DateInput, end_date: DateInput) -> OperationResult[PeriodCheck]:
        check = check_period(start_date, end_date, self.clock())
        if check.valid:
            return OperationResult.success(check)
        return OperationResult.failure(
            ErrorKind.VALIDATION_FAILED, reason=check.reason, message=check.message
        )

    async def is_available(
        self,
        space_id: str,
        start_date: DateInput,
        end_date: DateInput,
        shift_type: object,
        exclude_reservation_id: Optional[int] = None,
    ) -> OperationResult[bool]:
        async def work() -> bool:
            start, end = parse_date(start_date), parse_date(end_date)
            shift = parse_shift(shift_type)
            if start is None or end is None or shift is None:
                raise InvalidInputError("start_date, end_date and shift_type are required")
            async with self._bounded():
                async with self._snapshot() as (_, res_repo):
                    active = await res_repo.list_active_for_space(space_id)
            return resolve_availability(space_id, start, end, shift, active, exclude_reservation_id)

        return await self._run("is_available", work)

    # -- lifecycle ----------------------------------------------------------

    async def create_reservation(
        self,
        *,
        user_id: int,
        space_number: object,
        start_date: DateInput,
        end_date: DateInput,
        shift_type: object,
        document: Optional[StoredDocument] = None,
        upload: Optional[DocumentUpload] = None,
        request_key: Optional[str] = None,
    ) -> OperationResult[Reservation]:
        async def work() -> Reservation:
            if upload is not None:
                validate_pdf(upload, max_bytes=self.settings.max_document_bytes)
            request = reservation_usecase.prepare_reservation_request(
                space_number=space_number,
                start_date=start_date,
                end_date=end_date,
                shift_type=shift_type,
                now=self.clock(),
                has_document=document is not None or upload is not None,
                space_count=self.settings.space_count,
                document_threshold_days=self.settings.document_required_after_days,
            )
            stored_ref = await self._resolve_document(document, user_id)
            async with self._bounded():
                async with self._space_locks[request.space_id]:
                    async with self._transaction() as (space_repo, res_repo):
                        outcome = await reservation_usecase.create_reservation(
                            space_repo,
                            res_repo,
                            request,
                            user_id=user_id,
                            document=stored_ref,
                            request_key=request_key,
                        )
            reservation = outcome.reservation
            if not outcome.created:
                logger.info("request key %s replayed reservation %s", request_key, reservation.id)
                return reservation

            self._audit(
                action="reservation.created",
                initiator="user",
                reservation_id=reservation.id,
                space_id=reservation.space_id,
                user_id=user_id,
                shift_type=reservation.shift_type,
                start_date=reservation.start_date,
                end_date=reservation.end_date,
                status_from=None,
                status_to=reservation.status,
                version=reservation.version,
            )
            if upload is not None:
                reservation = await self._upload_and_attach(reservation, upload, user_id)
            return reservation

        return await self._run("create_reservation", work)

    async def _resolve_document(
        self,
        document: Optional[StoredDocument],
        user_id: int,
    ) -> Optional[StoredDocument]:
        """Swap a caller-supplied document reference for what storage actually holds for that user."""
        if document is None:
            return None
        if not is_safe_file_id(document.file_id):
            raise InvalidInputError("invalid document reference", reason="INVALID_DOCUMENT_REF")
        async with self._bounded():
            stored = await self.documents.find_document(document.file_id, user_id)
        if stored is None:
            raise DocumentNotFoundError("schedule document not found")
        return stored

    async def _upload_and_attach(
        self,
        reservation: Reservation,
        upload: DocumentUpload,
        user_id: int,
    ) -> Reservation:
        try:
            async with self._bounded():
                stored = await self.documents.upload_document(
                    upload.content, upload.file_name, user_id, reservation.id
                )
        except (DocumentStorageError, TimeoutError) as exc:
            await self._compensate(reservation, stored=None)
            raise StoreFailureError(
                "failed to upload schedule document", reason="DOCUMENT_UPLOAD_FAILED"
            ) from exc

        try:
            async with self._bounded():
                async with self._transaction() as (_, res_repo):
                    return await reservation_usecase.attach_document(
                        res_repo, reservation_id=reservation.id, document=stored
                    )
        except (SQLAlchemyError, TimeoutError, ReservationError) as exc:
            await self._compensate(reservation, stored=stored)
            raise StoreFailureError(
                "failed to attach schedule document", reason="DOCUMENT_ATTACH_FAILED"
            ) from exc

    async def _compensate(self, reservation: Reservation, *, stored: Optional[StoredDocument]) -> None:
        """Remove a just-created reservation (and its stored document) after a failed upload."""
        try:
            async with self._bounded():
                async with self._transaction() as (_, res_repo):
                    await reservation_usecase.discard_reservation(res_repo, reservation_id=reservation.id)
                if stored is not None:
                    await self.documents.delete_document(stored.file_id)
        except (SQLAlchemyError, DocumentStorageError, TimeoutError):
            logger.exception("compensation failed for reservation %s", reservation.id)
            return
        self._audit(
            action="reservation.compensated",
            initiator="system",
            reservation_id=reservation.id,
            space_id=reservation.space_id,
            user_id=reservation.user_id,
            status_from=ReservationStatus.ACTIVE,
            status_to=None,
            message="document upload failed",
        )

    async def update_reservation(
        self,
        *,
        user_id: int,
        reservation_id: int,
        start_date: DateInput = None,
        end_date: DateInput = None,
        shift_type: object = None,
        document: Optional[StoredDocument] = None,
        version: Optional[int] = None,
    ) -> OperationResult[Reservation]:
        async def work() -> Reservation:
            stored_ref = await self._resolve_document(document, user_id)
            async with self._bounded():
                async with self._snapshot() as (_, res_repo):
                    current = await res_repo.get(reservation_id)
                if current is None:
                    raise ReservationNotFoundError("reservation not found")
                async with self._space_locks[current.space_id]:
                    async with self._transaction() as (space_repo, res_repo):
                        updated = await reservation_usecase.update_reservation(
                            space_repo,
                            res_repo,
                            reservation_id=reservation_id,
                            user_id=user_id,
                            now=self.clock(),
                            start_date=start_date,
                            end_date=end_date,
                            shift_type=shift_type,
                            document=stored_ref,
                            version=version,
                            document_threshold_days=self.settings.document_required_after_days,
                        )
            self._audit(
                action="reservation.updated",
                initiator="user",
                reservation_id=updated.id,
                space_id=updated.space_id,
                user_id=user_id,
                shift_type=updated.shift_type,
                start_date=updated.start_date,
                end_date=updated.end_date,
                status_from=ReservationStatus.ACTIVE,
                status_to=updated.status,
                version=updated.version,
            )
            return updated

        return await self._run("update_reservation", work)

    async def release_reservation(
        self,
        *,
        user_id: int,
        reservation_id: int,
        version: Optional[int] = None,
    ) -> OperationResult[Reservation]:
        async def work() -> Reservation:
            async with self._bounded():
                async with self._transaction() as (_, res_repo):
                    released = await reservation_usecase.release_reservation(
                        res_repo,
                        reservation_id=reservation_id,
                        user_id=user_id,
                        today=self._today(),
                        version=version,
                    )
            self._audit(
                action="reservation.released",
                initiator="user",
                reservation_id=released.id,
                space_id=released.space_id,
                user_id=user_id,
                end_date=released.end_date,
                status_from=ReservationStatus.ACTIVE,
                status_to=released.status,
                version=released.version,
            )
            return released

        return await self._run("release_reservation", work)

    async def cancel_reservation(
        self,
        *,
        user_id: int,
        reservation_id: int,
        version: Optional[int] = None,
    ) -> OperationResult[Reservation]:
        async def work() -> Reservation:
            async with self._bounded():
                async with self._transaction() as (_, res_repo):
                    cancelled, previous = await reservation_usecase.cancel_reservation(
                        res_repo,
                        reservation_id=reservation_id,
                        user_id=user_id,
                        version=version,
                    )
            if previous != cancelled.status:
                self._audit(
                    action="reservation.cancelled",
                    initiator="user",
                    reservation_id=cancelled.id,
                    space_id=cancelled.space_id,
                    user_id=user_id,
                    status_from=previous,
                    status_to=cancelled.status,
                    version=cancelled.version,
                )
            return cancelled

        return await self._run("cancel_reservation", work)

    async def remove_document(
        self,
        *,
        user_id: int,
        reservation_id: int,
        version: Optional[int] = None,
    ) -> OperationResult[Reservation]:
        async def work() -> Reservation:
            async with self._bounded():
                async with self._transaction() as (_, res_repo):
                    updated = await reservation_usecase.remove_document(
                        res_repo,
                        self.documents,
                        reservation_id=reservation_id,
                        user_id=user_id,
                        version=version,
                    )
            self._audit(
                action="reservation.document_removed",
                initiator="user",
                reservation_id=updated.id,
                space_id=updated.space_id,
                user_id=user_id,
                version=updated.version,
            )
            return updated

        return await self._run("remove_document", work)

    # -- reads --------------------------------------------------------------

    async def get_reservation(self, *, user_id: int, reservation_id: int) -> OperationResult[Reservation]:
        async def work() -> Reservation:
            async with self._bounded():
                async with self._snapshot() as (_, res_repo):
                    return await reservation_usecase.get_user_reservation(
                        res_repo, reservation_id=reservation_id, user_id=user_id
                    )

        return await self._run("get_reservation", work)

    async def get_user_reservations(
        self,
        user_id: int,
        status: ReservationStatus | None = ReservationStatus.ACTIVE,
    ) -> OperationResult[list[Reservation]]:
        async def work() -> list[Reservation]:
            async with self._bounded():
                async with self._snapshot() as (_, res_repo):
                    return await reservation_usecase.list_user_reservations(
                        res_repo, user_id=user_id, status=status
                    )

        return await self._run("get_user_reservations", work)

    async def get_space_reservations(self, space_id: str, day: DateInput) -> OperationResult[list[Reservation]]:
        async def work() -> list[Reservation]:
            target = parse_date(day)
            if target is None:
                raise InvalidInputError("date parameter is required", reason="INVALID_DATE")
            async with self._bounded():
                async with self._snapshot() as (space_repo, res_repo):
                    return await reservation_usecase.list_space_reservations(
                        space_repo, res_repo, space_id=space_id, day=target
                    )

        return await self._run("get_space_reservations", work)

    async def build_dashboard(self, day: DateInput = None) -> OperationResult[Dashboard]:
        """Availability of every space on ``day`` (today at the site when omitted)."""

        async def work() -> Dashboard:
            target = self._today() if day is None else parse_date(day)
            if target is None:
                raise InvalidInputError("invalid date", reason="INVALID_DATE")
            async with self._bounded():
                async with self._snapshot() as (space_repo, res_repo):
                    spaces = await dashboard_usecase.build_dashboard(space_repo, res_repo, day=target)
            return Dashboard(day=target, spaces=spaces)

        return await self._run("build_dashboard", work)

    # -- inventory ----------------------------------------------------------

    async def initialize_spaces(self) -> OperationResult[list[ParkingSpace]]:
        async def work() -> list[ParkingSpace]:
            async with self._bounded():
                async with self._transaction() as (space_repo, _):
                    created = await space_usecase.initialize_parking_spaces(
                        space_repo, count=self.settings.space_count
                    )
            if created:
                logger.info("seeded %d parking spaces", len(created))
            return created

        return await self._run("initialize_spaces", work)

    async def list_spaces(self) -> OperationResult[list[ParkingSpace]]:
        async def work() -> list[ParkingSpace]:
            async with self._bounded():
                async with self._snapshot() as (space_repo, _):
                    return await space_usecase.list_spaces(space_repo)

        return await self._run("list_spaces", work)

    async def set_space_active(self, *, space_number: int, active: bool) -> OperationResult[ParkingSpace]:
        async def work() -> ParkingSpace:
            async with self._bounded():
                async with self._transaction() as (space_repo, _):
                    space = await space_usecase.set_space_active(
                        space_repo,
                        space_number=space_number,
                        active=active,
                        space_count=self.settings.space_count,
                    )
            self._audit(
                action="space.updated",
                initiator="system",
                reservation_id=None,
                space_id=space.id,
                user_id=None,
                extra={"is_active": space.is_active},
            )
            return space

        return await self._run("set_space_active", work)
