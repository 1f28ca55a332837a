from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Date, DateTime, Integer, String


class Base(DeclarativeBase):
    pass


class ShiftType(StrEnum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    FULL_DAY = "FULL_DAY"

    @property
    def interval(self) -> str:
        return SHIFT_INTERVALS[self]


SHIFT_INTERVALS: dict[ShiftType, str] = {
    ShiftType.MORNING: "8:00-14:00",
    ShiftType.AFTERNOON: "14:00-21:00",
    ShiftType.FULL_DAY: "9:30-18:30",
}


class ReservationStatus(StrEnum):
    ACTIVE = "active"
    RELEASED = "released"
    CANCELLED = "cancelled"


def space_id_for(space_number: int) -> str:
    return f"space-{space_number}"


class ParkingSpace(Base):
    __tablename__ = "parking_spaces"
    __table_args__ = (
        CheckConstraint("space_number >= 1", name="chk_spaces_number"),
        UniqueConstraint("space_number", name="uq_spaces_number"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    space_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    reservations: Mapped[list["Reservation"]] = relationship(back_populates="space")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="chk_res_dates"),
        UniqueConstraint("user_id", "request_key", name="uq_res_user_request_key"),
        Index("idx_res_space_status", "space_id", "status"),
        Index("idx_res_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    space_id: Mapped[str] = mapped_column(ForeignKey("parking_spaces.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    shift_type: Mapped[ShiftType] = mapped_column(
        Enum(
            ShiftType,
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
    )
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(
            ReservationStatus,
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
        default=ReservationStatus.ACTIVE,
    )
    requires_document: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    document_file_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    document_file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    document_file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    request_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    document_deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    space: Mapped["ParkingSpace"] = relationship(back_populates="reservations")

    @property
    def has_document(self) -> bool:
        return self.document_file_id is not None
