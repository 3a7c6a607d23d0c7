"""
Database Models

SQLAlchemy ORM models for properties, rooms and reservations.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint, text
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class ReservationStatus(str, Enum):
    """Reservation status enumeration."""
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


class Property(Base, TimestampMixin):
    """
    Property model (Tenant).

    A hotel or guest house whose rooms are booked through the wizard.
    """

    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(50), default="Asia/Kolkata")

    # Relationships
    rooms: Mapped[List["Room"]] = relationship("Room", back_populates="property")
    reservations: Mapped[List["Reservation"]] = relationship(
        "Reservation",
        back_populates="property"
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name='{self.name}')>"


class Room(Base, TimestampMixin):
    """
    Room model.

    Rooms are identified within a property by their room number.
    """

    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("property_id", "room_number", name="uq_room_property_number"),
        Index("idx_room_property_active", "property_id", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    property_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False
    )
    room_number: Mapped[str] = mapped_column(String(50), nullable=False)
    room_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    max_occupancy: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    property: Mapped["Property"] = relationship("Property", back_populates="rooms")

    def __repr__(self) -> str:
        return f"<Room(property_id={self.property_id}, number='{self.room_number}')>"


class Reservation(Base, TimestampMixin):
    """
    Reservation model.

    A stay in one room over the half-open interval [check_in, check_out).
    Non-cancelled reservations of a room never overlap; the reservation
    commit enforces this before writing.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("check_out > check_in", name="ck_reservation_interval"),
        Index("idx_reservation_property_dates", "property_id", "check_in", "check_out"),
        Index("idx_reservation_room", "property_id", "room_no"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    property_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=False
    )
    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    room_no: Mapped[str] = mapped_column(String(50), nullable=False)
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    adults: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    children: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    no_of_pax: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    adult_child: Mapped[str] = mapped_column(String(20), default="1/0", nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ReservationStatus.CONFIRMED.value,
        nullable=False
    )
    cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    booking_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    source_details: Mapped[dict] = mapped_column(JSON, default=dict)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    property: Mapped["Property"] = relationship("Property", back_populates="reservations")

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, room='{self.room_no}', "
            f"{self.check_in}..{self.check_out}, cancelled={self.cancelled})>"
        )
