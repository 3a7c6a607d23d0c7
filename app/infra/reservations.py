"""
SQL Reservation Repository

SQLAlchemy implementation of the reservation repository. Every database
error is reported as a StorageError.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.reservations.errors import ReservationNotFoundError, StorageError
from app.core.reservations.ports import (
    ReservationRecord,
    ReservationRepository,
    ReservationWrite,
    RoomRecord,
)
from app.models.database import Reservation, ReservationStatus, Room

logger = logging.getLogger(__name__)


def _room_record(room: Room) -> RoomRecord:
    return RoomRecord(
        property_id=room.property_id,
        room_no=room.room_number,
        room_type=room.room_type,
        max_occupancy=room.max_occupancy,
        is_active=room.is_active,
    )


def _reservation_record(row: Reservation) -> ReservationRecord:
    return ReservationRecord(
        id=row.id,
        property_id=row.property_id,
        room_no=row.room_no,
        check_in=row.check_in,
        check_out=row.check_out,
        guest_name=row.guest_name,
        adults=row.adults,
        children=row.children,
        amount=Decimal(str(row.total_amount)),
        cancelled=row.cancelled,
        status=row.status,
        notes=row.special_requests,
    )


class SqlReservationRepository(ReservationRepository):
    """
    Reservation repository backed by the async SQLAlchemy session factory.

    Outside ``atomic`` every call runs in its own short transaction.
    Inside ``atomic`` the yielded repository is bound to one session and
    the room row is locked (SELECT ... FOR UPDATE) until the unit of work
    commits, so two commits on the same room run one after the other.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        session: Optional[AsyncSession] = None,
    ):
        """Initialize repository.

        Args:
            session_factory: Session factory (application factory if not provided)
            session: Session to bind to (used by ``atomic``)
        """
        self._session_factory = session_factory
        self._session = session

    def _get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            from app.infra.database import async_session_factory

            self._session_factory = async_session_factory
        return self._session_factory

    @asynccontextmanager
    async def _session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        if self._session is not None:
            try:
                yield self._session
            except (SQLAlchemyError, OSError) as e:
                raise StorageError(f"Database error: {e}") from e
            return

        session = self._get_session_factory()()
        try:
            yield session
            await session.commit()
        except (SQLAlchemyError, OSError) as e:
            await session.rollback()
            raise StorageError(f"Database error: {e}") from e
        finally:
            await session.close()

    @asynccontextmanager
    async def atomic(
        self,
        property_id: str,
        room_no: str,
    ) -> AsyncGenerator[ReservationRepository, None]:
        if self._session is not None:
            yield self
            return

        async with self._session_scope() as session:
            # Serialize commits on this room
            await session.execute(
                select(Room.id)
                .where(Room.property_id == property_id, Room.room_number == room_no)
                .with_for_update()
            )
            yield SqlReservationRepository(
                session_factory=self._session_factory,
                session=session,
            )

    async def list_rooms(self, property_id: str) -> list[RoomRecord]:
        async with self._session_scope() as session:
            result = await session.execute(
                select(Room)
                .where(Room.property_id == property_id, Room.is_active.is_(True))
                .order_by(Room.room_number)
            )
            return [_room_record(r) for r in result.scalars().all()]

    async def get_room(self, property_id: str, room_no: str) -> Optional[RoomRecord]:
        async with self._session_scope() as session:
            result = await session.execute(
                select(Room).where(
                    Room.property_id == property_id,
                    Room.room_number == room_no,
                )
            )
            room = result.scalar_one_or_none()
            return _room_record(room) if room else None

    async def find_overlapping(
        self,
        property_id: str,
        check_in: date,
        check_out: date,
    ) -> list[ReservationRecord]:
        async with self._session_scope() as session:
            result = await session.execute(
                select(Reservation).where(
                    Reservation.property_id == property_id,
                    Reservation.cancelled.is_(False),
                    Reservation.check_in < check_out,
                    Reservation.check_out > check_in,
                )
            )
            return [_reservation_record(r) for r in result.scalars().all()]

    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        async with self._session_scope() as session:
            row = await session.get(Reservation, reservation_id)
            return _reservation_record(row) if row else None

    async def insert_reservation(self, write: ReservationWrite) -> ReservationRecord:
        async with self._session_scope() as session:
            row = Reservation(
                property_id=write.property_id,
                guest_name=write.guest_name,
                room_no=write.room_no,
                check_in=write.check_in,
                check_out=write.check_out,
                adults=write.adults,
                children=write.children,
                no_of_pax=write.no_of_pax,
                adult_child=write.adult_child,
                total_amount=write.amount,
                status=ReservationStatus.CONFIRMED.value,
                cancelled=False,
                booking_date=write.booking_date,
                source=write.source,
                source_details=dict(write.source_details),
                special_requests=write.notes,
            )
            session.add(row)
            await session.flush()
            logger.debug(f"Reservation inserted: {row.id}")
            return _reservation_record(row)

    async def update_reservation(
        self,
        reservation_id: str,
        write: ReservationWrite,
    ) -> ReservationRecord:
        async with self._session_scope() as session:
            row = await session.get(Reservation, reservation_id)
            if row is None:
                raise ReservationNotFoundError(reservation_id)

            row.guest_name = write.guest_name
            row.room_no = write.room_no
            row.check_in = write.check_in
            row.check_out = write.check_out
            row.adults = write.adults
            row.children = write.children
            row.no_of_pax = write.no_of_pax
            row.adult_child = write.adult_child
            row.total_amount = write.amount
            row.special_requests = write.notes
            await session.flush()
            logger.debug(f"Reservation updated: {row.id}")
            return _reservation_record(row)
