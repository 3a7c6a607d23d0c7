"""
Availability Resolver

Finds the rooms of a property that have no overlapping, non-cancelled
reservation for a half-open stay interval [check_in, check_out).
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from app.core.reservations.errors import InvalidIntervalError
from app.core.reservations.ports import ReservationRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityQuery:
    """Rooms free for a stay, optionally ignoring the reservation being edited."""

    property_id: str
    check_in: date
    check_out: date
    exclude_reservation_id: Optional[str] = None


@dataclass(frozen=True)
class AvailableRoom:
    """A room offered for selection."""

    room_no: str
    room_type: Optional[str] = None
    capacity: Optional[int] = None


def intervals_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """[a_start, a_end) and [b_start, b_end) share at least one night."""
    return a_start < b_end and b_start < a_end


def room_sort_key(room_no: str) -> tuple:
    """Natural ordering so room "9" sorts before room "10"."""
    parts = re.split(r"(\d+)", room_no)
    return tuple((0, int(p), "") if p.isdecimal() else (1, 0, p.lower()) for p in parts if p)


class AvailabilityResolver:
    """Resolves available rooms against the reservation repository."""

    def __init__(self, repository: ReservationRepository):
        self.repository = repository

    async def resolve(
        self,
        query: AvailabilityQuery,
        repository: Optional[ReservationRepository] = None,
    ) -> list[AvailableRoom]:
        """
        Resolve rooms available for a query.

        Args:
            query: Property, stay interval and optional excluded reservation
            repository: Repository to read through (e.g. one bound to an
                open commit transaction). Defaults to the resolver's own.

        Returns:
            Available rooms ordered by room number

        Raises:
            InvalidIntervalError: If check_out <= check_in
            StorageError: If the repository cannot be read
        """
        if query.check_out <= query.check_in:
            raise InvalidIntervalError(query.check_in, query.check_out)

        repo = repository or self.repository
        rooms = await repo.list_rooms(query.property_id)
        overlapping = await repo.find_overlapping(
            query.property_id, query.check_in, query.check_out
        )

        # Re-filter in case the repository's query is broader than ours
        taken = {
            r.room_no
            for r in overlapping
            if not r.cancelled
            and r.id != query.exclude_reservation_id
            and intervals_overlap(r.check_in, r.check_out, query.check_in, query.check_out)
        }

        available: dict[str, AvailableRoom] = {}
        for room in rooms:
            if not room.is_active or room.room_no in taken or room.room_no in available:
                continue
            available[room.room_no] = AvailableRoom(
                room_no=room.room_no,
                room_type=room.room_type,
                capacity=room.max_occupancy,
            )

        result = sorted(available.values(), key=lambda r: room_sort_key(r.room_no))
        logger.debug(
            f"Availability {query.property_id} {query.check_in}..{query.check_out} "
            f"(exclude={query.exclude_reservation_id}): {[r.room_no for r in result]}"
        )
        return result

    async def is_available(
        self,
        query: AvailabilityQuery,
        room_no: str,
        repository: Optional[ReservationRepository] = None,
    ) -> bool:
        """Check whether one room is available for a query."""
        rooms = await self.resolve(query, repository=repository)
        return any(r.room_no == room_no for r in rooms)
