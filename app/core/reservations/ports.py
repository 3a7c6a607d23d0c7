"""
Boundary contracts of the reservation engine.

The engine talks to storage and downstream collaborators only through
these abstract classes. Concrete adapters live in ``app.infra``.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from app.core.reservations.session import WizardSession


@dataclass(frozen=True)
class RoomRecord:
    """A bookable room of a property."""

    property_id: str
    room_no: str
    room_type: Optional[str] = None
    max_occupancy: Optional[int] = None
    is_active: bool = True


@dataclass(frozen=True)
class ReservationRecord:
    """A stored reservation as seen by the engine."""

    id: str
    property_id: str
    room_no: str
    check_in: date
    check_out: date
    guest_name: str = ""
    adults: int = 1
    children: int = 0
    amount: Decimal = Decimal("0")
    cancelled: bool = False
    status: str = "confirmed"
    notes: Optional[str] = None


def compose_adult_child(adults: int, children: int) -> str:
    """Format the "A/C" display field stored alongside guest counts."""
    return f"{max(0, adults)}/{max(0, children)}"


@dataclass(frozen=True)
class ReservationWrite:
    """
    Values written by a commit.

    ``booking_date``, ``source`` and ``source_details`` are only set when
    a reservation is created; updates leave the stored values alone.
    """

    property_id: str
    guest_name: str
    room_no: str
    check_in: date
    check_out: date
    adults: int
    children: int
    amount: Decimal
    notes: Optional[str] = None
    booking_date: Optional[date] = None
    source: Optional[str] = None
    source_details: dict[str, Any] = field(default_factory=dict)

    @property
    def no_of_pax(self) -> int:
        return self.adults + self.children

    @property
    def adult_child(self) -> str:
        return compose_adult_child(self.adults, self.children)


@dataclass(frozen=True)
class CommitNotice:
    """Sent to notifiers after a reservation is committed."""

    reservation_id: str
    property_id: str
    session_id: str
    created: bool
    owner_id: Optional[str] = None


class SessionStore(ABC):
    """Durable key/value storage of one wizard session per conversation."""

    @abstractmethod
    async def load(self, session_id: str) -> Optional[WizardSession]:
        """
        Load a session.

        Raises:
            StorageError: If the store is unreachable
            SessionCorruptedError: If the stored payload cannot be decoded
        """

    @abstractmethod
    async def save(self, session: WizardSession) -> None:
        """Create or overwrite a session (last writer wins)."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Delete a session. Deleting a missing session is not an error."""


class ReservationRepository(ABC):
    """Rooms and reservations of the external data store."""

    @abstractmethod
    async def list_rooms(self, property_id: str) -> list[RoomRecord]:
        """Active rooms of a property."""

    @abstractmethod
    async def get_room(self, property_id: str, room_no: str) -> Optional[RoomRecord]:
        """One room, or None if it does not exist."""

    @abstractmethod
    async def find_overlapping(
        self,
        property_id: str,
        check_in: date,
        check_out: date,
    ) -> list[ReservationRecord]:
        """Non-cancelled reservations whose stay overlaps [check_in, check_out)."""

    @abstractmethod
    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRecord]:
        """One reservation, or None if it does not exist."""

    @abstractmethod
    async def insert_reservation(self, write: ReservationWrite) -> ReservationRecord:
        """Create a reservation."""

    @abstractmethod
    async def update_reservation(
        self,
        reservation_id: str,
        write: ReservationWrite,
    ) -> ReservationRecord:
        """
        Update a reservation.

        Raises:
            ReservationNotFoundError: If the reservation does not exist
        """

    @abstractmethod
    def atomic(
        self,
        property_id: str,
        room_no: str,
    ) -> AbstractAsyncContextManager["ReservationRepository"]:
        """
        Open a unit of work for a commit on one room.

        Reads and writes made through the yielded repository are atomic
        with respect to other commits on the same room: the re-check and
        the write cannot interleave with another commit's.
        """


class ReservationNotifier(ABC):
    """Downstream collaborator told about committed reservations."""

    @abstractmethod
    async def notify(self, notice: CommitNotice) -> None:
        """Deliver a commit notice."""
