"""
Capacity Validator

Room occupancy limits and the guest-count choices derived from them.
"""

import logging
from typing import Optional

from app.config import settings
from app.core.reservations.errors import StorageError
from app.core.reservations.ports import ReservationRepository

logger = logging.getLogger(__name__)


class CapacityValidator:
    """Reads room capacity and validates adult/child splits against it."""

    def __init__(
        self,
        repository: ReservationRepository,
        default_capacity: Optional[int] = None,
        max_choices: Optional[int] = None,
    ):
        self.repository = repository
        self.default_capacity = default_capacity or settings.default_room_capacity
        self.max_choices = max_choices or settings.max_guest_choices

    async def get_capacity(
        self,
        property_id: str,
        room_no: str,
        repository: Optional[ReservationRepository] = None,
    ) -> int:
        """
        Get a room's maximum occupancy.

        Falls back to the configured default when the room cannot be read,
        does not exist, or has no usable capacity. The booking flow keeps
        going on the default, and the fallback is logged as a warning.

        Args:
            property_id: Property of the room
            room_no: Room number
            repository: Repository to read through. Defaults to the validator's own.

        Returns:
            Maximum number of guests
        """
        repo = repository or self.repository
        try:
            room = await repo.get_room(property_id, room_no)
        except StorageError as e:
            logger.warning(
                f"Capacity lookup failed for room {room_no} ({property_id}), "
                f"using default {self.default_capacity}: {e}"
            )
            return self.default_capacity

        if room is None:
            logger.warning(
                f"Room {room_no} not found in {property_id}, "
                f"using default capacity {self.default_capacity}"
            )
            return self.default_capacity

        if not isinstance(room.max_occupancy, int) or room.max_occupancy <= 0:
            logger.warning(
                f"Room {room_no} has invalid capacity {room.max_occupancy!r}, "
                f"using default {self.default_capacity}"
            )
            return self.default_capacity

        return room.max_occupancy

    @staticmethod
    def validate(adults: int, children: int, capacity: int) -> bool:
        """At least one adult, no negative children, total within capacity."""
        return adults >= 1 and children >= 0 and adults + children <= capacity

    def adult_choices(self, capacity: int) -> list[int]:
        """Adult counts that may be offered for a room."""
        return list(range(1, min(capacity, self.max_choices) + 1))

    def child_choices(self, capacity: int, adults: int) -> list[int]:
        """Child counts that may be offered once adults are chosen."""
        remaining = max(0, capacity - adults)
        return list(range(0, min(remaining, self.max_choices) + 1))

    @staticmethod
    def rebalance(adults: int, children: int, capacity: int) -> tuple[int, int]:
        """
        Clamp a guest split into a room's capacity.

        Adults are kept (at least one, at most capacity) and children are
        reduced to whatever room is left.

        Returns:
            (adults, children)
        """
        adults = max(1, min(adults, capacity))
        children = max(0, min(children, capacity - adults))
        return adults, children
