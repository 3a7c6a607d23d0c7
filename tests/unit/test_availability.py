"""Tests for Availability Resolver."""

from datetime import date

import pytest
from unittest.mock import AsyncMock

from app.core.reservations.availability import (
    AvailabilityQuery,
    AvailabilityResolver,
    intervals_overlap,
    room_sort_key,
)
from app.core.reservations.errors import InvalidIntervalError, StorageError
from app.core.reservations.ports import ReservationRecord, RoomRecord


def query(check_in, check_out, exclude=None):
    return AvailabilityQuery(
        property_id="prop-1",
        check_in=check_in,
        check_out=check_out,
        exclude_reservation_id=exclude,
    )


class TestIntervalsOverlap:
    """Test half-open interval overlap."""

    def test_back_to_back_stays_do_not_overlap(self):
        """Check-out day of one stay is the check-in day of the next."""
        assert not intervals_overlap(
            date(2025, 6, 1), date(2025, 6, 3), date(2025, 6, 3), date(2025, 6, 5)
        )

    def test_shared_night_overlaps(self):
        assert intervals_overlap(
            date(2025, 6, 1), date(2025, 6, 4), date(2025, 6, 3), date(2025, 6, 5)
        )

    def test_containment_overlaps(self):
        assert intervals_overlap(
            date(2025, 6, 1), date(2025, 6, 10), date(2025, 6, 3), date(2025, 6, 4)
        )

    def test_is_symmetric(self):
        a = (date(2025, 6, 1), date(2025, 6, 4))
        b = (date(2025, 6, 3), date(2025, 6, 5))
        assert intervals_overlap(*a, *b) == intervals_overlap(*b, *a)


class TestRoomSortKey:
    def test_natural_order(self):
        rooms = ["10", "9", "101", "A2", "2"]

        assert sorted(rooms, key=room_sort_key) == ["2", "9", "10", "101", "A2"]


class TestAvailabilityResolver:
    """Test AvailabilityResolver against the in-memory repository."""

    @pytest.fixture
    def resolver(self, repository):
        return AvailabilityResolver(repository)

    @pytest.fixture
    def booked(self, repository):
        """Room 101 booked for 1-3 June."""
        return repository.add_reservation(
            property_id="prop-1",
            room_no="101",
            check_in=date(2025, 6, 1),
            check_out=date(2025, 6, 3),
        )

    @pytest.mark.asyncio
    async def test_all_rooms_free(self, resolver):
        rooms = await resolver.resolve(query(date(2025, 6, 1), date(2025, 6, 3)))

        assert [r.room_no for r in rooms] == ["101", "102", "201"]
        assert rooms[0].room_type == "Deluxe"
        assert rooms[0].capacity == 2

    @pytest.mark.asyncio
    async def test_overlapping_reservation_removes_room(self, resolver, booked):
        rooms = await resolver.resolve(query(date(2025, 6, 2), date(2025, 6, 4)))

        assert "101" not in [r.room_no for r in rooms]

    @pytest.mark.asyncio
    async def test_adjacent_reservation_keeps_room(self, resolver, booked):
        rooms = await resolver.resolve(query(date(2025, 6, 3), date(2025, 6, 5)))

        assert "101" in [r.room_no for r in rooms]

    @pytest.mark.asyncio
    async def test_cancelled_reservation_ignored(self, resolver, repository, booked):
        repository.cancel_reservation(booked.id)

        assert await resolver.is_available(query(date(2025, 6, 1), date(2025, 6, 3)), "101")

    @pytest.mark.asyncio
    async def test_excluded_reservation_not_its_own_conflict(self, resolver, booked):
        rooms = await resolver.resolve(
            query(date(2025, 6, 2), date(2025, 6, 4), exclude=booked.id)
        )

        assert "101" in [r.room_no for r in rooms]

    @pytest.mark.asyncio
    async def test_exclusion_does_not_hide_other_conflicts(self, resolver, repository, booked):
        other = repository.add_reservation(
            property_id="prop-1",
            room_no="101",
            check_in=date(2025, 6, 3),
            check_out=date(2025, 6, 6),
        )

        rooms = await resolver.resolve(
            query(date(2025, 6, 2), date(2025, 6, 4), exclude=booked.id)
        )

        assert "101" not in [r.room_no for r in rooms]
        assert other.id != booked.id

    @pytest.mark.asyncio
    async def test_inactive_room_not_offered(self, resolver, repository):
        repository.add_room("prop-1", "301", "Attic", 2, is_active=False)

        rooms = await resolver.resolve(query(date(2025, 6, 1), date(2025, 6, 3)))

        assert "301" not in [r.room_no for r in rooms]

    @pytest.mark.asyncio
    async def test_other_property_reservations_ignored(self, resolver, repository):
        repository.add_reservation(
            property_id="prop-2",
            room_no="101",
            check_in=date(2025, 6, 1),
            check_out=date(2025, 6, 3),
        )

        assert await resolver.is_available(query(date(2025, 6, 1), date(2025, 6, 3)), "101")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [0, -1])
    async def test_invalid_interval(self, resolver, days):
        check_in = date(2025, 6, 3)
        with pytest.raises(InvalidIntervalError):
            await resolver.resolve(query(check_in, date(2025, 6, 3 + days)))

    @pytest.mark.asyncio
    async def test_refilters_broad_repository_results(self):
        """Records returned by a loose repository query are checked again."""
        repository = AsyncMock()
        repository.list_rooms.return_value = [
            RoomRecord("prop-1", "10", "Standard", 2),
            RoomRecord("prop-1", "9", "Standard", 2),
            RoomRecord("prop-1", "9", "Standard", 2),
        ]
        repository.find_overlapping.return_value = [
            ReservationRecord(
                id="res-1",
                property_id="prop-1",
                room_no="10",
                check_in=date(2025, 5, 1),
                check_out=date(2025, 5, 3),
            ),
            ReservationRecord(
                id="res-2",
                property_id="prop-1",
                room_no="9",
                check_in=date(2025, 6, 1),
                check_out=date(2025, 6, 2),
                cancelled=True,
            ),
        ]
        resolver = AvailabilityResolver(repository)

        rooms = await resolver.resolve(query(date(2025, 6, 1), date(2025, 6, 3)))

        assert [r.room_no for r in rooms] == ["9", "10"]

    @pytest.mark.asyncio
    async def test_reads_through_given_repository(self, resolver):
        bound = AsyncMock()
        bound.list_rooms.return_value = []
        bound.find_overlapping.return_value = []

        rooms = await resolver.resolve(query(date(2025, 6, 1), date(2025, 6, 3)), repository=bound)

        assert rooms == []
        bound.list_rooms.assert_awaited_once_with("prop-1")

    @pytest.mark.asyncio
    async def test_storage_error_propagates(self):
        repository = AsyncMock()
        repository.list_rooms.side_effect = StorageError("down")

        with pytest.raises(StorageError):
            await AvailabilityResolver(repository).resolve(
                query(date(2025, 6, 1), date(2025, 6, 3))
            )
