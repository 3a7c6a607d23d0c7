"""Tests for Reservation Commit."""

from datetime import date
from decimal import Decimal

import pytest
from unittest.mock import AsyncMock

from app.core.reservations.availability import AvailabilityResolver
from app.core.reservations.capacity import CapacityValidator
from app.core.reservations.commit import CommitOutcome, ReservationCommitter
from app.core.reservations.drafts import DatedDraft, PricedDraft
from app.core.reservations.errors import StorageError
from app.core.reservations.session import WizardSession
from app.core.reservations.steps import WizardStep
from app.core.reservations.tokens import ConfirmationTokenGuard


def priced_draft(**overrides) -> PricedDraft:
    values = dict(
        property_id="prop-1",
        guest_name="Alice Smith",
        check_in=date(2025, 6, 1),
        check_out=date(2025, 6, 3),
        room_no="101",
        room_type="Deluxe",
        capacity=2,
        adults=2,
        children=0,
        amount=Decimal("12500"),
    )
    values.update(overrides)
    return PricedDraft(**values)


class TestReservationCommitter:
    """Test ReservationCommitter."""

    @pytest.fixture
    def guard(self):
        return ConfirmationTokenGuard(token_bytes=8)

    @pytest.fixture
    def committer(self, repository, store, guard):
        return ReservationCommitter(
            repository=repository,
            resolver=AvailabilityResolver(repository),
            capacity=CapacityValidator(repository, default_capacity=6),
            guard=guard,
            store=store,
            timezone="Asia/Kolkata",
            source="direct",
            channel="telegram",
            min_guest_name_length=2,
        )

    def confirm_session(self, guard, draft=None) -> tuple[WizardSession, str]:
        session = WizardSession("chat-1", WizardStep.CONFIRM, draft or priced_draft())
        token = guard.issue(session)
        return session, token

    # === Token checks ===

    @pytest.mark.asyncio
    async def test_commit_creates_reservation(self, committer, guard, repository):
        session, token = self.confirm_session(guard)

        result = await committer.commit(session, token)

        assert result.success
        assert result.created
        record = repository.reservations[result.reservation_id]
        assert record.room_no == "101"
        assert (record.check_in, record.check_out) == (date(2025, 6, 1), date(2025, 6, 3))
        assert record.amount == Decimal("12500")

    @pytest.mark.asyncio
    async def test_wrong_token_rejected(self, committer, guard, repository):
        session, _ = self.confirm_session(guard)

        result = await committer.commit(session, "not-the-token")

        assert result.outcome == CommitOutcome.TOKEN_REJECTED
        assert repository.reservations == {}

    @pytest.mark.asyncio
    async def test_wrong_step_rejected(self, committer, guard):
        session, token = self.confirm_session(guard)
        session.step = WizardStep.AMOUNT

        result = await committer.commit(session, token)

        assert result.outcome == CommitOutcome.TOKEN_REJECTED

    @pytest.mark.asyncio
    async def test_token_consumed_and_saved_before_write(self, committer, guard, store):
        session, token = self.confirm_session(guard)

        await committer.commit(session, token)

        assert session.confirmation_token is None
        stored = await store.load("chat-1")
        assert stored.confirmation_token is None

    @pytest.mark.asyncio
    async def test_token_cannot_commit_twice(self, committer, guard, repository):
        session, token = self.confirm_session(guard)

        first = await committer.commit(session, token)
        second = await committer.commit(session, token)

        assert first.success
        assert second.outcome == CommitOutcome.TOKEN_REJECTED
        assert len(repository.reservations) == 1

    @pytest.mark.asyncio
    async def test_store_failure_writes_nothing(self, repository, guard):
        store = AsyncMock()
        store.save.side_effect = StorageError("redis down")
        committer = ReservationCommitter(
            repository=repository,
            resolver=AvailabilityResolver(repository),
            capacity=CapacityValidator(repository),
            guard=guard,
            store=store,
        )
        session, token = self.confirm_session(guard)

        result = await committer.commit(session, token)

        assert result.outcome == CommitOutcome.STORAGE_FAILURE
        assert repository.reservations == {}

    # === Draft validation ===

    @pytest.mark.asyncio
    async def test_incomplete_draft(self, committer, guard):
        draft = DatedDraft(
            property_id="prop-1",
            guest_name="Alice",
            check_in=date(2025, 6, 1),
            check_out=date(2025, 6, 3),
        )
        session, token = self.confirm_session(guard, draft)

        result = await committer.commit(session, token)

        assert result.outcome == CommitOutcome.INVALID_DRAFT
        assert result.retry_step == WizardStep.ROOM

    @pytest.mark.parametrize(
        "overrides,step",
        [
            ({"guest_name": " A "}, WizardStep.GUEST_NAME),
            ({"check_out": date(2025, 6, 1)}, WizardStep.CHECK_IN),
            ({"room_no": ""}, WizardStep.ROOM),
            ({"adults": 0}, WizardStep.ADULTS),
            ({"amount": Decimal("-1")}, WizardStep.AMOUNT),
            ({"amount": Decimal("NaN")}, WizardStep.AMOUNT),
        ],
    )
    def test_validate_draft(self, committer, overrides, step):
        assert committer.validate_draft(priced_draft(**overrides)) == step

    def test_validate_complete_draft(self, committer):
        assert committer.validate_draft(priced_draft()) is None

    # === Commit-time re-check ===

    @pytest.mark.asyncio
    async def test_room_taken_since_selection(self, committer, guard, repository):
        repository.add_reservation(
            property_id="prop-1",
            room_no="101",
            check_in=date(2025, 6, 2),
            check_out=date(2025, 6, 4),
        )
        session, token = self.confirm_session(guard)

        result = await committer.commit(session, token)

        assert result.outcome == CommitOutcome.ROOM_UNAVAILABLE
        assert result.retry_step == WizardStep.ROOM
        assert [r.room_no for r in result.available_rooms] == ["102", "201"]
        assert len(repository.reservations) == 1

    @pytest.mark.asyncio
    async def test_capacity_shrunk_since_selection(self, committer, guard, repository):
        repository.add_room("prop-1", "102", "Standard", 2)
        session, token = self.confirm_session(
            guard, priced_draft(room_no="102", capacity=4, adults=2, children=2)
        )

        result = await committer.commit(session, token)

        assert result.outcome == CommitOutcome.CAPACITY_EXCEEDED
        assert result.retry_step == WizardStep.ADULTS
        assert result.capacity == 2
        assert repository.reservations == {}

    @pytest.mark.asyncio
    async def test_update_existing_reservation(self, committer, guard, repository):
        existing = repository.add_reservation(
            property_id="prop-1",
            room_no="101",
            check_in=date(2025, 6, 1),
            check_out=date(2025, 6, 3),
            guest_name="Alice Smith",
            adults=2,
        )
        draft = priced_draft(
            edit_target_id=existing.id,
            check_in=date(2025, 6, 2),
            check_out=date(2025, 6, 4),
        )
        session, token = self.confirm_session(guard, draft)

        result = await committer.commit(session, token)

        assert result.success
        assert not result.created
        assert result.reservation_id == existing.id
        assert repository.reservations[existing.id].check_in == date(2025, 6, 2)
        assert len(repository.reservations) == 1

    @pytest.mark.asyncio
    async def test_update_target_cancelled(self, committer, guard, repository):
        existing = repository.add_reservation(
            property_id="prop-1",
            room_no="101",
            check_in=date(2025, 6, 1),
            check_out=date(2025, 6, 3),
        )
        repository.cancel_reservation(existing.id)
        session, token = self.confirm_session(guard, priced_draft(edit_target_id=existing.id))

        result = await committer.commit(session, token)

        assert result.outcome == CommitOutcome.TARGET_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_update_target_missing(self, committer, guard):
        session, token = self.confirm_session(guard, priced_draft(edit_target_id="res-gone"))

        result = await committer.commit(session, token)

        assert result.outcome == CommitOutcome.TARGET_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_repository_failure(self, committer, guard, repository):
        repository.insert_reservation = AsyncMock(side_effect=StorageError("db down"))
        session, token = self.confirm_session(guard)

        result = await committer.commit(session, token)

        assert result.outcome == CommitOutcome.STORAGE_FAILURE
        assert "db down" in result.error

    # === Written values ===

    def test_insert_write_has_derived_fields(self, committer):
        write = committer.build_write(priced_draft(guest_name="  Alice Smith ", children=1, adults=1))

        assert write.guest_name == "Alice Smith"
        assert write.no_of_pax == 2
        assert write.adult_child == "1/1"
        assert write.source == "direct"
        assert write.source_details == {"via": "telegram"}
        assert isinstance(write.booking_date, date)

    def test_update_write_leaves_booking_fields(self, committer):
        write = committer.build_write(priced_draft(edit_target_id="res-1"))

        assert write.booking_date is None
        assert write.source is None
        assert write.source_details == {}

    @pytest.mark.asyncio
    async def test_insert_write_recorded(self, committer, guard, repository):
        session, token = self.confirm_session(guard)

        result = await committer.commit(session, token)

        write = repository.writes[result.reservation_id]
        assert write.source_details == {"via": "telegram"}
