"""
Reservation Commit

The only writer of reservation records. Availability and capacity are
checked again inside the write's unit of work because the earlier checks
made during the dialogue were only hints: another conversation may have
taken the room since.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.reservations.availability import (
    AvailabilityQuery,
    AvailabilityResolver,
    AvailableRoom,
)
from app.core.reservations.capacity import CapacityValidator
from app.core.reservations.drafts import Draft, PricedDraft, next_missing_step
from app.core.reservations.errors import ReservationNotFoundError, StorageError
from app.core.reservations.ports import (
    ReservationRepository,
    ReservationWrite,
    SessionStore,
)
from app.core.reservations.session import WizardSession
from app.core.reservations.steps import WizardStep
from app.core.reservations.tokens import ConfirmationTokenGuard

logger = logging.getLogger(__name__)


class CommitOutcome(str, Enum):
    """Result categories of a commit attempt."""

    COMMITTED = "committed"

    # Rejected before any write
    TOKEN_REJECTED = "token_rejected"
    INVALID_DRAFT = "invalid_draft"

    # Business conflicts found by the re-check
    ROOM_UNAVAILABLE = "room_unavailable"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    TARGET_UNAVAILABLE = "target_unavailable"

    # Infrastructure
    STORAGE_FAILURE = "storage_failure"


@dataclass
class RecheckResult:
    """Outcome of the commit-time availability and capacity check."""

    outcome: CommitOutcome
    available_rooms: list[AvailableRoom] = field(default_factory=list)
    capacity: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome == CommitOutcome.COMMITTED


@dataclass
class CommitResult:
    """Outcome of ReservationCommitter.commit."""

    outcome: CommitOutcome
    reservation_id: Optional[str] = None
    created: bool = False
    retry_step: Optional[WizardStep] = None  # Step that needs correcting
    available_rooms: list[AvailableRoom] = field(default_factory=list)
    capacity: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == CommitOutcome.COMMITTED


class ReservationCommitter:
    """
    Atomic, re-validating write path for wizard drafts.

    Procedure:
    1. Verify the confirmation token and consume it (persisted before
       anything is written, so the token can never commit twice).
    2. Validate every draft field.
    3. Inside the repository's unit of work: re-resolve availability
       (excluding the reservation being edited), re-check the modify
       target and capacity, then insert or update.
    """

    def __init__(
        self,
        repository: ReservationRepository,
        resolver: AvailabilityResolver,
        capacity: CapacityValidator,
        guard: ConfirmationTokenGuard,
        store: SessionStore,
        timezone: Optional[str] = None,
        source: Optional[str] = None,
        channel: Optional[str] = None,
        min_guest_name_length: Optional[int] = None,
    ):
        self.repository = repository
        self.resolver = resolver
        self.capacity = capacity
        self.guard = guard
        self.store = store
        self.timezone = timezone or settings.bot_timezone
        self.source = source or settings.booking_source
        self.channel = channel or settings.booking_channel
        self.min_guest_name_length = (
            min_guest_name_length or settings.min_guest_name_length
        )

    async def commit(self, session: WizardSession, token: Optional[str]) -> CommitResult:
        """
        Commit a session's draft.

        Args:
            session: Session at the confirm step
            token: Token supplied with the confirm action

        Returns:
            CommitResult describing what happened. Infrastructure errors are
            reported as STORAGE_FAILURE rather than raised.
        """
        if session.step != WizardStep.CONFIRM or not self.guard.verify(session, token):
            logger.warning(
                f"Confirmation rejected for session {session.session_id} "
                f"(step={session.step.value})"
            )
            return CommitResult(outcome=CommitOutcome.TOKEN_REJECTED)

        try:
            self.guard.consume(session)
            session.touch()
            await self.store.save(session)
        except StorageError as e:
            logger.error(f"Could not consume token for session {session.session_id}: {e}")
            return CommitResult(outcome=CommitOutcome.STORAGE_FAILURE, error=str(e))

        draft = session.draft
        retry_step = self.validate_draft(draft)
        if retry_step is not None:
            logger.warning(
                f"Draft for session {session.session_id} failed validation at {retry_step.value}"
            )
            return CommitResult(outcome=CommitOutcome.INVALID_DRAFT, retry_step=retry_step)

        try:
            async with self.repository.atomic(draft.property_id, draft.room_no) as repo:
                check = await self.recheck(draft, repo)
                if not check.ok:
                    logger.warning(
                        f"Commit for session {session.session_id} rejected: "
                        f"{check.outcome.value} (room {draft.room_no}, "
                        f"{draft.check_in}..{draft.check_out})"
                    )
                    return CommitResult(
                        outcome=check.outcome,
                        retry_step=_RETRY_STEPS.get(check.outcome),
                        available_rooms=check.available_rooms,
                        capacity=check.capacity,
                    )

                write = self.build_write(draft)
                if draft.edit_target_id:
                    record = await repo.update_reservation(draft.edit_target_id, write)
                    created = False
                else:
                    record = await repo.insert_reservation(write)
                    created = True

        except ReservationNotFoundError as e:
            logger.warning(f"Commit for session {session.session_id}: {e}")
            return CommitResult(outcome=CommitOutcome.TARGET_UNAVAILABLE)
        except StorageError as e:
            logger.error(f"Commit for session {session.session_id} failed: {e}")
            return CommitResult(outcome=CommitOutcome.STORAGE_FAILURE, error=str(e))

        logger.info(
            f"Reservation {record.id} {'created' if created else 'updated'} "
            f"by session {session.session_id}: room {record.room_no}, "
            f"{record.check_in}..{record.check_out}"
        )
        return CommitResult(
            outcome=CommitOutcome.COMMITTED,
            reservation_id=record.id,
            created=created,
        )

    async def recheck(
        self,
        draft: PricedDraft,
        repository: ReservationRepository,
    ) -> RecheckResult:
        """
        Authoritative availability and capacity check for a complete draft.

        Must be called with the repository yielded by ``atomic`` so the
        check and the following write see the same data.
        """
        if draft.edit_target_id:
            target = await repository.get_reservation(draft.edit_target_id)
            if target is None or target.cancelled:
                return RecheckResult(outcome=CommitOutcome.TARGET_UNAVAILABLE)

        query = AvailabilityQuery(
            property_id=draft.property_id,
            check_in=draft.check_in,
            check_out=draft.check_out,
            exclude_reservation_id=draft.edit_target_id,
        )
        rooms = await self.resolver.resolve(query, repository=repository)
        if not any(r.room_no == draft.room_no for r in rooms):
            return RecheckResult(
                outcome=CommitOutcome.ROOM_UNAVAILABLE,
                available_rooms=rooms,
            )

        capacity = await self.capacity.get_capacity(
            draft.property_id, draft.room_no, repository=repository
        )
        if not self.capacity.validate(draft.adults, draft.children, capacity):
            return RecheckResult(
                outcome=CommitOutcome.CAPACITY_EXCEEDED,
                capacity=capacity,
            )

        return RecheckResult(outcome=CommitOutcome.COMMITTED, capacity=capacity)

    def validate_draft(self, draft: Draft) -> Optional[WizardStep]:
        """
        Check that every field needed for a commit is present and valid.

        Returns:
            The step that needs correcting, or None if the draft is valid
        """
        if not isinstance(draft, PricedDraft):
            return next_missing_step(draft)
        if len(draft.guest_name.strip()) < self.min_guest_name_length:
            return WizardStep.GUEST_NAME
        if draft.check_out <= draft.check_in:
            return WizardStep.CHECK_IN
        if not draft.room_no:
            return WizardStep.ROOM
        if draft.adults < 1 or draft.children < 0:
            return WizardStep.ADULTS
        if not draft.amount.is_finite() or draft.amount < 0:
            return WizardStep.AMOUNT
        return None

    def build_write(self, draft: PricedDraft) -> ReservationWrite:
        """Values to store for a draft, including derived display fields."""
        if draft.edit_target_id:
            return ReservationWrite(
                property_id=draft.property_id,
                guest_name=draft.guest_name.strip(),
                room_no=draft.room_no,
                check_in=draft.check_in,
                check_out=draft.check_out,
                adults=draft.adults,
                children=draft.children,
                amount=draft.amount,
                notes=draft.notes,
            )
        return ReservationWrite(
            property_id=draft.property_id,
            guest_name=draft.guest_name.strip(),
            room_no=draft.room_no,
            check_in=draft.check_in,
            check_out=draft.check_out,
            adults=draft.adults,
            children=draft.children,
            amount=draft.amount,
            notes=draft.notes,
            booking_date=self.today(),
            source=self.source,
            source_details={"via": self.channel},
        )

    def today(self) -> date:
        """Current date in the configured booking timezone."""
        return datetime.now(ZoneInfo(self.timezone)).date()


_RETRY_STEPS: dict[CommitOutcome, WizardStep] = {
    CommitOutcome.ROOM_UNAVAILABLE: WizardStep.ROOM,
    CommitOutcome.CAPACITY_EXCEEDED: WizardStep.ADULTS,
}
