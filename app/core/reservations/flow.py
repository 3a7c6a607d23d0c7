"""
Reservation Flow - the wizard's step state machine.

Each inbound event is applied to the current session and yields a
``Transition``: the updated session, the prompt to send back, and what
the caller must do with the stored session (save, delete or leave it).
The flow never touches the session store itself.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import MAXYEAR, MINYEAR, date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.reservations import prompts as msg
from app.core.reservations.availability import (
    AvailabilityQuery,
    AvailabilityResolver,
    AvailableRoom,
)
from app.core.reservations.capacity import CapacityValidator
from app.core.reservations.commit import CommitOutcome, CommitResult, ReservationCommitter
from app.core.reservations.drafts import (
    AdultsDraft,
    CheckInDraft,
    DatedDraft,
    Draft,
    GuestsDraft,
    NamedDraft,
    PricedDraft,
    RoomDraft,
    extend,
    next_missing_step,
)
from app.core.reservations.errors import InvalidTransitionError
from app.core.reservations.inputs import InputKind, WizardAction, WizardInput
from app.core.reservations.ports import ReservationRepository
from app.core.reservations.prompts import Prompt, WizardPrompts, shift_month
from app.core.reservations.session import WizardSession
from app.core.reservations.steps import (
    MODIFY_ENTRY_STEP,
    STEP_FIELD,
    WizardStep,
    can_transition,
)
from app.core.reservations.tokens import ConfirmationTokenGuard

logger = logging.getLogger(__name__)

# Numeric(12, 2) reservation amount column
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")


class SessionAction(str, Enum):
    """What the caller must do with the stored session."""

    SAVE = "save"
    DELETE = "delete"
    KEEP = "keep"  # Nothing changed, leave storage alone


@dataclass
class Transition:
    """Result of applying one input."""

    session: Optional[WizardSession]
    prompt: Optional[Prompt]
    action: SessionAction
    outcome: Optional[CommitOutcome] = None
    reservation_id: Optional[str] = None
    created: bool = False

    @property
    def step(self) -> Optional[WizardStep]:
        return self.session.step if self.session else None


def parse_amount(text: str) -> Optional[Decimal]:
    """
    Parse a positive amount, ignoring thousands separators and spaces.

    The amount must fit the stored column: at most two decimal places
    and ten integer digits.
    """
    cleaned = re.sub(r"[,\s]", "", text or "")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0 or amount > MAX_AMOUNT:
        return None
    if amount != amount.quantize(CENT):
        return None
    return amount


def parse_day(value: str) -> Optional[date]:
    """Parse a YYYY-MM-DD calendar day."""
    try:
        return date.fromisoformat((value or "").strip())
    except ValueError:
        return None


def parse_count(value: str) -> Optional[int]:
    try:
        return int((value or "").strip())
    except ValueError:
        return None


class ReservationFlow:
    """
    Step state machine for new and modify reservation flows.

    New flow:    guestName -> checkInDate -> checkOutDate -> roomNo
                 -> adults -> children -> amount -> confirm
    Modify flow: field-specific step -> (room reselection if needed) -> confirm

    Availability is resolved whenever rooms are offered or a room is
    accepted, always excluding the reservation being edited. Guest
    counts are validated against room capacity on every accepted value.
    """

    def __init__(
        self,
        repository: ReservationRepository,
        resolver: AvailabilityResolver,
        capacity: CapacityValidator,
        guard: ConfirmationTokenGuard,
        committer: ReservationCommitter,
        prompts: Optional[WizardPrompts] = None,
        timezone: Optional[str] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        """Initialize flow.

        Args:
            repository: Reservation repository (modify flows load from it)
            resolver: Availability resolver
            capacity: Capacity validator
            guard: Confirmation token guard
            committer: Reservation committer used by the confirm action
            prompts: Prompt builder
            timezone: Timezone for the calendar's "today"
            clock: Returns today's date (overrides ``timezone``)
        """
        self.repository = repository
        self.resolver = resolver
        self.capacity = capacity
        self.guard = guard
        self.committer = committer
        self.prompts = prompts or WizardPrompts(settings.min_guest_name_length)
        self.timezone = timezone or settings.bot_timezone
        self._clock = clock

    def today(self) -> date:
        if self._clock is not None:
            return self._clock()
        return datetime.now(ZoneInfo(self.timezone)).date()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def apply(self, session: Optional[WizardSession], event: WizardInput) -> Transition:
        """
        Apply one input to a session.

        Args:
            session: Current session, or None if the conversation has none
            event: Inbound input

        Returns:
            Transition to persist and send back

        Raises:
            StorageError: If availability or reservations cannot be read
        """
        action = event.action

        if action == WizardAction.START:
            return await self.start_new(event)
        if action == WizardAction.MODIFY:
            return await self.start_modify(event)
        if action == WizardAction.CANCEL:
            logger.info(f"Wizard cancelled for session {event.session_id}")
            return Transition(session, self.prompts.message(msg.WIZARD_CANCELLED), SessionAction.DELETE)

        if session is None:
            return self._without_session(event)

        if action == WizardAction.DECLINE:
            logger.info(f"Booking declined in session {session.session_id}")
            return Transition(session, self.prompts.message(msg.BOOKING_DECLINED), SessionAction.DELETE)
        if action == WizardAction.CONFIRM:
            result = await self.committer.commit(session, event.value)
            return await self.after_commit(session, result)
        if action == WizardAction.NOOP:
            return Transition(session, None, SessionAction.KEEP)
        if action in (
            WizardAction.CALENDAR_PREV,
            WizardAction.CALENDAR_NEXT,
            WizardAction.CALENDAR_TODAY,
        ):
            return self._page_calendar(session, event)

        if event.kind == InputKind.SELECT and event.step != session.step:
            return self._stale_selection(session, event)

        return await self._accept(session, event.value or "")

    async def start_new(self, event: WizardInput) -> Transition:
        """Start a new reservation flow, superseding any stored session."""
        session = WizardSession(
            session_id=event.session_id,
            step=WizardStep.GUEST_NAME,
            draft=Draft(property_id=event.property_id or ""),
            owner_id=event.owner_id,
        )
        logger.info(f"New booking flow for session {event.session_id} (property {event.property_id})")
        return await self.enter(session, WizardStep.GUEST_NAME, fresh=True)

    async def start_modify(self, event: WizardInput) -> Transition:
        """
        Start editing one field of an existing reservation.

        The draft is pre-filled from the stored reservation, so every
        modify path ends in the same confirm/commit step as a new booking.
        A missing or cancelled reservation is refused and any stored
        session is left alone.
        """
        record = await self.repository.get_reservation(event.reservation_id or "")
        if record is None:
            return Transition(None, self.prompts.message(msg.BOOKING_NOT_FOUND), SessionAction.KEEP)
        if record.cancelled:
            return Transition(None, self.prompts.message(msg.BOOKING_IS_CANCELLED), SessionAction.KEEP)

        capacity = await self.capacity.get_capacity(record.property_id, record.room_no)
        draft = PricedDraft(
            property_id=record.property_id,
            edit_target_id=record.id,
            notes=record.notes,
            guest_name=record.guest_name,
            check_in=record.check_in,
            check_out=record.check_out,
            room_no=record.room_no,
            capacity=capacity,
            adults=record.adults,
            children=record.children,
            amount=record.amount,
        )
        step = MODIFY_ENTRY_STEP[event.modify_field]
        session = WizardSession(
            session_id=event.session_id,
            step=step,
            draft=draft,
            owner_id=event.owner_id,
        )
        logger.info(
            f"Modify flow for reservation {record.id} ({event.modify_field.value}) "
            f"in session {event.session_id}"
        )
        return await self.enter(session, step, fresh=True)

    async def enter(
        self,
        session: WizardSession,
        step: WizardStep,
        notice: Optional[str] = None,
        rooms: Optional[list[AvailableRoom]] = None,
        fresh: bool = False,
    ) -> Transition:
        """
        Move a session to a step and build that step's prompt.

        Entering CONFIRM issues a fresh confirmation token; entering any
        other step clears the token so an old summary cannot be confirmed.

        Args:
            session: Session to move
            step: Target step
            notice: Text shown above the step's prompt
            rooms: Rooms already resolved for the ROOM step
            fresh: Session was just created, skip the transition check

        Raises:
            InvalidTransitionError: If the state machine forbids the move
        """
        if not fresh and not can_transition(session.step, step):
            raise InvalidTransitionError(session.step, step)

        draft = session.draft
        if step != WizardStep.CONFIRM:
            session.confirmation_token = None

        if step == WizardStep.GUEST_NAME:
            prompt = self.prompts.guest_name()
            if notice:
                prompt.text = f"{notice}\n\n{prompt.text}"
        elif step == WizardStep.CHECK_IN:
            today = self.today()
            prompt = self.prompts.check_in(today.year, today.month, notice)
        elif step == WizardStep.CHECK_OUT:
            prompt = self.prompts.check_out(draft.check_in)
        elif step == WizardStep.ROOM:
            if rooms is None:
                rooms = await self.resolver.resolve(self._query(draft))
            prompt = self.prompts.rooms(draft, rooms, notice)
        elif step == WizardStep.ADULTS:
            current = draft.adults if isinstance(draft, AdultsDraft) else None
            prompt = self.prompts.adults(
                draft, self.capacity.adult_choices(draft.capacity), current, notice
            )
        elif step == WizardStep.CHILDREN:
            current = draft.children if isinstance(draft, GuestsDraft) else None
            prompt = self.prompts.children(
                draft.adults,
                self.capacity.child_choices(draft.capacity, draft.adults),
                current,
            )
        elif step == WizardStep.AMOUNT:
            prompt = self.prompts.amount(draft)
        elif step == WizardStep.NOTES:
            prompt = self.prompts.notes(draft)
        elif step == WizardStep.CONFIRM:
            token = self.guard.issue(session)
            prompt = self.prompts.confirm(draft, token, notice)
        else:
            raise InvalidTransitionError(session.step, step)

        logger.debug(f"Session {session.session_id}: {session.step.value} -> {step.value}")
        session.step = step
        session.touch()
        return Transition(session, prompt, SessionAction.SAVE)

    async def after_commit(self, session: WizardSession, result: CommitResult) -> Transition:
        """
        Route a commit result back into the dialogue.

        Business conflicts roll the step back to what needs correcting and
        keep the collected data. A rejected token leaves the stored session
        alone since it may belong to a newer flow.
        """
        outcome = result.outcome

        if outcome == CommitOutcome.COMMITTED:
            session.step = WizardStep.COMMITTED
            return Transition(
                session,
                self.prompts.committed(result.reservation_id, result.created),
                SessionAction.DELETE,
                outcome=outcome,
                reservation_id=result.reservation_id,
                created=result.created,
            )

        if outcome == CommitOutcome.TOKEN_REJECTED:
            return Transition(
                session,
                self.prompts.message(msg.CONFIRMATION_EXPIRED, alert=True),
                SessionAction.KEEP,
                outcome=outcome,
            )

        if outcome == CommitOutcome.TARGET_UNAVAILABLE:
            return Transition(
                session,
                self.prompts.message(msg.BOOKING_GONE),
                SessionAction.DELETE,
                outcome=outcome,
            )

        if outcome == CommitOutcome.ROOM_UNAVAILABLE:
            transition = await self.enter(
                session,
                WizardStep.ROOM,
                notice=msg.ROOM_NO_LONGER_AVAILABLE.format(room_no=session.draft.room_no),
                rooms=result.available_rooms,
            )
        elif outcome == CommitOutcome.CAPACITY_EXCEEDED:
            draft = session.draft
            adults, children = self.capacity.rebalance(
                draft.adults, draft.children, result.capacity
            )
            session.draft = replace(
                draft, capacity=result.capacity, adults=adults, children=children
            )
            transition = await self.enter(
                session,
                WizardStep.ADULTS,
                notice=self.prompts.over_capacity(result.capacity),
            )
        elif outcome == CommitOutcome.INVALID_DRAFT:
            transition = await self.enter(session, result.retry_step)
        else:
            # Storage failure: nothing was written. Show the summary again
            # with a new token so the user can retry.
            transition = await self.enter(
                session, WizardStep.CONFIRM, notice=msg.GENERIC_FAILURE
            )

        transition.outcome = outcome
        return transition

    # ------------------------------------------------------------------
    # Step handlers
    # ------------------------------------------------------------------

    async def _accept(self, session: WizardSession, value: str) -> Transition:
        step = session.step
        if step == WizardStep.GUEST_NAME:
            return await self._accept_guest_name(session, value)
        if step == WizardStep.CHECK_IN:
            return await self._accept_check_in(session, value)
        if step == WizardStep.CHECK_OUT:
            return await self._accept_check_out(session, value)
        if step == WizardStep.ROOM:
            return await self._accept_room(session, value)
        if step == WizardStep.ADULTS:
            return await self._accept_adults(session, value)
        if step == WizardStep.CHILDREN:
            return await self._accept_children(session, value)
        if step == WizardStep.AMOUNT:
            return await self._accept_amount(session, value)
        if step == WizardStep.NOTES:
            return await self._accept_notes(session, value)
        return self._reject(session, msg.USE_CONFIRM_BUTTONS, alert=True)

    async def _accept_guest_name(self, session: WizardSession, value: str) -> Transition:
        name = value.strip()
        if len(name) < self.prompts.min_guest_name_length:
            return Transition(session, self.prompts.invalid_guest_name(), SessionAction.KEEP)
        session.draft = extend(session.draft, NamedDraft, guest_name=name)
        return await self.enter(session, next_missing_step(session.draft))

    async def _accept_check_in(self, session: WizardSession, value: str) -> Transition:
        day = parse_day(value)
        # The stay needs at least one night after check-in
        if day is None or day >= date.max:
            return self._reject(session, msg.INVALID_DATE, alert=True)
        session.draft = extend(session.draft, CheckInDraft, check_in=day)
        return await self.enter(session, WizardStep.CHECK_OUT)

    async def _accept_check_out(self, session: WizardSession, value: str) -> Transition:
        day = parse_day(value)
        if day is None:
            return self._reject(session, msg.INVALID_DATE, alert=True)

        draft = session.draft
        if day <= draft.check_in:
            return self._reject(session, msg.CHECK_OUT_NOT_AFTER_CHECK_IN, alert=True)

        query = AvailabilityQuery(
            property_id=draft.property_id,
            check_in=draft.check_in,
            check_out=day,
            exclude_reservation_id=draft.edit_target_id,
        )
        rooms = await self.resolver.resolve(query)
        if not rooms:
            return Transition(
                session,
                self.prompts.no_rooms(draft.check_in, day),
                SessionAction.KEEP,
            )

        draft = extend(draft, DatedDraft, check_out=day)
        session.draft = draft

        if not isinstance(draft, RoomDraft):
            return await self.enter(session, WizardStep.ROOM, rooms=rooms)

        # A room is already held (modify flow, or a rollback)
        if not any(r.room_no == draft.room_no for r in rooms):
            logger.info(
                f"Held room {draft.room_no} unavailable for {draft.check_in}..{day} "
                f"in session {session.session_id}"
            )
            return await self.enter(
                session, WizardStep.ROOM, notice=msg.HELD_ROOM_UNAVAILABLE, rooms=rooms
            )

        capacity = await self.capacity.get_capacity(draft.property_id, draft.room_no)
        session.draft = replace(draft, capacity=capacity)
        return await self._after_room_fixed(session)

    async def _accept_room(self, session: WizardSession, value: str) -> Transition:
        room_no = value.strip()
        draft = session.draft
        rooms = await self.resolver.resolve(self._query(draft))

        match = next((r for r in rooms if r.room_no == room_no), None)
        if match is None:
            logger.warning(
                f"Room {room_no} not available for session {session.session_id}, re-prompting"
            )
            return Transition(
                session,
                self.prompts.rooms(
                    draft,
                    rooms,
                    notice=msg.ROOM_NO_LONGER_AVAILABLE.format(room_no=room_no),
                ),
                SessionAction.KEEP,
            )

        capacity = await self.capacity.get_capacity(draft.property_id, room_no)
        session.draft = extend(
            draft,
            RoomDraft,
            room_no=room_no,
            room_type=match.room_type,
            capacity=capacity,
        )
        return await self._after_room_fixed(session)

    async def _after_room_fixed(self, session: WizardSession) -> Transition:
        """Continue once a room and its capacity are settled on the draft."""
        draft = session.draft
        if isinstance(draft, AdultsDraft):
            children = draft.children if isinstance(draft, GuestsDraft) else 0
            if not self.capacity.validate(draft.adults, children, draft.capacity):
                adults, children = self.capacity.rebalance(draft.adults, children, draft.capacity)
                if isinstance(draft, GuestsDraft):
                    session.draft = replace(draft, adults=adults, children=children)
                else:
                    session.draft = replace(draft, adults=adults)
                return await self.enter(
                    session,
                    WizardStep.ADULTS,
                    notice=self.prompts.over_capacity(draft.capacity),
                )
        return await self.enter(session, next_missing_step(session.draft))

    async def _accept_adults(self, session: WizardSession, value: str) -> Transition:
        adults = parse_count(value)
        if adults is None:
            return self._reject(session, msg.INVALID_GUEST_COUNT, alert=True)

        draft = session.draft
        if not self.capacity.validate(adults, 0, draft.capacity):
            return self._reject(session, self.prompts.over_capacity(draft.capacity), alert=True)

        if isinstance(draft, GuestsDraft):
            children = min(draft.children, draft.capacity - adults)
            session.draft = replace(draft, adults=adults, children=children)
        else:
            session.draft = extend(draft, AdultsDraft, adults=adults)
        return await self.enter(session, WizardStep.CHILDREN)

    async def _accept_children(self, session: WizardSession, value: str) -> Transition:
        children = parse_count(value)
        if children is None:
            return self._reject(session, msg.INVALID_GUEST_COUNT, alert=True)

        draft = session.draft
        if not self.capacity.validate(draft.adults, children, draft.capacity):
            return self._reject(session, self.prompts.over_capacity(draft.capacity), alert=True)

        session.draft = extend(draft, GuestsDraft, children=children)
        return await self.enter(session, next_missing_step(session.draft))

    async def _accept_amount(self, session: WizardSession, value: str) -> Transition:
        amount = parse_amount(value)
        if amount is None:
            return self._reject(session, msg.INVALID_AMOUNT)
        session.draft = extend(session.draft, PricedDraft, amount=amount)
        return await self.enter(session, next_missing_step(session.draft))

    async def _accept_notes(self, session: WizardSession, value: str) -> Transition:
        session.draft = replace(session.draft, notes=value.strip() or None)
        return await self.enter(session, next_missing_step(session.draft))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _query(self, draft: DatedDraft) -> AvailabilityQuery:
        return AvailabilityQuery(
            property_id=draft.property_id,
            check_in=draft.check_in,
            check_out=draft.check_out,
            exclude_reservation_id=draft.edit_target_id,
        )

    def _reject(self, session: WizardSession, text: str, alert: bool = False) -> Transition:
        """Input rejected: same step, stored session untouched."""
        return Transition(session, self.prompts.message(text, alert=alert), SessionAction.KEEP)

    def _stale_selection(self, session: WizardSession, event: WizardInput) -> Transition:
        """
        Handle an option offered for a step other than the current one.

        Re-delivering an option that was already accepted is a silent
        no-op; anything else is rejected as stale.
        """
        field_name = STEP_FIELD.get(event.step) if event.step else None
        current = getattr(session.draft, field_name, None) if field_name else None
        if current is not None and _as_option_value(current) == (event.value or "").strip():
            logger.debug(
                f"Duplicate {event.step.value} selection ignored in session {session.session_id}"
            )
            return Transition(session, None, SessionAction.KEEP)

        logger.warning(
            f"Stale {event.step.value if event.step else '?'} selection in session "
            f"{session.session_id} (current step {session.step.value})"
        )
        return self._reject(session, msg.STALE_OPTION, alert=True)

    def _page_calendar(self, session: WizardSession, event: WizardInput) -> Transition:
        """Show another month. Never changes the step or the draft."""
        if event.step != session.step or session.step not in (
            WizardStep.CHECK_IN,
            WizardStep.CHECK_OUT,
        ):
            return self._reject(session, msg.STALE_OPTION, alert=True)

        if event.action == WizardAction.CALENDAR_TODAY or event.year is None:
            today = self.today()
            year, month = today.year, today.month
        else:
            delta = -1 if event.action == WizardAction.CALENDAR_PREV else 1
            year, month = shift_month(event.year, event.month, delta)
            if year > MAXYEAR:
                year, month = MAXYEAR, 12
            elif year < MINYEAR:
                year, month = MINYEAR, 1

        if session.step == WizardStep.CHECK_IN:
            prompt = self.prompts.check_in(year, month)
        else:
            prompt = self.prompts.check_out(session.draft.check_in, year, month)
        return Transition(session, prompt, SessionAction.KEEP)

    def _without_session(self, event: WizardInput) -> Transition:
        if event.action == WizardAction.CONFIRM:
            logger.warning(f"Confirm without session {event.session_id}")
            return Transition(
                None,
                self.prompts.message(msg.CONFIRMATION_EXPIRED, alert=True),
                SessionAction.KEEP,
                outcome=CommitOutcome.TOKEN_REJECTED,
            )
        if event.action in (WizardAction.DECLINE, WizardAction.NOOP):
            return Transition(None, None, SessionAction.KEEP)
        return Transition(None, self.prompts.message(msg.NO_ACTIVE_WIZARD), SessionAction.KEEP)


def _as_option_value(value) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
