"""
Prompt and option rendering for the reservation wizard.

Produces channel-neutral prompts: a text plus rows of options, each
option carrying the compact payload decoded by ``parse_callback``.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Iterable, Optional

from app.core.reservations.availability import AvailableRoom
from app.core.reservations.drafts import Draft, DatedDraft, PricedDraft, RoomDraft
from app.core.reservations.inputs import (
    encode_adults,
    encode_calendar,
    encode_children,
    encode_confirm,
    encode_date,
    encode_decline,
    encode_restart,
    encode_room,
)
from app.core.reservations.steps import WizardStep


# User-facing messages
ENTER_GUEST_NAME = "Enter guest name:"
INVALID_GUEST_NAME = "Please enter a valid guest name (min {min_length} chars)."
SELECT_CHECK_IN = "Select check-in date:"
SELECT_CHECK_OUT = "Check-in: {check_in}\n\nSelect check-out date:"
INVALID_DATE = "Please pick a date from the calendar."
CHECK_OUT_NOT_AFTER_CHECK_IN = "Check-out must be after check-in!"
NO_ROOMS = "No rooms available for {check_in} → {check_out}"
SELECT_ROOM = "Dates: {check_in} → {check_out}\n\nSelect available room:"
ROOM_NO_LONGER_AVAILABLE = "Room {room_no} is no longer available. Choose another room:"
HELD_ROOM_UNAVAILABLE = "Selected dates not available for current room. Choose a different room:"
SELECT_ADULTS = "Room {room_no} (max {capacity} guests)\n\nSelect number of adults:"
SELECT_CHILDREN = "Adults: {adults}\n\nSelect number of children:"
OVER_CAPACITY = "Over capacity for selected room (max {capacity}). Adjust guests first."
ENTER_AMOUNT = "Enter total amount:"
INVALID_AMOUNT = "Amount must be a positive number with at most 2 decimal places."
ENTER_NOTES = "Enter notes (special requests):"
CONFIRMATION_EXPIRED = "Confirmation expired. Please /book again."
WIZARD_CANCELLED = "Booking wizard cancelled. Use /book to start over."
BOOKING_DECLINED = "Booking cancelled."
BOOKING_CREATED = "Booking created ✅ ID: {reservation_id}"
BOOKING_UPDATED = "Booking updated ✅ ID: {reservation_id}"
BOOKING_NOT_FOUND = "Booking not found."
BOOKING_IS_CANCELLED = "This booking is cancelled and cannot be modified."
BOOKING_GONE = "This booking was cancelled or removed. Changes were not saved."
NO_ACTIVE_WIZARD = "No booking in progress. Use /book to start."
STALE_OPTION = "That option is no longer valid. Please use the latest message."
GENERIC_FAILURE = "Something went wrong. Please try again."
INVALID_GUEST_COUNT = "Please choose one of the offered numbers."
USE_CONFIRM_BUTTONS = "Use the Confirm or Cancel button above."

DAY_HEADERS = ["S", "M", "T", "W", "T", "F", "S"]


@dataclass(frozen=True)
class Option:
    """One selectable option."""

    label: str
    payload: str

    def to_dict(self) -> dict:
        return {"label": self.label, "payload": self.payload}


@dataclass
class Prompt:
    """Text and option rows sent back to the conversation."""

    text: str
    options: list[list[Option]] = field(default_factory=list)
    alert: bool = False  # Transient notice; the previous message stays as-is

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "options": [[o.to_dict() for o in row] for row in self.options],
            "alert": self.alert,
        }


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move a (year, month) pair by ``delta`` months."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def calendar_keyboard(step: WizardStep, year: int, month: int) -> list[list[Option]]:
    """
    Month grid for a date step.

    Rows: month header, paging (◀ / Today / ▶), weekday initials, then one
    row per week starting on Sunday with blank fillers.
    """
    rows: list[list[Option]] = [
        [Option(f"{calendar.month_abbr[month]} {year}", encode_calendar(step, "header", year, month))],
        [
            Option("◀️", encode_calendar(step, "prev", year, month)),
            Option("Today", encode_calendar(step, "today")),
            Option("▶️", encode_calendar(step, "next", year, month)),
        ],
        [Option(d, encode_calendar(step, "day_header")) for d in DAY_HEADERS],
    ]

    blank = Option(" ", encode_calendar(step, "empty"))
    first_weekday, days = calendar.monthrange(year, month)
    leading = (first_weekday + 1) % 7  # Monday=0 -> Sunday-first column

    week: list[Option] = [blank] * leading
    for day in range(1, days + 1):
        week.append(Option(str(day), encode_date(step, date(year, month, day))))
        if len(week) == 7:
            rows.append(week)
            week = []
    if week:
        week.extend([blank] * (7 - len(week)))
        rows.append(week)
    return rows


def number_keyboard(
    values: Iterable[int],
    encode: Callable[[int], str],
    current: Optional[int] = None,
    per_row: int = 5,
) -> list[list[Option]]:
    """Numeric choices, ``per_row`` to a row, current value marked with ✓."""
    rows: list[list[Option]] = []
    row: list[Option] = []
    for value in values:
        label = f"{value} ✓" if value == current else str(value)
        row.append(Option(label, encode(value)))
        if len(row) == per_row:
            rows.append(row)
            row = []
    if row:
        rows.append(row)
    return rows


def room_keyboard(
    rooms: Iterable[AvailableRoom],
    current: Optional[str] = None,
) -> list[list[Option]]:
    """One room per row, e.g. "Room 101 (Deluxe) ✓"."""
    rows = []
    for room in rooms:
        label = f"Room {room.room_no}"
        if room.room_type:
            label += f" ({room.room_type})"
        if room.room_no == current:
            label += " ✓"
        rows.append([Option(label, encode_room(room.room_no))])
    return rows


def restart_keyboard() -> list[list[Option]]:
    return [[Option("Start Over", encode_restart())]]


def confirm_keyboard(token: str) -> list[list[Option]]:
    return [[Option("Confirm", encode_confirm(token)), Option("Cancel", encode_decline(token))]]


def format_summary(draft: PricedDraft) -> str:
    """Immutable summary shown with the confirm options."""
    if draft.edit_target_id:
        title = f"Confirm changes to booking {draft.edit_target_id}:"
    else:
        title = "Confirm booking:"
    lines = [
        title,
        f"Guest: {draft.guest_name}",
        f"Room: {draft.room_no}",
        f"Dates: {draft.check_in} → {draft.check_out}",
        f"Guests: {draft.total_guests} ({draft.adults}/{draft.children})",
        f"Amount: {draft.amount}",
    ]
    if draft.notes:
        lines.append(f"Notes: {draft.notes}")
    return "\n".join(lines)


class WizardPrompts:
    """Builds the prompt for each wizard step."""

    def __init__(self, min_guest_name_length: int = 2):
        self.min_guest_name_length = min_guest_name_length

    def guest_name(self) -> Prompt:
        return Prompt(ENTER_GUEST_NAME)

    def invalid_guest_name(self) -> Prompt:
        return Prompt(INVALID_GUEST_NAME.format(min_length=self.min_guest_name_length))

    def check_in(self, year: int, month: int, notice: Optional[str] = None) -> Prompt:
        text = SELECT_CHECK_IN if notice is None else f"{notice}\n\n{SELECT_CHECK_IN}"
        return Prompt(text, calendar_keyboard(WizardStep.CHECK_IN, year, month))

    def check_out(
        self,
        check_in: date,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> Prompt:
        if year is None or month is None:
            first = check_in + timedelta(days=1)
            year, month = first.year, first.month
        return Prompt(
            SELECT_CHECK_OUT.format(check_in=check_in),
            calendar_keyboard(WizardStep.CHECK_OUT, year, month),
        )

    def no_rooms(self, check_in: date, check_out: date) -> Prompt:
        return Prompt(
            NO_ROOMS.format(check_in=check_in, check_out=check_out),
            restart_keyboard(),
        )

    def rooms(
        self,
        draft: DatedDraft,
        rooms: list[AvailableRoom],
        notice: Optional[str] = None,
    ) -> Prompt:
        if not rooms:
            prompt = self.no_rooms(draft.check_in, draft.check_out)
            if notice:
                prompt.text = f"{notice}\n\n{prompt.text}"
            return prompt

        current = draft.room_no if isinstance(draft, RoomDraft) else None
        text = SELECT_ROOM.format(check_in=draft.check_in, check_out=draft.check_out)
        if notice:
            text = f"{notice}\n\n{text}"
        return Prompt(text, room_keyboard(rooms, current=current) + restart_keyboard())

    def adults(
        self,
        draft: RoomDraft,
        choices: list[int],
        current: Optional[int] = None,
        notice: Optional[str] = None,
    ) -> Prompt:
        text = SELECT_ADULTS.format(room_no=draft.room_no, capacity=draft.capacity)
        if notice:
            text = f"{notice}\n\n{text}"
        return Prompt(text, number_keyboard(choices, encode_adults, current) + restart_keyboard())

    def children(
        self,
        adults: int,
        choices: list[int],
        current: Optional[int] = None,
    ) -> Prompt:
        return Prompt(
            SELECT_CHILDREN.format(adults=adults),
            number_keyboard(choices, encode_children, current) + restart_keyboard(),
        )

    def amount(self, draft: Draft) -> Prompt:
        text = ENTER_AMOUNT
        if isinstance(draft, PricedDraft):
            text = f"Current amount: {draft.amount}\n\n{ENTER_AMOUNT}"
        return Prompt(text)

    def notes(self, draft: Draft) -> Prompt:
        text = ENTER_NOTES
        if draft.notes:
            text = f"Current notes: {draft.notes}\n\n{ENTER_NOTES}"
        return Prompt(text)

    def confirm(self, draft: PricedDraft, token: str, notice: Optional[str] = None) -> Prompt:
        text = format_summary(draft)
        if notice:
            text = f"{notice}\n\n{text}"
        return Prompt(text, confirm_keyboard(token))

    def over_capacity(self, capacity: int) -> str:
        return OVER_CAPACITY.format(capacity=capacity)

    def committed(self, reservation_id: str, created: bool) -> Prompt:
        template = BOOKING_CREATED if created else BOOKING_UPDATED
        return Prompt(template.format(reservation_id=reservation_id))

    def message(self, text: str, alert: bool = False) -> Prompt:
        return Prompt(text, alert=alert)

