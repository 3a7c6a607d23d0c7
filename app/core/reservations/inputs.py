"""
Inbound wizard events and the compact callback codec.

Option payloads use short colon-separated strings so they fit the
messaging channel's callback size limit:

    checkin:select:2025-06-01      day picked on the check-in calendar
    checkout:prev:2025:6           page back from June 2025
    checkin:today                  jump the calendar to the current month
    checkin:header:2025:6          non-interactive cell (also day_header, empty)
    room:select:101
    wiz_adults:2
    wiz_children:0
    bk:confirm:<token>
    bk:decline:<token>
    bk:restart
    bk:modify_dates:<reservation id>
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from app.core.reservations.steps import ModifyField, WizardStep


class InputKind(str, Enum):
    """Shape of an inbound event."""

    TEXT = "text"  # Free text typed by the user
    SELECT = "select"  # Option picked from a previously offered set
    ACTION = "action"  # Flow control (start, confirm, cancel, paging)


class WizardAction(str, Enum):
    """Flow-control actions."""

    START = "start"
    MODIFY = "modify"
    CONFIRM = "confirm"
    DECLINE = "decline"
    CANCEL = "cancel"
    CALENDAR_PREV = "calendar_prev"
    CALENDAR_NEXT = "calendar_next"
    CALENDAR_TODAY = "calendar_today"
    NOOP = "noop"


CALENDAR_PREFIXES: dict[WizardStep, str] = {
    WizardStep.CHECK_IN: "checkin",
    WizardStep.CHECK_OUT: "checkout",
}
_PREFIX_STEPS = {prefix: step for step, prefix in CALENDAR_PREFIXES.items()}


@dataclass(frozen=True)
class WizardInput:
    """One inbound user action for a conversation."""

    session_id: str
    kind: InputKind
    value: Optional[str] = None
    step: Optional[WizardStep] = None  # Step the selected option was offered for
    action: Optional[WizardAction] = None
    property_id: Optional[str] = None
    reservation_id: Optional[str] = None
    modify_field: Optional[ModifyField] = None
    owner_id: Optional[str] = None
    year: Optional[int] = None  # Calendar month being paged from
    month: Optional[int] = None

    @classmethod
    def text(cls, session_id: str, value: str, owner_id: Optional[str] = None) -> "WizardInput":
        return cls(session_id=session_id, kind=InputKind.TEXT, value=value, owner_id=owner_id)

    @classmethod
    def select(
        cls,
        session_id: str,
        step: WizardStep,
        value: str,
        owner_id: Optional[str] = None,
    ) -> "WizardInput":
        return cls(
            session_id=session_id,
            kind=InputKind.SELECT,
            step=step,
            value=value,
            owner_id=owner_id,
        )

    @classmethod
    def start(
        cls,
        session_id: str,
        property_id: str,
        owner_id: Optional[str] = None,
    ) -> "WizardInput":
        return cls(
            session_id=session_id,
            kind=InputKind.ACTION,
            action=WizardAction.START,
            property_id=property_id,
            owner_id=owner_id,
        )

    @classmethod
    def modify(
        cls,
        session_id: str,
        reservation_id: str,
        modify_field: ModifyField,
        owner_id: Optional[str] = None,
    ) -> "WizardInput":
        return cls(
            session_id=session_id,
            kind=InputKind.ACTION,
            action=WizardAction.MODIFY,
            reservation_id=reservation_id,
            modify_field=modify_field,
            owner_id=owner_id,
        )

    @classmethod
    def control(
        cls,
        session_id: str,
        action: WizardAction,
        value: Optional[str] = None,
        owner_id: Optional[str] = None,
        **extra,
    ) -> "WizardInput":
        return cls(
            session_id=session_id,
            kind=InputKind.ACTION,
            action=action,
            value=value,
            owner_id=owner_id,
            **extra,
        )


def parse_callback(
    session_id: str,
    data: str,
    owner_id: Optional[str] = None,
) -> WizardInput:
    """
    Decode an option payload into a WizardInput.

    Args:
        session_id: Conversation the payload arrived on
        data: Payload string from the messaging channel
        owner_id: User who tapped the option

    Returns:
        Decoded input

    Raises:
        ValueError: If the payload does not match any known grammar
    """
    parts = data.split(":")
    head = parts[0]

    if head in _PREFIX_STEPS:
        step = _PREFIX_STEPS[head]
        verb = parts[1] if len(parts) > 1 else ""
        if verb == "select" and len(parts) == 3:
            return WizardInput.select(session_id, step, parts[2], owner_id)
        if verb in ("prev", "next") and len(parts) == 4:
            try:
                year, month = int(parts[2]), int(parts[3])
            except ValueError as e:
                raise ValueError(f"Invalid calendar page in {data!r}") from e
            action = WizardAction.CALENDAR_PREV if verb == "prev" else WizardAction.CALENDAR_NEXT
            return WizardInput.control(
                session_id, action, owner_id=owner_id, step=step, year=year, month=month
            )
        if verb == "today":
            return WizardInput.control(
                session_id, WizardAction.CALENDAR_TODAY, owner_id=owner_id, step=step
            )
        if verb in ("header", "day_header", "empty"):
            return WizardInput.control(session_id, WizardAction.NOOP, owner_id=owner_id)

    elif head == "room" and len(parts) == 3 and parts[1] == "select":
        return WizardInput.select(session_id, WizardStep.ROOM, parts[2], owner_id)

    elif head == "wiz_adults" and len(parts) == 2:
        return WizardInput.select(session_id, WizardStep.ADULTS, parts[1], owner_id)

    elif head == "wiz_children" and len(parts) == 2:
        return WizardInput.select(session_id, WizardStep.CHILDREN, parts[1], owner_id)

    elif head == "bk" and len(parts) >= 2:
        verb = parts[1]
        arg = ":".join(parts[2:]) or None
        if verb == "confirm":
            return WizardInput.control(session_id, WizardAction.CONFIRM, arg, owner_id)
        if verb == "decline":
            return WizardInput.control(session_id, WizardAction.DECLINE, arg, owner_id)
        if verb == "restart":
            return WizardInput.control(session_id, WizardAction.CANCEL, owner_id=owner_id)
        if verb.startswith("modify_") and arg:
            try:
                modify_field = ModifyField(verb[len("modify_"):])
            except ValueError as e:
                raise ValueError(f"Unknown modify field in {data!r}") from e
            return WizardInput.modify(session_id, arg, modify_field, owner_id)

    raise ValueError(f"Unrecognized callback payload: {data!r}")


def encode_date(step: WizardStep, day: date) -> str:
    return f"{CALENDAR_PREFIXES[step]}:select:{day.isoformat()}"


def encode_calendar(step: WizardStep, verb: str, year: Optional[int] = None, month: Optional[int] = None) -> str:
    prefix = CALENDAR_PREFIXES[step]
    if year is None:
        return f"{prefix}:{verb}"
    return f"{prefix}:{verb}:{year}:{month}"


def encode_room(room_no: str) -> str:
    return f"room:select:{room_no}"


def encode_adults(adults: int) -> str:
    return f"wiz_adults:{adults}"


def encode_children(children: int) -> str:
    return f"wiz_children:{children}"


def encode_confirm(token: str) -> str:
    return f"bk:confirm:{token}"


def encode_decline(token: str) -> str:
    return f"bk:decline:{token}"


def encode_restart() -> str:
    return "bk:restart"


def encode_modify(modify_field: ModifyField, reservation_id: str) -> str:
    return f"bk:modify_{modify_field.value}:{reservation_id}"
