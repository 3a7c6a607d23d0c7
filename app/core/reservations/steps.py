"""Reservation wizard state machine."""

from enum import Enum
from typing import Set


class WizardStep(str, Enum):
    """Steps of the reservation dialogue."""

    # Data collection
    GUEST_NAME = "guestName"
    CHECK_IN = "checkInDate"
    CHECK_OUT = "checkOutDate"
    ROOM = "roomNo"
    ADULTS = "adults"
    CHILDREN = "children"
    AMOUNT = "amount"
    NOTES = "notes"

    # Confirmation
    CONFIRM = "confirm"

    # Terminal states
    COMMITTED = "committed"
    CANCELLED = "cancelled"


class ModifyField(str, Enum):
    """Fields of an existing reservation that a modify flow can edit."""

    DATES = "dates"
    ROOM = "room"
    GUEST = "guest"
    ADULTS = "adults"
    CHILDREN = "children"
    AMOUNT = "amount"
    NOTES = "notes"


# First step shown when a modify flow is started for a field
MODIFY_ENTRY_STEP: dict[ModifyField, WizardStep] = {
    ModifyField.DATES: WizardStep.CHECK_IN,
    ModifyField.ROOM: WizardStep.ROOM,
    ModifyField.GUEST: WizardStep.GUEST_NAME,
    ModifyField.ADULTS: WizardStep.ADULTS,
    ModifyField.CHILDREN: WizardStep.CHILDREN,
    ModifyField.AMOUNT: WizardStep.AMOUNT,
    ModifyField.NOTES: WizardStep.NOTES,
}


# Valid step transitions
VALID_TRANSITIONS: dict[WizardStep, Set[WizardStep]] = {
    WizardStep.GUEST_NAME: {
        WizardStep.CHECK_IN,
        WizardStep.CONFIRM,  # Modify: guest name only
        WizardStep.CANCELLED,
    },
    WizardStep.CHECK_IN: {
        WizardStep.CHECK_OUT,
        WizardStep.CANCELLED,
    },
    WizardStep.CHECK_OUT: {
        WizardStep.ROOM,
        WizardStep.ADULTS,  # Held room fits the new dates but not the guests
        WizardStep.AMOUNT,
        WizardStep.CONFIRM,  # Held room still free for the new dates
        WizardStep.CANCELLED,
    },
    WizardStep.ROOM: {
        WizardStep.ADULTS,
        WizardStep.AMOUNT,
        WizardStep.CONFIRM,
        WizardStep.CANCELLED,
    },
    WizardStep.ADULTS: {
        WizardStep.CHILDREN,
        WizardStep.CANCELLED,
    },
    WizardStep.CHILDREN: {
        WizardStep.AMOUNT,
        WizardStep.CONFIRM,
        WizardStep.CANCELLED,
    },
    WizardStep.AMOUNT: {
        WizardStep.CONFIRM,
        WizardStep.CANCELLED,
    },
    WizardStep.NOTES: {
        WizardStep.CONFIRM,
        WizardStep.CANCELLED,
    },
    WizardStep.CONFIRM: {
        WizardStep.COMMITTED,
        WizardStep.ROOM,  # Room taken at commit time
        WizardStep.ADULTS,  # Capacity exceeded at commit time
        # Draft failed validation
        WizardStep.GUEST_NAME,
        WizardStep.CHECK_IN,
        WizardStep.CHECK_OUT,
        WizardStep.CHILDREN,
        WizardStep.AMOUNT,
        WizardStep.CANCELLED,
    },
    WizardStep.COMMITTED: set(),  # Terminal state
    WizardStep.CANCELLED: set(),  # Terminal state
}


# Which draft field each data-collection step fills
STEP_FIELD: dict[WizardStep, str] = {
    WizardStep.GUEST_NAME: "guest_name",
    WizardStep.CHECK_IN: "check_in",
    WizardStep.CHECK_OUT: "check_out",
    WizardStep.ROOM: "room_no",
    WizardStep.ADULTS: "adults",
    WizardStep.CHILDREN: "children",
    WizardStep.AMOUNT: "amount",
    WizardStep.NOTES: "notes",
}


def can_transition(from_step: WizardStep, to_step: WizardStep) -> bool:
    """
    Check if a step transition is valid.

    Staying on the same non-terminal step (a rejected input, or a
    re-prompt after a stale selection) is always allowed.

    Args:
        from_step: Current step
        to_step: Target step

    Returns:
        True if transition is allowed
    """
    if from_step == to_step:
        return not is_terminal_state(from_step)
    return to_step in VALID_TRANSITIONS.get(from_step, set())


def is_terminal_state(step: WizardStep) -> bool:
    """Check if step is terminal (no outgoing transitions)."""
    return len(VALID_TRANSITIONS.get(step, set())) == 0


def is_collection_step(step: WizardStep) -> bool:
    """Check if step collects a draft field from user input."""
    return step in STEP_FIELD
