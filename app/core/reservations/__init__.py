"""
Reservations Module

Provides the conversational reservation wizard: step state machine,
availability resolver, capacity validator, confirmation token guard and
the re-validating reservation commit.

Usage:
    from app.core.reservations import WizardInput, process_event

    response = await process_event(
        WizardInput.start(session_id="chat-42", property_id="prop-1")
    )
    print(response.message)  # "Enter guest name:"
"""

from app.core.reservations.availability import (
    AvailabilityQuery,
    AvailabilityResolver,
    AvailableRoom,
    intervals_overlap,
)
from app.core.reservations.capacity import CapacityValidator
from app.core.reservations.commit import (
    CommitOutcome,
    CommitResult,
    ReservationCommitter,
)
from app.core.reservations.engine import (
    ReservationEngine,
    WizardResponse,
    build_flow,
    get_reservation_engine,
    process_event,
)
from app.core.reservations.errors import (
    InvalidIntervalError,
    InvalidTransitionError,
    ReservationError,
    ReservationNotFoundError,
    SessionCorruptedError,
    StorageError,
)
from app.core.reservations.flow import ReservationFlow, SessionAction, Transition
from app.core.reservations.inputs import (
    InputKind,
    WizardAction,
    WizardInput,
    parse_callback,
)
from app.core.reservations.session import WizardSession
from app.core.reservations.steps import ModifyField, WizardStep
from app.core.reservations.tokens import ConfirmationTokenGuard

__all__ = [
    # Availability
    "AvailabilityQuery",
    "AvailabilityResolver",
    "AvailableRoom",
    "intervals_overlap",
    # Capacity
    "CapacityValidator",
    # Commit
    "CommitOutcome",
    "CommitResult",
    "ReservationCommitter",
    # Engine
    "ReservationEngine",
    "WizardResponse",
    "build_flow",
    "get_reservation_engine",
    "process_event",
    # Errors
    "InvalidIntervalError",
    "InvalidTransitionError",
    "ReservationError",
    "ReservationNotFoundError",
    "SessionCorruptedError",
    "StorageError",
    # Flow
    "ReservationFlow",
    "SessionAction",
    "Transition",
    # Inputs
    "InputKind",
    "WizardAction",
    "WizardInput",
    "parse_callback",
    # Session
    "WizardSession",
    "ModifyField",
    "WizardStep",
    "ConfirmationTokenGuard",
]
