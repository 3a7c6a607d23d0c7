"""
Reservation Wizard API Endpoint.

Receives one event per user action from the messaging transport and
returns the prompt to send back.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.core.reservations.drafts import draft_to_dict
from app.core.reservations.engine import ReservationEngine, get_reservation_engine
from app.core.reservations.errors import StorageError
from app.core.reservations.inputs import WizardInput, parse_callback
from app.core.reservations.steps import ModifyField

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wizard", tags=["Wizard"])


def get_engine() -> ReservationEngine:
    """FastAPI dependency providing the reservation engine."""
    return get_reservation_engine()


class WizardEventRequest(BaseModel):
    """One inbound user action."""

    session_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Conversation identifier (e.g. chat id)",
        examples=["chat-123456"],
    )
    type: Literal["text", "callback", "start", "modify"] = Field(
        ...,
        description="text: typed message, callback: tapped option, "
        "start: new booking, modify: edit an existing booking",
    )
    text: Optional[str] = Field(default=None, max_length=2000)
    callback_data: Optional[str] = Field(
        default=None,
        max_length=256,
        examples=["checkin:select:2025-06-01", "room:select:101"],
    )
    property_id: Optional[str] = Field(default=None, description="Required for start")
    reservation_id: Optional[str] = Field(default=None, description="Required for modify")
    modify_field: Optional[ModifyField] = Field(default=None, description="Required for modify")
    owner_id: Optional[str] = Field(default=None, description="User acting in the conversation")


class OptionModel(BaseModel):
    label: str
    payload: str


class WizardEventResponse(BaseModel):
    """Prompt to send back to the conversation."""

    session_id: str
    message: str
    options: list[list[OptionModel]] = Field(default_factory=list)
    alert: bool = False
    step: Optional[str] = None
    success: bool = True
    outcome: Optional[str] = None
    reservation_id: Optional[str] = None
    error: Optional[str] = None
    processing_time_ms: Optional[float] = None


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


def to_wizard_input(request: WizardEventRequest) -> WizardInput:
    """
    Convert an API request into a WizardInput.

    Raises:
        ValueError: If required fields for the event type are missing
            or the callback payload is unknown
    """
    if request.type == "text":
        if request.text is None:
            raise ValueError("text is required for text events")
        return WizardInput.text(request.session_id, request.text, request.owner_id)

    if request.type == "callback":
        if not request.callback_data:
            raise ValueError("callback_data is required for callback events")
        return parse_callback(request.session_id, request.callback_data, request.owner_id)

    if request.type == "start":
        if not request.property_id:
            raise ValueError("property_id is required for start events")
        return WizardInput.start(request.session_id, request.property_id, request.owner_id)

    if not request.reservation_id or request.modify_field is None:
        raise ValueError("reservation_id and modify_field are required for modify events")
    return WizardInput.modify(
        request.session_id,
        request.reservation_id,
        request.modify_field,
        request.owner_id,
    )


@router.post(
    "/events",
    response_model=WizardEventResponse,
    status_code=status.HTTP_200_OK,
    summary="Send a wizard event",
    description="Apply one user action to the conversation's booking wizard.",
    responses={
        200: {"description": "Prompt for the conversation"},
        400: {"model": ErrorResponse, "description": "Invalid event"},
    },
)
async def post_event(
    request: WizardEventRequest,
    engine: ReservationEngine = Depends(get_engine),
) -> WizardEventResponse:
    """
    Process a wizard event.

    Infrastructure failures are not HTTP errors: they come back as
    ``success: false`` with a generic message, and the stored session is
    left as it was so the same event can be retried.
    """
    try:
        event = to_wizard_input(request)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    response = await engine.handle(event)
    return WizardEventResponse(**response.to_dict())


@router.get(
    "/sessions/{session_id}",
    response_model=dict,
    summary="Get wizard session",
    description="Retrieve the stored state of a conversation's booking wizard.",
    responses={
        200: {"description": "Session data"},
        404: {"model": ErrorResponse, "description": "Session not found"},
        503: {"model": ErrorResponse, "description": "Session store unavailable"},
    },
)
async def get_session(
    session_id: str,
    engine: ReservationEngine = Depends(get_engine),
) -> dict:
    """Get session information (the confirmation token is never exposed)."""
    try:
        session = await engine.get_session(session_id)
    except StorageError as e:
        logger.error(f"Could not load session {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session store unavailable",
        )

    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )

    return {
        "session_id": session.session_id,
        "step": session.step.value,
        "mode": session.mode,
        "owner_id": session.owner_id,
        "data": draft_to_dict(session.draft),
        "awaiting_confirmation": session.confirmation_token is not None,
        "created_at": session.created_at.isoformat(),
        "updated_at": session.updated_at.isoformat(),
    }


@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Cancel wizard",
    description="Cancel the conversation's booking wizard and clear its session.",
    responses={503: {"model": ErrorResponse, "description": "Session store unavailable"}},
)
async def cancel_session(
    session_id: str,
    engine: ReservationEngine = Depends(get_engine),
) -> None:
    """Cancel the wizard unconditionally."""
    response = await engine.cancel(session_id)
    if not response.success:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session store unavailable",
        )
