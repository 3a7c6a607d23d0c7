"""
Reservation Engine - Main Orchestrator.

Runs one inbound event through load -> flow -> persist, dispatches
commit notices in the background, and turns infrastructure failures into
a generic reply while leaving the stored session untouched.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from app.config import settings
from app.core.reservations import prompts as msg
from app.core.reservations.availability import AvailabilityResolver
from app.core.reservations.capacity import CapacityValidator
from app.core.reservations.commit import CommitOutcome, ReservationCommitter
from app.core.reservations.errors import SessionCorruptedError, StorageError
from app.core.reservations.flow import ReservationFlow, SessionAction, Transition
from app.core.reservations.inputs import WizardAction, WizardInput
from app.core.reservations.ports import (
    CommitNotice,
    ReservationNotifier,
    ReservationRepository,
    SessionStore,
)
from app.core.reservations.prompts import Option
from app.core.reservations.session import WizardSession
from app.core.reservations.tokens import ConfirmationTokenGuard

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# Events that never read the stored session
_NO_LOAD_ACTIONS = {WizardAction.START, WizardAction.MODIFY, WizardAction.CANCEL}


@dataclass
class WizardResponse:
    """Reply to one inbound event."""

    session_id: str
    message: str
    options: list[list[Option]] = field(default_factory=list)
    alert: bool = False
    step: Optional[str] = None
    success: bool = True
    outcome: Optional[str] = None
    reservation_id: Optional[str] = None
    error: Optional[str] = None
    processing_time_ms: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "session_id": self.session_id,
            "message": self.message,
            "options": [[o.to_dict() for o in row] for row in self.options],
            "alert": self.alert,
            "step": self.step,
            "success": self.success,
        }

        if self.outcome:
            result["outcome"] = self.outcome
        if self.reservation_id:
            result["reservation_id"] = self.reservation_id
        if self.error:
            result["error"] = self.error
        if self.processing_time_ms is not None:
            result["processing_time_ms"] = self.processing_time_ms

        return result


class ReservationEngine:
    """
    Main orchestrator for the reservation wizard.

    Coordinates:
    - Session loading and persistence
    - The step state machine (including confirm/commit)
    - Post-commit notifications
    - Infrastructure failure reporting
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        flow: Optional[ReservationFlow] = None,
        notifiers: Optional[list[ReservationNotifier]] = None,
        failure_threshold: Optional[int] = None,
    ):
        """Initialize engine with optional dependencies.

        Args:
            store: Session store (Redis-backed if not provided)
            flow: Reservation flow (SQL-backed if not provided)
            notifiers: Commit notifiers (configured from settings if not provided)
            failure_threshold: Consecutive infrastructure failures before
                a critical log
        """
        self._store = store
        self._flow = flow
        self._notifiers = notifiers
        self.failure_threshold = failure_threshold or settings.infra_failure_alert_threshold
        self.consecutive_failures = 0
        self._pending: set[asyncio.Task] = set()

    def _get_store(self) -> SessionStore:
        """Get session store."""
        if self._store is None:
            from app.infra.redis import RedisSessionStore

            self._store = RedisSessionStore()
        return self._store

    def _get_flow(self) -> ReservationFlow:
        """Get reservation flow."""
        if self._flow is None:
            from app.infra.reservations import SqlReservationRepository

            self._flow = build_flow(SqlReservationRepository(), self._get_store())
        return self._flow

    def _get_notifiers(self) -> list[ReservationNotifier]:
        """Get commit notifiers."""
        if self._notifiers is None:
            from app.infra.notifications import build_notifiers

            self._notifiers = build_notifiers()
        return self._notifiers

    async def handle(self, event: WizardInput) -> WizardResponse:
        """Process one inbound event.

        Args:
            event: Inbound input for a conversation

        Returns:
            WizardResponse with the prompt to send back
        """
        start_time = _utcnow()
        store = self._get_store()

        try:
            session: Optional[WizardSession] = None
            if event.action not in _NO_LOAD_ACTIONS:
                session = await store.load(event.session_id)

            transition = await self._get_flow().apply(session, event)
        except SessionCorruptedError as e:
            logger.error(f"Stored session {event.session_id} is unreadable: {e}")
            return self._failure(event.session_id, "session_corrupted")
        except StorageError as e:
            logger.error(f"Storage failure for session {event.session_id}: {e}")
            return self._failure(event.session_id, "storage_unavailable")

        try:
            await self._persist(store, event.session_id, transition)
        except StorageError as e:
            if transition.outcome != CommitOutcome.COMMITTED:
                logger.error(f"Could not persist session {event.session_id}: {e}")
                return self._failure(event.session_id, "storage_unavailable")
            # The reservation is written and the token already consumed, so
            # the leftover session can only ever be declined or restarted.
            logger.error(
                f"Reservation {transition.reservation_id} committed but session "
                f"{event.session_id} could not be cleared: {e}"
            )

        if transition.outcome == CommitOutcome.STORAGE_FAILURE:
            self._record_failure(event.session_id)
        else:
            self.consecutive_failures = 0

        if transition.outcome == CommitOutcome.COMMITTED:
            self._dispatch_notice(
                CommitNotice(
                    reservation_id=transition.reservation_id,
                    property_id=transition.session.draft.property_id,
                    session_id=event.session_id,
                    created=transition.created,
                    owner_id=event.owner_id,
                )
            )

        elapsed = (_utcnow() - start_time).total_seconds() * 1000
        return self._respond(event.session_id, transition, elapsed)

    async def get_session(self, session_id: str) -> Optional[WizardSession]:
        """Load the stored session of a conversation."""
        return await self._get_store().load(session_id)

    async def cancel(self, session_id: str, owner_id: Optional[str] = None) -> WizardResponse:
        """Cancel a conversation's wizard unconditionally."""
        return await self.handle(
            WizardInput.control(session_id, WizardAction.CANCEL, owner_id=owner_id)
        )

    async def drain(self) -> None:
        """Wait for background notifications (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _persist(self, store: SessionStore, session_id: str, transition: Transition) -> None:
        if transition.action == SessionAction.SAVE and transition.session is not None:
            await store.save(transition.session)
        elif transition.action == SessionAction.DELETE:
            await store.delete(session_id)

    def _respond(self, session_id: str, transition: Transition, elapsed: float) -> WizardResponse:
        prompt = transition.prompt
        failed = transition.outcome == CommitOutcome.STORAGE_FAILURE
        step = None
        if transition.session is not None and transition.action != SessionAction.DELETE:
            step = transition.session.step.value
        return WizardResponse(
            session_id=session_id,
            message=prompt.text if prompt else "",
            options=prompt.options if prompt else [],
            alert=prompt.alert if prompt else False,
            step=step,
            success=not failed,
            outcome=transition.outcome.value if transition.outcome else None,
            reservation_id=transition.reservation_id,
            error="storage_unavailable" if failed else None,
            processing_time_ms=elapsed,
        )

    def _failure(self, session_id: str, error: str) -> WizardResponse:
        self._record_failure(session_id)
        return WizardResponse(
            session_id=session_id,
            message=msg.GENERIC_FAILURE,
            success=False,
            error=error,
        )

    def _record_failure(self, session_id: str) -> None:
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.failure_threshold:
            logger.critical(
                f"Reservation storage failing: {self.consecutive_failures} consecutive "
                f"infrastructure errors (last session {session_id})"
            )

    def _dispatch_notice(self, notice: CommitNotice) -> None:
        """Fire notifiers without waiting for them."""
        for notifier in self._get_notifiers():
            task = asyncio.create_task(self._notify(notifier, notice))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _notify(self, notifier: ReservationNotifier, notice: CommitNotice) -> None:
        try:
            await notifier.notify(notice)
        except Exception as e:
            logger.error(
                f"{type(notifier).__name__} failed for reservation {notice.reservation_id}: {e}"
            )


def build_flow(repository: ReservationRepository, store: SessionStore) -> ReservationFlow:
    """Wire a ReservationFlow and its collaborators around one repository."""
    resolver = AvailabilityResolver(repository)
    capacity = CapacityValidator(repository)
    guard = ConfirmationTokenGuard()
    committer = ReservationCommitter(
        repository=repository,
        resolver=resolver,
        capacity=capacity,
        guard=guard,
        store=store,
    )
    return ReservationFlow(
        repository=repository,
        resolver=resolver,
        capacity=capacity,
        guard=guard,
        committer=committer,
    )


# Singleton
_engine: Optional[ReservationEngine] = None


def get_reservation_engine() -> ReservationEngine:
    """Get singleton ReservationEngine."""
    global _engine
    if _engine is None:
        _engine = ReservationEngine()
    return _engine


async def process_event(event: WizardInput) -> WizardResponse:
    """Convenience function to process an inbound event.

    Args:
        event: Inbound input

    Returns:
        WizardResponse
    """
    engine = get_reservation_engine()
    return await engine.handle(event)
