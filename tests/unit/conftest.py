"""Shared fixtures for reservation engine tests."""

from datetime import date

import pytest
from unittest.mock import AsyncMock

from app.core.reservations.availability import AvailabilityResolver
from app.core.reservations.capacity import CapacityValidator
from app.core.reservations.commit import ReservationCommitter
from app.core.reservations.engine import ReservationEngine
from app.core.reservations.flow import ReservationFlow
from app.core.reservations.inputs import WizardInput, parse_callback
from app.core.reservations.ports import ReservationNotifier
from app.core.reservations.prompts import WizardPrompts
from app.core.reservations.tokens import ConfirmationTokenGuard
from fakes import InMemoryReservationRepository, InMemorySessionStore

PROPERTY_ID = "prop-1"
TODAY = date(2025, 5, 20)


def make_flow(repository, store) -> ReservationFlow:
    """Flow wired around one repository with a fixed calendar date."""
    resolver = AvailabilityResolver(repository)
    capacity = CapacityValidator(repository, default_capacity=6, max_choices=10)
    guard = ConfirmationTokenGuard(token_bytes=8)
    committer = ReservationCommitter(
        repository=repository,
        resolver=resolver,
        capacity=capacity,
        guard=guard,
        store=store,
        timezone="Asia/Kolkata",
        source="direct",
        channel="telegram",
        min_guest_name_length=2,
    )
    return ReservationFlow(
        repository=repository,
        resolver=resolver,
        capacity=capacity,
        guard=guard,
        committer=committer,
        prompts=WizardPrompts(min_guest_name_length=2),
        timezone="Asia/Kolkata",
        clock=lambda: TODAY,
    )


@pytest.fixture
def repository():
    """Property with three rooms of different capacity."""
    repo = InMemoryReservationRepository()
    repo.add_room(PROPERTY_ID, "101", "Deluxe", 2)
    repo.add_room(PROPERTY_ID, "102", "Standard", 4)
    repo.add_room(PROPERTY_ID, "201", "Suite", 6)
    return repo


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def flow_factory():
    """Build a flow around another repository or store."""
    return make_flow


@pytest.fixture
def flow(repository, store):
    return make_flow(repository, store)


@pytest.fixture
def notifier():
    return AsyncMock(spec=ReservationNotifier)


@pytest.fixture
def engine(store, flow, notifier):
    return ReservationEngine(
        store=store,
        flow=flow,
        notifiers=[notifier],
        failure_threshold=3,
    )


@pytest.fixture
def say(engine):
    """Send free text to a conversation."""

    async def _say(session_id: str, text: str):
        return await engine.handle(WizardInput.text(session_id, text, owner_id="user-1"))

    return _say


@pytest.fixture
def tap(engine):
    """Tap an option in a conversation."""

    async def _tap(session_id: str, data: str):
        return await engine.handle(parse_callback(session_id, data, owner_id="user-1"))

    return _tap


@pytest.fixture
def book_until_confirm(engine, say, tap):
    """Run a new booking up to the confirm prompt and return that response."""

    async def _book(
        session_id: str,
        room: str = "101",
        check_in: str = "2025-06-01",
        check_out: str = "2025-06-03",
        adults: int = 2,
        children: int = 0,
        amount: str = "12,500",
        guest: str = "Alice Smith",
    ):
        await engine.handle(WizardInput.start(session_id, PROPERTY_ID, owner_id="user-1"))
        await say(session_id, guest)
        await tap(session_id, f"checkin:select:{check_in}")
        await tap(session_id, f"checkout:select:{check_out}")
        await tap(session_id, f"room:select:{room}")
        await tap(session_id, f"wiz_adults:{adults}")
        await tap(session_id, f"wiz_children:{children}")
        return await say(session_id, amount)

    return _book
