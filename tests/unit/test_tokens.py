"""Tests for Confirmation Token Guard."""

from datetime import date
from decimal import Decimal

import pytest

from app.core.reservations.drafts import PricedDraft
from app.core.reservations.session import WizardSession
from app.core.reservations.steps import WizardStep
from app.core.reservations.tokens import ConfirmationTokenGuard


@pytest.fixture
def session():
    draft = PricedDraft(
        property_id="prop-1",
        guest_name="Alice Smith",
        check_in=date(2025, 6, 1),
        check_out=date(2025, 6, 3),
        room_no="101",
        capacity=2,
        adults=2,
        children=0,
        amount=Decimal("100"),
    )
    return WizardSession("chat-1", WizardStep.CONFIRM, draft)


class TestConfirmationTokenGuard:
    """Test ConfirmationTokenGuard."""

    @pytest.fixture
    def guard(self):
        return ConfirmationTokenGuard(token_bytes=8)

    def test_issue_stores_hex_token(self, guard, session):
        token = guard.issue(session)

        assert session.confirmation_token == token
        assert len(token) == 16
        int(token, 16)

    def test_issue_replaces_token(self, guard, session):
        first = guard.issue(session)
        second = guard.issue(session)

        assert first != second
        assert not guard.verify(session, first)

    def test_verify(self, guard, session):
        token = guard.issue(session)

        assert guard.verify(session, token)

    def test_verify_fails_closed(self, guard, session):
        token = guard.issue(session)

        assert not guard.verify(None, token)
        assert not guard.verify(session, None)
        assert not guard.verify(session, "")
        assert not guard.verify(session, token.upper() + "0")

    def test_verify_without_stored_token(self, guard, session):
        assert not guard.verify(session, "anything")

    def test_consume(self, guard, session):
        token = guard.issue(session)
        guard.consume(session)

        assert session.confirmation_token is None
        assert not guard.verify(session, token)
