"""Confirmation Token Guard."""

import logging
import secrets
from typing import Optional

from app.config import settings
from app.core.reservations.session import WizardSession

logger = logging.getLogger(__name__)


class ConfirmationTokenGuard:
    """
    Issues and checks the single-use token shown with the confirm summary.

    The token ties a confirm action to the exact summary it was shown
    with. A restart, a new flow, or any edit replaces or clears it.
    """

    def __init__(self, token_bytes: Optional[int] = None):
        self.token_bytes = token_bytes or settings.confirmation_token_bytes

    def issue(self, session: WizardSession) -> str:
        """Generate a fresh token and store it on the session."""
        token = secrets.token_hex(self.token_bytes)
        session.confirmation_token = token
        return token

    def verify(self, session: Optional[WizardSession], supplied: Optional[str]) -> bool:
        """
        Check a supplied token against the session's current token.

        Fails closed: a missing session, a missing stored token, or a
        mismatch all fail verification.
        """
        if session is None or not session.confirmation_token or not supplied:
            return False
        return secrets.compare_digest(
            session.confirmation_token.encode(), supplied.encode()
        )

    def consume(self, session: WizardSession) -> None:
        """Invalidate the session's token."""
        session.confirmation_token = None
