"""
Commit Notifications

Downstream collaborators told about committed reservations. The engine
dispatches them in the background and never waits on their outcome.
"""

import logging
from dataclasses import asdict
from typing import Optional

import httpx

from app.config import settings
from app.core.reservations.ports import CommitNotice, ReservationNotifier

logger = logging.getLogger(__name__)


class LoggingNotifier(ReservationNotifier):
    """Records commits in the application log."""

    async def notify(self, notice: CommitNotice) -> None:
        action = "created" if notice.created else "updated"
        logger.info(
            f"Reservation {notice.reservation_id} {action} "
            f"(property {notice.property_id}, session {notice.session_id})"
        )


class WebhookNotifier(ReservationNotifier):
    """
    POSTs commit notices to an HTTP endpoint.

    Payload:
        {"event": "reservation.created" | "reservation.updated",
         "reservation_id": ..., "property_id": ..., "session_id": ...,
         "created": bool, "owner_id": ...}
    """

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize notifier.

        Args:
            url: Endpoint receiving the notices
            timeout: Request timeout in seconds (settings default)
            client: HTTP client (created lazily if not provided)
        """
        self.url = url
        self.timeout = timeout or settings.notification_timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def notify(self, notice: CommitNotice) -> None:
        client = await self._get_client()
        payload = {
            "event": "reservation.created" if notice.created else "reservation.updated",
            **asdict(notice),
        }

        try:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Webhook notification failed for {notice.reservation_id}: {e}")
            return

        logger.debug(f"Webhook notified for reservation {notice.reservation_id}")


def build_notifiers() -> list[ReservationNotifier]:
    """Notifiers enabled by the current settings."""
    notifiers: list[ReservationNotifier] = [LoggingNotifier()]
    if settings.notification_webhook_url:
        notifiers.append(WebhookNotifier(settings.notification_webhook_url))
    return notifiers
