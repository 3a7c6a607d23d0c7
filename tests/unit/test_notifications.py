"""Tests for commit notifiers."""

import json
import logging

import httpx
import pytest
from unittest.mock import patch

from app.core.reservations.ports import CommitNotice
from app.infra.notifications import LoggingNotifier, WebhookNotifier, build_notifiers


@pytest.fixture
def notice():
    return CommitNotice(
        reservation_id="res-1",
        property_id="prop-1",
        session_id="chat-1",
        created=True,
        owner_id="user-1",
    )


def client_with(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestWebhookNotifier:
    """Test WebhookNotifier."""

    @pytest.mark.asyncio
    async def test_posts_notice(self, notice):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(202)

        notifier = WebhookNotifier("https://hooks.example.com/res", client=client_with(handler))
        await notifier.notify(notice)
        await notifier.close()

        assert len(received) == 1
        assert received[0].method == "POST"
        body = json.loads(received[0].content)
        assert body["event"] == "reservation.created"
        assert body["reservation_id"] == "res-1"
        assert body["owner_id"] == "user-1"

    @pytest.mark.asyncio
    async def test_update_event(self, notice):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200)

        notifier = WebhookNotifier("https://hooks.example.com/res", client=client_with(handler))
        await notifier.notify(
            CommitNotice(
                reservation_id="res-1",
                property_id="prop-1",
                session_id="chat-1",
                created=False,
            )
        )

        assert bodies[0]["event"] == "reservation.updated"

    @pytest.mark.asyncio
    async def test_error_status_logged(self, notice, caplog):
        notifier = WebhookNotifier(
            "https://hooks.example.com/res",
            client=client_with(lambda request: httpx.Response(500)),
        )

        with caplog.at_level(logging.ERROR):
            await notifier.notify(notice)

        assert "Webhook notification failed for res-1" in caplog.text

    @pytest.mark.asyncio
    async def test_connection_error_logged(self, notice, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        notifier = WebhookNotifier("https://hooks.example.com/res", client=client_with(handler))

        with caplog.at_level(logging.ERROR):
            await notifier.notify(notice)

        assert "Webhook notification failed" in caplog.text

    def test_default_timeout(self):
        with patch("app.infra.notifications.settings") as mock_settings:
            mock_settings.notification_timeout = 2.5
            notifier = WebhookNotifier("https://hooks.example.com/res")

        assert notifier.timeout == 2.5


class TestLoggingNotifier:
    """Test LoggingNotifier."""

    @pytest.mark.asyncio
    async def test_logs_commit(self, notice, caplog):
        with caplog.at_level(logging.INFO, logger="app.infra.notifications"):
            await LoggingNotifier().notify(notice)

        assert "Reservation res-1 created" in caplog.text


class TestBuildNotifiers:
    """Test build_notifiers."""

    def test_without_webhook(self):
        with patch("app.infra.notifications.settings") as mock_settings:
            mock_settings.notification_webhook_url = None
            notifiers = build_notifiers()

        assert [type(n) for n in notifiers] == [LoggingNotifier]

    def test_with_webhook(self):
        with patch("app.infra.notifications.settings") as mock_settings:
            mock_settings.notification_webhook_url = "https://hooks.example.com/res"
            mock_settings.notification_timeout = 5.0
            notifiers = build_notifiers()

        assert isinstance(notifiers[1], WebhookNotifier)
        assert notifiers[1].url == "https://hooks.example.com/res"
