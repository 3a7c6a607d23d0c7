"""Tests for the HTTP API (wizard and health routes)."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient

from app.api.routes import health
from app.api.routes.wizard import get_engine
from app.core.reservations.engine import ReservationEngine
from app.core.reservations.errors import StorageError
from app.main import app


@pytest.fixture
def api_engine(store, flow):
    return ReservationEngine(store=store, flow=flow, notifiers=[])


@pytest.fixture
def client(api_engine):
    app.dependency_overrides[get_engine] = lambda: api_engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def post(client, **body):
    body.setdefault("session_id", "chat-1")
    return client.post("/wizard/events", json=body)


class TestWizardEvents:
    """Test POST /wizard/events."""

    def test_start(self, client):
        response = post(client, type="start", property_id="prop-1", owner_id="user-1")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Enter guest name:"
        assert data["step"] == "guestName"
        assert data["success"] is True

    def test_booking_through_api(self, client):
        post(client, type="start", property_id="prop-1")
        post(client, type="text", text="Alice Smith")
        for payload in (
            "checkin:select:2025-06-01",
            "checkout:select:2025-06-03",
            "room:select:101",
            "wiz_adults:2",
            "wiz_children:0",
        ):
            assert post(client, type="callback", callback_data=payload).status_code == 200
        confirm = post(client, type="text", text="12500").json()

        assert confirm["step"] == "confirm"
        done = post(
            client,
            type="callback",
            callback_data=confirm["options"][0][0]["payload"],
        ).json()

        assert done["outcome"] == "committed"
        assert done["reservation_id"]

    def test_last_calendar_day_check_in_is_rejected(self, client):
        post(client, type="start", property_id="prop-1")
        post(client, type="text", text="Alice Smith")

        response = post(client, type="text", text="9999-12-31")

        assert response.status_code == 200
        assert response.json()["step"] == "checkInDate"
        assert response.json()["alert"] is True

    @pytest.mark.parametrize(
        "body",
        [
            {"type": "text"},
            {"type": "callback"},
            {"type": "start"},
            {"type": "modify", "reservation_id": "res-1"},
            {"type": "callback", "callback_data": "launch:rockets"},
        ],
    )
    def test_invalid_event(self, client, body):
        response = post(client, **body)

        assert response.status_code == 400

    def test_validation_error(self, client):
        response = client.post("/wizard/events", json={"session_id": "", "type": "shout"})

        assert response.status_code == 422
        assert response.json()["error"] == "Validation error"

    def test_storage_failure_is_not_http_error(self, client, store):
        store.load = AsyncMock(side_effect=StorageError("down"))

        response = post(client, type="text", text="Alice")

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"] == "storage_unavailable"


class TestWizardSessions:
    """Test the session endpoints."""

    def test_get_session(self, client):
        post(client, type="start", property_id="prop-1", owner_id="user-1")
        post(client, type="text", text="Alice Smith", owner_id="user-1")

        response = client.get("/wizard/sessions/chat-1")

        assert response.status_code == 200
        data = response.json()
        assert data["step"] == "checkInDate"
        assert data["owner_id"] == "user-1"
        assert data["data"]["guest_name"] == "Alice Smith"
        assert data["awaiting_confirmation"] is False
        assert "confirmation_token" not in str(data)

    def test_get_missing_session(self, client):
        assert client.get("/wizard/sessions/nobody").status_code == 404

    def test_get_session_store_down(self, client, store):
        store.load = AsyncMock(side_effect=StorageError("down"))

        assert client.get("/wizard/sessions/chat-1").status_code == 503

    def test_cancel(self, client):
        post(client, type="start", property_id="prop-1")

        assert client.delete("/wizard/sessions/chat-1").status_code == 204
        assert client.get("/wizard/sessions/chat-1").status_code == 404

    def test_cancel_store_down(self, client, store):
        store.delete = AsyncMock(side_effect=StorageError("down"))

        assert client.delete("/wizard/sessions/chat-1").status_code == 503


@pytest.fixture
def healthy_engine():
    engine = MagicMock()
    engine.consecutive_failures = 0
    engine.failure_threshold = 5
    return engine


class TestHealth:
    """Test health endpoints."""

    def test_health(self):
        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_live(self):
        assert TestClient(app).get("/health/live").json()["status"] == "alive"

    @patch("app.api.routes.health.get_reservation_engine")
    @patch("app.api.routes.health.check_redis_health", new_callable=AsyncMock)
    @patch("app.api.routes.health.check_db_health", new_callable=AsyncMock)
    def test_ready(self, mock_db, mock_redis, mock_engine, healthy_engine):
        mock_db.return_value = True
        mock_redis.return_value = True
        mock_engine.return_value = healthy_engine

        response = TestClient(app).get("/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"] == {
            "database": "ok",
            "redis": "ok",
            "reservation_engine": "ok",
        }

    @patch("app.api.routes.health.get_reservation_engine")
    @patch("app.api.routes.health.check_redis_health", new_callable=AsyncMock)
    @patch("app.api.routes.health.check_db_health", new_callable=AsyncMock)
    def test_not_ready_when_redis_down(self, mock_db, mock_redis, mock_engine, healthy_engine):
        mock_db.return_value = True
        mock_redis.return_value = False
        mock_engine.return_value = healthy_engine

        response = TestClient(app).get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["redis"] == "failed"

    @patch("app.api.routes.health.get_reservation_engine")
    @patch("app.api.routes.health.check_redis_health", new_callable=AsyncMock)
    @patch("app.api.routes.health.check_db_health", new_callable=AsyncMock)
    def test_not_ready_on_failure_streak(self, mock_db, mock_redis, mock_engine, healthy_engine):
        mock_db.return_value = True
        mock_redis.return_value = True
        healthy_engine.consecutive_failures = 7
        mock_engine.return_value = healthy_engine

        response = TestClient(app).get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["reservation_engine"] == "failing (7 errors)"

    @patch("app.api.routes.health.get_reservation_engine")
    @patch("app.api.routes.health.check_redis_health", new_callable=AsyncMock)
    @patch("app.api.routes.health.check_db_health", new_callable=AsyncMock)
    def test_detailed_hides_connection_urls(self, mock_db, mock_redis, mock_engine, healthy_engine):
        mock_db.return_value = True
        mock_redis.return_value = False
        mock_engine.return_value = healthy_engine

        with patch.object(health.settings, "app_env", "development"):
            response = TestClient(app).get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["config"]["notifications"] in ("log", "webhook")
        assert not any("url" in key for key in data["config"])
