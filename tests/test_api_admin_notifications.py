import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from masjid_dashboard.dependencies import websocket_admin
from masjid_dashboard.main import app
from masjid_dashboard.services.admin_notifier import AdminNotificationService
from masjid_dashboard.services.connections import AdminConnectionManager
from conftest import FakeChannel, TEST_ADMIN, static_admins


class TestNotificationEndpoints:
    @pytest.mark.asyncio
    async def test_requires_admin(self, anonymous_client):
        response = await anonymous_client.get("/api/admin-notifications/stats")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_stats(self, client, notification_service):
        notification_service.add_subscriber(TEST_ADMIN.username, FakeChannel())
        response = await client.get("/api/admin-notifications/stats")
        assert response.json() == {
            "success": True,
            "data": {
                "activeSubscribers": 1,
                "queueLength": 0,
                "isProcessing": False,
                "totalNotifications": 0,
            },
        }

    @pytest.mark.asyncio
    async def test_send_critical_notification(self, client, notification_service):
        channel = FakeChannel()
        notification_service.add_subscriber(TEST_ADMIN.username, channel)

        response = await client.post(
            "/api/admin-notifications/test", json={"action": "USER_DELETE"}
        )
        body = response.json()
        assert body["queued"] is True
        assert body["classification"] == {
            "important": True,
            "priority": "CRITICAL",
            "level": "HIGH",
        }
        assert body["message"] == f"🗑️ User account deleted by {TEST_ADMIN.username}"

        await notification_service.join()
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_send_unimportant_notification(self, client):
        response = await client.post("/api/admin-notifications/test", json={"action": "LOGIN"})
        body = response.json()
        assert body["queued"] is False
        assert body["message"] is None
        assert body["classification"]["important"] is False

    @pytest.mark.asyncio
    async def test_send_with_severity(self, client):
        response = await client.post(
            "/api/admin-notifications/test",
            json={"action": "GENERATOR_FAILURE", "severity": "critical"},
        )
        body = response.json()
        assert body["queued"] is True
        assert body["classification"]["priority"] == "SEVERITY_BASED"

    @pytest.mark.asyncio
    async def test_missing_action_is_rejected(self, client):
        response = await client.post("/api/admin-notifications/test", json={})
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_history_newest_first(self, client, notification_service):
        notification_service.add_subscriber(TEST_ADMIN.username, FakeChannel())
        for action in ("HOUSE_CREATE", "HOUSE_UPDATE"):
            await client.post("/api/admin-notifications/test", json={"action": action})
        await notification_service.join()

        response = await client.get("/api/admin-notifications/history")
        history = response.json()["data"]
        assert [item["action"] for item in history] == ["HOUSE_UPDATE", "HOUSE_CREATE"]
        assert history[0]["recipients"] == [TEST_ADMIN.username]


@pytest.fixture
def ws_app():
    service = AdminNotificationService(static_admins(TEST_ADMIN.username), dispatch_delay=0)
    connections = AdminConnectionManager(service)
    app.state.notification_service = service
    app.state.admin_connections = connections
    yield app, service, connections
    app.dependency_overrides.clear()


class TestAdminSocket:
    def test_rejects_non_admin(self, ws_app):
        app, _, _ = ws_app
        client = TestClient(app)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/admin-notifications") as ws:
                ws.receive_json()
        assert exc_info.value.code == 1008

    def test_connect_ping_and_stats(self, ws_app):
        app, service, _ = ws_app
        app.dependency_overrides[websocket_admin] = lambda: TEST_ADMIN
        client = TestClient(app)

        with client.websocket_connect("/ws/admin-notifications") as ws:
            established = ws.receive_json()
            assert established["type"] == "CONNECTION_ESTABLISHED"
            assert established["data"]["userId"] == TEST_ADMIN.username
            assert service.has_subscriber(TEST_ADMIN.username)

            ws.send_json({"type": "PING"})
            assert ws.receive_json()["type"] == "PONG"

            ws.send_json({"type": "GET_STATS"})
            stats = ws.receive_json()
            assert stats["type"] == "STATS"
            assert stats["data"]["activeSubscribers"] == 1

            ws.send_json({"type": "CLEAR_NOTIFICATIONS"})
            assert ws.receive_json()["type"] == "NOTIFICATIONS_CLEARED"
