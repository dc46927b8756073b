"""
WebSocket subscription and health endpoint tests.
"""

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from gorillionaire.main import app as fastapi_app
from gorillionaire.services.realtime import ws_hub


@pytest.fixture
def ws_client():
    # Lifespan only runs when the client is used as a context manager
    return TestClient(fastapi_app)


class TestTokenSubscription:

    @pytest.mark.api
    def test_ack_then_ping_pong(self, ws_client):
        with ws_client.websocket_connect("/events/token/Chog") as ws:
            ack = ws.receive_json()
            assert ack["type"] == "CONNECTION_ESTABLISHED"
            assert ack["message"] == "Subscribed to Chog events"
            assert "timestamp" in ack

            ws.send_json({"type": "PING"})
            assert ws.receive_json()["type"] == "PONG"

    @pytest.mark.api
    def test_disconnect_unsubscribes(self, ws_client):
        with ws_client.websocket_connect("/events/token/Moyaki") as ws:
            ws.receive_json()
            ws.send_json({"type": "PING"})
            ws.receive_json()
            assert "Moyaki" in ws_hub.token_subscribers
        assert "Moyaki" not in ws_hub.token_subscribers

    @pytest.mark.api
    def test_non_json_message_ignored(self, ws_client):
        with ws_client.websocket_connect("/events/token/Chog") as ws:
            ws.receive_json()
            ws.send_text("hello")
            ws.send_json({"type": "PING"})
            assert ws.receive_json()["type"] == "PONG"


class TestNotificationSubscription:

    @pytest.mark.api
    def test_ack(self, ws_client):
        with ws_client.websocket_connect("/events/notifications") as ws:
            ack = ws.receive_json()
            assert ack == {
                "type": "CONNECTION_ESTABLISHED",
                "message": "Subscribed to notifications",
                "timestamp": ack["timestamp"],
            }


class TestInvalidPath:

    @pytest.mark.api
    def test_error_then_policy_close(self, ws_client):
        with ws_client.websocket_connect("/events/unknown/path") as ws:
            message = ws.receive_json()
            assert message["type"] == "ERROR"
            assert message["message"] == "Invalid subscription path"
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
            assert exc.value.code == 1008


class TestHealth:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_health_without_backends(self, client, no_db):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["database"] is False
        assert data["redis"] is False
        assert isinstance(data["jobs"], list)
