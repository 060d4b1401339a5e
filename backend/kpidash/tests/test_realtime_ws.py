"""Tests for the /realtime websocket.

REFERENCES:
  - kpidash/routers/realtime.py
"""

import pytest
from starlette.websockets import WebSocketDisconnect


class TestRealtimeWebSocket:

    def test_rejects_anonymous_connection(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/realtime"):
                pass
        assert exc.value.code == 4001

    def test_rejects_invalid_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/realtime?token=garbage"):
                pass
        assert exc.value.code == 4001

    def test_cookie_connection_and_ping(self, auth_client):
        with auth_client.websocket_connect("/realtime") as ws:
            assert ws.receive_json()["type"] == "connected"

            ws.send_json({"type": "ping"})

            assert ws.receive_json()["type"] == "pong"

    def test_query_token_connection(self, auth_client, client):
        token = auth_client.cookies["access_token"].strip('"')[len("Bearer "):]

        with client.websocket_connect(f"/realtime?token={token}") as ws:
            assert ws.receive_json()["type"] == "connected"

    def test_kpi_changes_are_pushed(self, auth_client, kpi_form):
        with auth_client.websocket_connect("/realtime") as ws:
            ws.receive_json()

            created = auth_client.post("/kpis", json=kpi_form)
            assert created.status_code == 201

            message = ws.receive_json()

        assert message["type"] == "change"
        assert message["table"] == "kpi_data"
        assert message["event_type"] == "INSERT"
        assert message["new"]["id"] == created.json()["id"]
        assert message["new"]["metric_name"] == "Monthly Revenue"

    def test_integration_keys_are_masked(self, auth_client):
        with auth_client.websocket_connect("/realtime") as ws:
            ws.receive_json()

            auth_client.post("/integrations", json={"platform": "shopify", "store_name": "Store", "api_key": "secret"})

            message = ws.receive_json()

        assert message["table"] == "integrations"
        assert "api_key" not in message["new"]
        assert message["new"]["has_api_key"] is True

    def test_disconnect_closes_channels(self, auth_client, feed):
        with auth_client.websocket_connect("/realtime") as ws:
            ws.receive_json()
            assert len(feed.open_channels) == 3

        assert feed.open_channels == []
