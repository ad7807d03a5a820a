"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from accounting_assistant.server import app

VERIFY_TOKEN = "test-verify-token"


@pytest.fixture
def mock_agent():
    agent = MagicMock()
    agent.process_message.return_value = "📊 *İşletme Özeti*"
    agent.clear_session.return_value = True
    return agent


@pytest.fixture
def mock_gateway():
    gateway = MagicMock()
    gateway.handle_payload.return_value = True
    return gateway


@pytest.fixture
def client(mock_agent, mock_gateway):
    """Test client with mocks attached to app state (mirrors the lifespan)."""
    app.state.agent = mock_agent
    app.state.gateway = mock_gateway
    yield TestClient(app)
    app.state.agent = None
    app.state.gateway = None


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "whatsapp-accounting-assistant"}

    def test_root(self, client):
        assert client.get("/").json()["webhook"] == "/webhook"


class TestWebhookVerification:
    def test_echoes_challenge_on_match(self, client):
        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": VERIFY_TOKEN, "hub.challenge": "1158201444"},
        )
        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token_is_forbidden(self, client):
        response = client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1158201444"},
        )
        assert response.status_code == 403
        assert "1158201444" not in response.text

    def test_missing_params_are_forbidden(self, client):
        assert client.get("/webhook").status_code == 403


class TestWebhookDelivery:
    def test_processed_delivery(self, client, mock_gateway):
        payload = {"object": "whatsapp_business_account", "entry": []}
        response = client.post("/webhook", json=payload)
        assert response.status_code == 200
        mock_gateway.handle_payload.assert_called_once_with(payload)

    def test_unrecognised_envelope_is_404(self, client, mock_gateway):
        mock_gateway.handle_payload.return_value = False
        assert client.post("/webhook", json={"object": "page"}).status_code == 404

    def test_non_json_body_is_404(self, client, mock_gateway):
        response = client.post("/webhook", content=b"not json", headers={"Content-Type": "text/plain"})
        assert response.status_code == 404
        mock_gateway.handle_payload.assert_not_called()

    def test_processing_error_is_500_without_detail(self, client, mock_gateway):
        mock_gateway.handle_payload.side_effect = RuntimeError("secret internals")
        response = client.post("/webhook", json={"object": "whatsapp_business_account"})
        assert response.status_code == 500
        assert "secret" not in response.text

    def test_not_ready_is_503(self, client):
        app.state.gateway = None
        assert client.post("/webhook", json={}).status_code == 503


class TestChatEndpoint:
    def test_chat_returns_reply(self, client, mock_agent):
        response = client.post("/chat", json={"message": "Özet ver", "sender": "905551112233"})
        assert response.status_code == 200
        assert response.json() == {"reply": "📊 *İşletme Özeti*", "sender": "905551112233"}
        mock_agent.process_message.assert_called_once_with("905551112233", "Özet ver")

    def test_chat_validates_empty_message(self, client):
        response = client.post("/chat", json={"message": "", "sender": "905551112233"})
        assert response.status_code == 422

    def test_chat_validates_missing_sender(self, client):
        assert client.post("/chat", json={"message": "Merhaba"}).status_code == 422

    def test_chat_handles_agent_error(self, client, mock_agent):
        mock_agent.process_message.side_effect = RuntimeError("LLM exploded")
        response = client.post("/chat", json={"message": "Merhaba", "sender": "905551112233"})
        assert response.status_code == 500
        assert "exploded" not in response.text


class TestSessions:
    def test_clear_session(self, client, mock_agent):
        response = client.delete("/sessions/905551112233")
        assert response.status_code == 200
        assert response.json() == {"sender": "905551112233", "cleared": True}
        mock_agent.clear_session.assert_called_once_with("905551112233")


class TestRequestId:
    def test_generated_when_absent(self, client):
        assert client.get("/health").headers["X-Request-ID"]

    def test_echoed_when_supplied(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"
