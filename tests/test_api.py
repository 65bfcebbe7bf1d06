"""
Endpoint tests for the chat proxy API.
"""

from unittest.mock import patch

import openai
import pytest
from fastapi.testclient import TestClient

from app.config import get_config
from app.demo import get_demo_responder
from app.llm_service import get_llm_service
from app.rate_limiter import RATE_LIMIT_MESSAGE
from helpers import VALID_KEY, make_completion, make_connection_error, make_status_error, with_overrides


class TestHealth:

    def test_root(self, client):
        res = client.get("/")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"

    def test_unknown_route(self, client):
        res = client.get("/api/nonexistent")
        assert res.status_code == 404
        assert res.json() == {"error": "Not found"}

    def test_security_headers(self, client):
        res = client.get("/api/models")
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Frame-Options"] == "SAMEORIGIN"


class TestChatDemoMode:
    """POST /api/chat with demoMode."""

    def test_demo_response(self, client, settings):
        with patch("app.llm_service.OpenAI") as mock_openai:
            res = client.post("/api/chat", json={"message": "Hello", "model": "gpt-3.5-turbo", "demoMode": True})

        assert res.status_code == 200
        data = res.json()
        assert "gpt-3.5-turbo" in data["content"]
        assert "Demo Mode" in data["content"]
        usage = data["usage"]
        assert usage["totalTokens"] == usage["promptTokens"] + usage["completionTokens"]
        assert usage["cost"] >= 0
        mock_openai.assert_not_called()

    def test_demo_content_identical_across_messages(self, client):
        first = client.post("/api/chat", json={"message": "Hello", "model": "gpt-4", "demoMode": True})
        second = client.post("/api/chat", json={"message": "fix my code", "model": "gpt-4", "demoMode": True})
        assert first.json()["content"] == second.json()["content"]

    def test_demo_failure(self, client):
        class BrokenResponder:
            async def respond(self, message, model):
                raise RuntimeError("demo responder unavailable")

        client.app.dependency_overrides[get_demo_responder] = lambda: BrokenResponder()
        res = client.post("/api/chat", json={"message": "Hello", "model": "gpt-4", "demoMode": True})

        assert res.status_code == 500
        data = res.json()
        assert data["error"] == "Failed to process chat message"
        assert data["details"] == "demo responder unavailable"
        assert "usage" not in data
        assert "content" not in data

    def test_empty_message(self, client):
        res = client.post("/api/chat", json={"message": "", "model": "gpt-3.5-turbo", "demoMode": True})
        assert res.status_code == 400
        assert "Message is required" in res.json()["error"]


class TestChatValidation:
    """Invalid bodies are rejected before any upstream call."""

    @pytest.mark.parametrize("body", [
        {},
        {"message": ""},
        {"message": "Hello"},
        {"message": "Hello", "model": "invalid-model"},
        {"message": "Hello", "model": "gpt-3.5-turbo"},
        {"message": "Hello", "model": "invalid-model", "apiKey": VALID_KEY},
        {"message": "a" * 4001, "model": "gpt-4", "apiKey": VALID_KEY},
        {"message": "Hello", "model": "gpt-4", "apiKey": "not-a-key"},
    ])
    def test_rejected_without_upstream_call(self, client, body):
        with patch("app.llm_service.OpenAI") as mock_openai:
            res = client.post("/api/chat", json=body)

        assert res.status_code == 400
        assert "error" in res.json()
        mock_openai.assert_not_called()

    def test_missing_credential(self, client):
        res = client.post("/api/chat", json={"message": "Hi", "model": "gpt-3.5-turbo", "demoMode": False})
        assert res.status_code == 400
        assert "API key" in res.json()["error"]

    def test_invalid_json(self, client):
        res = client.post("/api/chat", content="not json", headers={"Content-Type": "application/json"})
        assert res.status_code == 400
        assert res.json() == {"error": "Request body must be valid JSON"}

    def test_body_too_large(self, client, settings):
        limit = settings.server.max_body_bytes
        res = client.post(
            "/api/chat",
            content=b"x" * (limit + 1),
            headers={"Content-Type": "application/json"}
        )
        assert res.status_code == 413
        assert res.json()["error"] == "Request body too large"

    def test_chunked_body_too_large(self, client, settings):
        limit = settings.server.max_body_bytes

        def body():
            for _ in range(limit // 1024 + 1):
                yield b"x" * 1024

        with patch("app.llm_service.OpenAI") as mock_openai:
            res = client.post("/api/chat", content=body(), headers={"Content-Type": "application/json"})

        assert res.status_code == 413
        assert res.json()["error"] == "Request body too large"
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        mock_openai.assert_not_called()

    def test_chunked_body_within_limit(self, client):
        def body():
            yield b'{"message": "Hello", '
            yield b'"model": "gpt-4", "demoMode": true}'

        res = client.post("/api/chat", content=body(), headers={"Content-Type": "application/json"})
        assert res.status_code == 200
        assert "gpt-4" in res.json()["content"]

    def test_chunked_validate_key_body_too_large(self, client, settings):
        def body():
            yield b"x" * (settings.server.max_body_bytes + 1)

        res = client.post("/api/validate-key", content=body(), headers={"Content-Type": "application/json"})
        assert res.status_code == 413


class TestChatUpstream:
    """POST /api/chat forwarding to OpenAI."""

    def test_success(self, client, settings):
        with patch("app.llm_service.OpenAI") as mock_openai:
            mock_openai.return_value.chat.completions.create.return_value = make_completion()
            res = client.post("/api/chat", json={"message": "Hello", "model": "gpt-4", "apiKey": VALID_KEY})

        assert res.status_code == 200
        assert res.json() == {
            "content": "This is a test response",
            "usage": {
                "promptTokens": 10,
                "completionTokens": 20,
                "totalTokens": 30,
                "cost": 10 / 1000 * 0.03 + 20 / 1000 * 0.06
            }
        }
        mock_openai.assert_called_once()
        assert mock_openai.call_args.kwargs["api_key"] == VALID_KEY

    def test_sanitized_message_forwarded(self, client):
        with patch("app.llm_service.OpenAI") as mock_openai:
            create = mock_openai.return_value.chat.completions.create
            create.return_value = make_completion()
            client.post("/api/chat", json={"message": " <b>hi</b> ", "model": "gpt-4", "apiKey": VALID_KEY})

        assert create.call_args.kwargs["messages"] == [{"role": "user", "content": "&lt;b&gt;hi&lt;/b&gt;"}]

    def test_upstream_error(self, client):
        with patch("app.llm_service.OpenAI") as mock_openai:
            mock_openai.return_value.chat.completions.create.side_effect = make_status_error(
                openai.AuthenticationError, 401, "Incorrect API key provided"
            )
            res = client.post("/api/chat", json={"message": "Hello", "model": "gpt-4", "apiKey": VALID_KEY})

        assert res.status_code == 500
        data = res.json()
        assert data["error"] == "Failed to process chat message"
        assert data["details"] == "Incorrect API key provided"
        assert "usage" not in data

    def test_details_hidden_in_production(self, client, settings):
        production = settings.model_copy(update={"environment": "production"})
        client.app.dependency_overrides[get_config] = lambda: production
        with patch("app.llm_service.OpenAI") as mock_openai:
            mock_openai.return_value.chat.completions.create.side_effect = make_connection_error()
            res = client.post("/api/chat", json={"message": "Hello", "model": "gpt-4", "apiKey": VALID_KEY})

        assert res.status_code == 500
        assert res.json() == {"error": "Failed to process chat message"}


class TestValidateKey:
    """POST /api/validate-key."""

    def test_valid_key(self, client):
        with patch("app.llm_service.OpenAI"):
            res = client.post("/api/validate-key", json={"apiKey": VALID_KEY})

        assert res.status_code == 200
        assert res.json() == {"valid": True, "status": "valid"}

    def test_rejected_key(self, client):
        with patch("app.llm_service.OpenAI") as mock_openai:
            mock_openai.return_value.models.list.side_effect = make_status_error(
                openai.AuthenticationError, 401, "Incorrect API key provided"
            )
            res = client.post("/api/validate-key", json={"apiKey": VALID_KEY})

        assert res.status_code == 200
        assert res.json() == {"valid": False, "status": "invalid"}

    def test_check_failure(self, client):
        with patch("app.llm_service.OpenAI") as mock_openai:
            mock_openai.return_value.models.list.side_effect = make_connection_error()
            res = client.post("/api/validate-key", json={"apiKey": VALID_KEY})

        assert res.status_code == 500
        assert res.json()["error"] == "Failed to validate API key"

    def test_malformed_key(self, client):
        with patch("app.llm_service.OpenAI") as mock_openai:
            res = client.post("/api/validate-key", json={"apiKey": "not-a-key"})

        assert res.status_code == 400
        assert res.json() == {"error": "Invalid API key format"}
        mock_openai.assert_not_called()


class TestModels:
    """GET /api/models."""

    def test_model_list(self, client):
        res = client.get("/api/models")
        assert res.status_code == 200
        assert res.json() == {
            "models": [
                {"id": "gpt-3.5-turbo", "name": "GPT-3.5 Turbo"},
                {"id": "gpt-4", "name": "GPT-4"}
            ]
        }

    def test_identical_after_other_requests(self, client):
        before = client.get("/api/models").json()
        client.post("/api/chat", json={"message": "Hello", "model": "gpt-4", "demoMode": True})
        client.post("/api/chat", json={})
        assert client.get("/api/models").json() == before


class TestRateLimit:
    """Per-IP request ceiling."""

    @pytest.fixture
    def settings(self, settings):
        return with_overrides(settings, rate_limit={"max_requests": 2})

    def test_third_request_rejected(self, client):
        assert client.get("/api/models").status_code == 200
        second = client.get("/api/models")
        assert second.headers["X-RateLimit-Remaining"] == "0"

        res = client.get("/api/models")
        assert res.status_code == 429
        assert res.json() == {"error": RATE_LIMIT_MESSAGE}

    def test_health_not_limited(self, client):
        for _ in range(3):
            assert client.get("/").status_code == 200


class TestUnhandledErrors:
    """Exceptions outside the route handlers reach the general handler."""

    def _broken_service(self):
        raise RuntimeError("service construction failed")

    def test_generic_500_with_security_headers(self, client):
        client.app.dependency_overrides[get_llm_service] = self._broken_service
        with TestClient(client.app, raise_server_exceptions=False) as raw_client:
            res = raw_client.post("/api/validate-key", json={"apiKey": VALID_KEY})

        assert res.status_code == 500
        assert res.json() == {"error": "Internal server error", "details": "service construction failed"}
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert res.headers["Referrer-Policy"] == "no-referrer"

    def test_generic_500_in_production(self, client, settings):
        production = settings.model_copy(update={"environment": "production"})
        client.app.dependency_overrides[get_config] = lambda: production
        client.app.dependency_overrides[get_llm_service] = self._broken_service
        with TestClient(client.app, raise_server_exceptions=False) as raw_client:
            res = raw_client.post("/api/validate-key", json={"apiKey": VALID_KEY})

        assert res.status_code == 500
        assert res.json() == {"error": "An unexpected error occurred"}
