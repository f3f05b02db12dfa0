"""Tests for Gemini client error classification and translation."""

import logging
from unittest.mock import MagicMock, patch

import httpx
import pytest

from app.core.exceptions import TransientProviderError, UpstreamServiceError
from app.services.vertex_gemini import (
    GeminiClient,
    GeminiContentFilterError,
    GeminiError,
    GeminiTransientError,
)


class _CodedError(Exception):
    def __init__(self, code, message="provider error"):
        super().__init__(message)
        self.code = code


def _text_response(text: str, finish_reason: str = "STOP"):
    part = MagicMock()
    part.text = text
    candidate = MagicMock()
    candidate.finish_reason = finish_reason
    candidate.content.parts = [part]
    candidate.safety_ratings = []
    response = MagicMock()
    response.candidates = [candidate]
    response.response_id = "resp-1"
    response.usage_metadata = None
    return response


@pytest.fixture
def client():
    """Create a GeminiClient with mocked genai."""
    with patch("app.services.vertex_gemini.genai"):
        yield GeminiClient(project=None, location=None, api_key="test-key", text_model="test-model")


class TestGeminiClientConstruction:
    def test_requires_credentials(self):
        with patch("app.services.vertex_gemini.genai"):
            with pytest.raises(RuntimeError):
                GeminiClient(project=None, location=None, api_key=None, text_model="m")

    def test_prefers_vertex_when_project_is_set(self):
        with patch("app.services.vertex_gemini.genai") as genai:
            GeminiClient(project="proj", location="us-central1", api_key="key", text_model="m")
        kwargs = genai.Client.call_args.kwargs
        assert kwargs["vertexai"] is True
        assert kwargs["project"] == "proj"


class TestGeminiClientErrorClassification:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("RESOURCE_EXHAUSTED: quota exceeded", ("rate_limit", True)),
            ("429 Too Many Requests", ("rate_limit", True)),
            ("Content blocked by SAFETY filter", ("content_filter", False)),
            ("Request timeout after 60s", ("timeout", True)),
            ("503 Service Unavailable", ("model_unavailable", True)),
            ("400 Invalid request: malformed prompt", ("invalid_request", False)),
            ("something nobody expected", ("unknown", False)),
        ],
    )
    def test_classifies_by_message(self, client, message, expected):
        assert client._classify_error(Exception(message), message) == expected

    @pytest.mark.parametrize(
        "code, expected",
        [
            (429, ("rate_limit", True)),
            (408, ("timeout", True)),
            (500, ("model_unavailable", True)),
            (503, ("model_unavailable", True)),
            (403, ("invalid_request", False)),
        ],
    )
    def test_status_code_wins_over_message(self, client, code, expected):
        exc = _CodedError(code, "invalid timeout 400")
        assert client._classify_error(exc, str(exc)) == expected


class TestGenerateText:
    def test_returns_text(self, client, caplog):
        client._client.models.generate_content.return_value = _text_response('{"ok": true}')
        with caplog.at_level(logging.INFO, logger="app.services.vertex_gemini"):
            assert client.generate_text("prompt", json_response=True) == '{"ok": true}'
        assert "request_id=resp-1" in caplog.text
        assert not hasattr(client, "last_request_id")

        config = client._client.models.generate_content.call_args.kwargs["config"]
        assert config.response_mime_type == "application/json"

    def test_rate_limit_becomes_transient(self, client):
        client._client.models.generate_content.side_effect = _CodedError(429)
        with pytest.raises(GeminiTransientError) as exc_info:
            client.generate_text("prompt")
        assert exc_info.value.error_type == "rate_limit"
        assert isinstance(exc_info.value, TransientProviderError)

    def test_bad_request_is_not_transient(self, client):
        client._client.models.generate_content.side_effect = _CodedError(400)
        with pytest.raises(GeminiError) as exc_info:
            client.generate_text("prompt")
        assert not isinstance(exc_info.value, TransientProviderError)
        assert exc_info.value.provider == "gemini"

    def test_unclassified_error_is_not_transient(self, client):
        client._client.models.generate_content.side_effect = ValueError("unexpected schema field")
        with pytest.raises(GeminiError) as exc_info:
            client.generate_text("prompt")
        assert not isinstance(exc_info.value, TransientProviderError)

    def test_connection_failure_is_transient(self, client):
        request = httpx.Request("POST", "https://generativelanguage.googleapis.com")
        client._client.models.generate_content.side_effect = httpx.ConnectError("refused", request=request)
        with pytest.raises(GeminiTransientError) as exc_info:
            client.generate_text("prompt")
        assert exc_info.value.error_type == "connection"

    def test_safety_finish_reason_is_content_filter(self, client):
        client._client.models.generate_content.return_value = _text_response("", finish_reason="SAFETY")
        with pytest.raises(GeminiContentFilterError):
            client.generate_text("prompt")

    def test_empty_reply_is_an_error(self, client):
        client._client.models.generate_content.return_value = _text_response("")
        with pytest.raises(GeminiError, match="no textual content"):
            client.generate_text("prompt")


class TestGeminiExceptionTypes:
    def test_gemini_error_has_request_id(self):
        exc = GeminiError("Test error", request_id="req-123", model="test-model")
        assert exc.request_id == "req-123"
        assert exc.model == "test-model"
        assert isinstance(exc, UpstreamServiceError)

    def test_content_filter_error_has_categories(self):
        exc = GeminiContentFilterError("Content blocked", blocked_categories=["HARM_CATEGORY_HARASSMENT"])
        assert exc.blocked_categories == ["HARM_CATEGORY_HARASSMENT"]
