"""Tests for the remote backends and their error translation."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest

from dayplanner.errors import BackendTimeout, BackendUnreachable
from dayplanner.intelligence.backend import AnthropicBackend, LocalBackend, create_backend

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


def _request() -> httpx.Request:
    return httpx.Request("POST", ANTHROPIC_URL)


def _client_returning(*blocks) -> MagicMock:
    client = MagicMock()
    client.messages.create.return_value = SimpleNamespace(content=list(blocks))
    return client


def _client_raising(error: Exception) -> MagicMock:
    client = MagicMock()
    client.messages.create.side_effect = error
    return client


class TestAnthropicBackend:
    """Test AnthropicBackend."""

    def test_joins_text_blocks(self):
        """Only text blocks make it into the reply."""
        client = _client_returning(
            SimpleNamespace(type="text", text=" Booked "),
            SimpleNamespace(type="tool_use", text="ignored"),
            SimpleNamespace(type="text", text="it. "),
        )
        backend = AnthropicBackend(api_key="test-key", model="test-model", client=client)
        assert backend.complete("prompt") == "Booked it."

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    def test_missing_key_is_unreachable(self):
        """No API key means no client and an unreachable backend."""
        backend = AnthropicBackend()
        with pytest.raises(BackendUnreachable):
            backend.complete("prompt")
        assert backend.ping() is False

    def test_timeout(self):
        backend = AnthropicBackend(api_key="k", client=_client_raising(anthropic.APITimeoutError(request=_request())))
        with pytest.raises(BackendTimeout):
            backend.complete("prompt")

    def test_connection_error(self):
        error = anthropic.APIConnectionError(message="refused", request=_request())
        backend = AnthropicBackend(api_key="k", client=_client_raising(error))
        with pytest.raises(BackendUnreachable):
            backend.complete("prompt")

    def test_status_error(self):
        response = httpx.Response(529, request=_request())
        error = anthropic.APIStatusError("overloaded", response=response, body=None)
        backend = AnthropicBackend(api_key="k", client=_client_raising(error))
        with pytest.raises(BackendUnreachable, match="529"):
            backend.complete("prompt")

    def test_ping_with_client(self):
        backend = AnthropicBackend(api_key="k", client=MagicMock())
        assert backend.ping() is True


def _local(handler) -> LocalBackend:
    return LocalBackend(
        base_url="http://localhost:1234/",
        model="local-model",
        timeout=2,
        transport=httpx.MockTransport(handler),
    )


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestLocalBackend:
    """Test LocalBackend against a mocked OpenAI-compatible server."""

    def test_complete(self):
        """Posts a chat completion and returns the stripped content."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion("  hello  "))

        assert _local(handler).complete("plan my day") == "hello"
        assert seen["path"] == "/v1/chat/completions"
        assert seen["body"]["model"] == "local-model"
        assert seen["body"]["stream"] is False
        assert seen["body"]["messages"][-1] == {"role": "user", "content": "plan my day"}

    def test_server_error(self):
        backend = _local(lambda request: httpx.Response(500, text="model not loaded"))
        with pytest.raises(BackendUnreachable, match="HTTP 500"):
            backend.complete("x")

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow model", request=request)

        with pytest.raises(BackendTimeout):
            _local(handler).complete("x")

    def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(BackendUnreachable):
            _local(handler).complete("x")

    def test_unexpected_payload(self):
        backend = _local(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(BackendUnreachable):
            backend.complete("x")

    def test_null_content_is_empty_reply(self):
        backend = _local(lambda request: httpx.Response(200, json=_completion(None)))
        assert backend.complete("x") == ""

    def test_ping(self):
        assert _local(lambda request: httpx.Response(200, json={"data": []})).ping() is True
        assert _local(lambda request: httpx.Response(404)).ping() is False

    def test_ping_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert _local(handler).ping() is False


class TestCreateBackend:
    def test_providers(self):
        assert isinstance(create_backend("anthropic"), AnthropicBackend)
        local = create_backend("LOCAL")
        assert isinstance(local, LocalBackend)
        local.close()

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_backend("carrier-pigeon")
