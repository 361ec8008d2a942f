"""
OmniAsk - Stream Proxy Tests

End-to-end tests of POST /v1/stream through FastAPI's TestClient with the
upstream provider replaced by httpx.MockTransport.

Verifies:
- Request validation errors answered before streaming starts
- Missing credential -> one error record and zero upstream calls
- Caller key preferred over the shared environment key
- Upstream failures normalized into a single terminal error record
"""

import json
from typing import List

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import sse_body
from omniask.adapters import BaseAdapter, AdapterConfig
from omniask.api.routes.stream import INTERNAL_ERROR_MESSAGE, relay_stream
from omniask.api.routes import stream as stream_routes
from omniask.core.errors import TransportError, UpstreamHTTPError
from omniask.core.models import ChatTurn, Chunk, Provider, Role
from omniask.credentials import InMemoryCredentialStore, LayeredCredentialResolver
from omniask.server import app


CALLER_TOKEN = "caller-session-token"
AUTH = {"Authorization": f"Bearer {CALLER_TOKEN}"}


def records(body: str) -> List[str]:
    """Split an SSE body into its data payloads."""
    payloads = []
    for block in body.split("\n\n"):
        block = block.strip()
        if block.startswith("data: "):
            payloads.append(block[len("data: "):])
    return payloads


def openai_delta(text):
    return {"choices": [{"delta": {"content": text}}]}


@pytest.fixture
def proxy(clean_provider_env, upstream):
    """TestClient with an in-memory store, an empty environment and a fake upstream."""
    clean_provider_env.setenv("MODE", "test")
    environ = {}
    store = InMemoryCredentialStore()
    app.state.credential_resolver = LayeredCredentialResolver(store=store, environ=environ)
    app.state.http_client = upstream.client()

    with TestClient(app) as client:
        yield client, store, environ

    app.state.credential_resolver = None
    app.state.http_client = None


def post_stream(client, **body):
    return client.post("/v1/stream", json=body, headers=AUTH)


# ============================================================
# Validation
# ============================================================

class TestRequestValidation:
    """Failures detected before any byte of the stream is sent."""

    def test_missing_caller_token(self, proxy):
        client, _, _ = proxy
        response = client.post("/v1/stream", json={"provider": "claude", "question": "Hi"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "missing_caller_token"

    @pytest.mark.parametrize("body,field", [
        ({"provider": "claude"}, "question"),
        ({"provider": "claude", "question": "   "}, "question"),
        ({"question": "Hi"}, "provider"),
        ({"provider": "", "question": "Hi"}, "provider"),
    ])
    def test_missing_required_field(self, proxy, body, field):
        client, _, _ = proxy
        response = client.post("/v1/stream", json=body, headers=AUTH)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "missing_required_field"
        assert error["param"] == field

    def test_unknown_provider(self, proxy):
        client, _, _ = proxy
        response = post_stream(client, provider="mistral", question="Hi")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_request"

    def test_malformed_history(self, proxy):
        client, _, _ = proxy
        response = post_stream(
            client,
            provider="claude",
            question="Hi",
            conversationHistory=[{"role": "system", "content": "x"}],
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_request"


# ============================================================
# Credentials
# ============================================================

class TestCredentialResolution:
    """Which key a stream runs with."""

    def test_missing_credential_single_error_record(self, proxy, upstream):
        client, _, _ = proxy
        response = post_stream(client, provider="gemini", question="Hi")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        payloads = records(response.text)
        assert len(payloads) == 1
        assert json.loads(payloads[0]) == {
            "type": "error",
            "message": "No API key configured for gemini. Add yours in Settings → API Keys.",
        }
        assert upstream.call_count == 0

    def test_caller_key_preferred_over_environment(self, proxy, upstream):
        client, _, environ = proxy
        environ["OPENAI_API_KEY"] = "sk-shared"
        stored = client.put("/v1/credentials/chatgpt", json={"apiKey": "sk-caller"}, headers=AUTH)
        assert stored.status_code == 200
        upstream.stream(200, [sse_body("[DONE]")])

        post_stream(client, provider="chatgpt", question="Hi")

        sent = upstream.requests[0]
        assert sent.headers["authorization"] == "Bearer sk-caller"
        assert CALLER_TOKEN not in str(sent.headers)

    def test_environment_fallback(self, proxy, upstream):
        client, _, environ = proxy
        environ["ANTHROPIC_API_KEY"] = "ant-shared"
        upstream.stream(200, [sse_body({"type": "message_stop"})])

        response = post_stream(client, provider="claude", question="Hi")

        assert upstream.requests[0].headers["x-api-key"] == "ant-shared"
        assert records(response.text) == ["[DONE]"]


class TestSetupFailures:
    """Failures after validation but before the provider stream opens."""

    def test_bad_provider_setting_is_error_record(self, proxy, upstream, clean_provider_env):
        client, _, environ = proxy
        environ["ANTHROPIC_API_KEY"] = "ant-shared"
        clean_provider_env.setenv("ANTHROPIC_MAX_TOKENS", "lots")

        response = post_stream(client, provider="claude", question="Hi")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert [json.loads(p) for p in records(response.text)] == [
            {"type": "error", "message": INTERNAL_ERROR_MESSAGE}
        ]
        assert upstream.call_count == 0
        assert "ant-shared" not in response.text

    def test_adapter_failure_keeps_its_message(self, proxy, upstream, monkeypatch):
        client, _, environ = proxy
        environ["OPENAI_API_KEY"] = "sk-shared"

        def broken_adapter(*args, **kwargs):
            raise TransportError("ChatGPT", reason="no route")

        monkeypatch.setattr(stream_routes, "get_adapter", broken_adapter)

        response = post_stream(client, provider="chatgpt", question="Hi")

        assert response.status_code == 200
        payloads = records(response.text)
        assert len(payloads) == 1
        record = json.loads(payloads[0])
        assert record["type"] == "error"
        assert record["message"] == TransportError("ChatGPT", reason="no route").error.message
        assert upstream.call_count == 0


# ============================================================
# Relay
# ============================================================

class TestStreamRelay:
    """Canonical records produced from upstream streams."""

    def test_chunks_relayed_in_order(self, proxy, upstream):
        client, _, environ = proxy
        environ["OPENAI_API_KEY"] = "sk-shared"
        upstream.stream(200, [sse_body(openai_delta("Hello "), openai_delta("world"), "[DONE]")])

        response = post_stream(client, provider="chatgpt", question="Hi")

        assert response.status_code == 200
        assert response.headers["cache-control"].startswith("no-cache")
        assert response.headers["x-request-id"].startswith("req_")
        assert records(response.text) == [
            '{"type":"chunk","content":"Hello "}',
            '{"type":"chunk","content":"world"}',
            "[DONE]",
        ]

    def test_history_forwarded_before_question(self, proxy, upstream):
        client, _, environ = proxy
        environ["PERPLEXITY_API_KEY"] = "pplx"
        upstream.stream(200, [sse_body("[DONE]")])

        post_stream(
            client,
            provider="perplexity",
            question="And then?",
            conversationHistory=[
                {"role": "user", "content": "Tell me a story"},
                {"role": "assistant", "content": "Once upon a time"},
            ],
        )

        assert upstream.last_json()["messages"] == [
            {"role": "user", "content": "Tell me a story"},
            {"role": "assistant", "content": "Once upon a time"},
            {"role": "user", "content": "And then?"},
        ]

    def test_upstream_rate_limit(self, proxy, upstream):
        client, _, environ = proxy
        environ["OPENAI_API_KEY"] = "sk-shared"
        upstream.reply(429, b"rate limited")

        response = post_stream(client, provider="chatgpt", question="Hi")

        assert response.status_code == 200
        payloads = records(response.text)
        assert len(payloads) == 1
        assert json.loads(payloads[0]) == {
            "type": "error",
            "message": "OpenAI error 429: rate limited",
        }

    def test_network_failure_is_terminal_error(self, proxy, upstream):
        client, _, environ = proxy
        environ["GOOGLE_AI_API_KEY"] = "g"
        upstream.fail(httpx.ConnectError("refused"))

        response = post_stream(client, provider="gemini", question="Hi")

        assert records(response.text) == ['{"type":"error","message":"Connection to gemini failed"}']

    def test_stub_adapters(self, proxy, upstream, monkeypatch):
        client, _, environ = proxy
        environ["OPENAI_API_KEY"] = "sk-shared"
        monkeypatch.setenv("USE_STUB_ADAPTERS", "true")

        response = post_stream(client, provider="chatgpt", question="Hi")

        payloads = records(response.text)
        assert payloads[-1] == "[DONE]"
        text = "".join(json.loads(p)["content"] for p in payloads[:-1])
        assert text == "stub: deterministic response from chatgpt"
        assert upstream.call_count == 0


# ============================================================
# Relay generator
# ============================================================

class ScriptedAdapter(BaseAdapter):
    """Adapter that yields given events and then optionally raises."""

    provider = Provider.CLAUDE

    def __init__(self, events, exc=None):
        super().__init__(AdapterConfig(api_key="unused"))
        self.events = events
        self.exc = exc
        self.closed = False

    async def stream_chat(self, messages, request_id=""):
        for event in self.events:
            yield event
        if self.exc is not None:
            raise self.exc

    async def close(self):
        self.closed = True


async def relay(adapter):
    messages = [ChatTurn(Role.USER, "Hi")]
    return [r async for r in relay_stream(adapter, messages, Provider.CLAUDE, "model")]


@pytest.mark.asyncio
async def test_relay_unexpected_exception_becomes_generic_error():
    adapter = ScriptedAdapter([Chunk("partial")], exc=RuntimeError("secret detail"))

    out = await relay(adapter)

    assert out[0] == 'data: {"type":"chunk","content":"partial"}\n\n'
    assert json.loads(out[1][len("data: "):]) == {"type": "error", "message": INTERNAL_ERROR_MESSAGE}
    assert len(out) == 2
    assert adapter.closed


@pytest.mark.asyncio
async def test_relay_canonical_exception_keeps_message():
    adapter = ScriptedAdapter([], exc=UpstreamHTTPError("claude", 503, "busy", label="Anthropic"))

    out = await relay(adapter)

    assert out == ['data: {"type":"error","message":"Anthropic error 503: busy"}\n\n']


@pytest.mark.asyncio
async def test_relay_adds_done_when_adapter_ends_silently():
    adapter = ScriptedAdapter([Chunk("a"), Chunk("b")])

    out = await relay(adapter)

    assert out[-1] == "data: [DONE]\n\n"
    assert len(out) == 3
