"""
OmniAsk - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- Smoke test handling (skip with SKIP_SMOKE=1)
- Fake upstream providers built on httpx.MockTransport
"""

import asyncio
import json
import logging
import os
from typing import Callable, Iterable, List, Optional

import httpx
import pytest

from omniask.client import ProxySettings, TransportClient


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


RUN_INTEGRATION = _is_truthy(os.getenv("RUN_INTEGRATION"))
SKIP_SMOKE = _is_truthy(os.getenv("SKIP_SMOKE"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires RUN_INTEGRATION=1)"
    )
    config.addinivalue_line(
        "markers",
        "smoke: mark test as smoke test (skip with SKIP_SMOKE=1)"
    )


def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to handle integration and smoke tests.

    - Integration tests: Skip unless RUN_INTEGRATION=1
    - Smoke tests: Skip if SKIP_SMOKE=1
    """
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )
    skip_smoke = pytest.mark.skip(
        reason="Smoke test skipped - SKIP_SMOKE=1"
    )

    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)
        if "smoke" in item.keywords and SKIP_SMOKE:
            item.add_marker(skip_smoke)


# ============================================================
# SSE helpers
# ============================================================

def sse_body(*payloads) -> bytes:
    """Build an SSE body; dict payloads are JSON encoded."""
    records = []
    for payload in payloads:
        if not isinstance(payload, str):
            payload = json.dumps(payload)
        records.append(f"data: {payload}\n\n")
    return "".join(records).encode("utf-8")


def split_every(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


# ============================================================
# Fake upstream (httpx.MockTransport)
# ============================================================

class FakeUpstream:
    """
    Records every request and answers from a queue of responses.

    Usage:
        upstream = FakeUpstream()
        upstream.stream(200, [b"data: [DONE]\\n\\n"])
        client = upstream.client()
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._responses: List[Callable[[httpx.Request], httpx.Response]] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def stream(self, status_code: int, parts: Iterable[bytes], headers: Optional[dict] = None):
        """Queue a response whose body arrives in the given byte pieces."""
        parts = list(parts)
        self._responses.append(
            lambda request: httpx.Response(
                status_code,
                stream=_ByteStream(parts),
                headers=headers or {"content-type": "text/event-stream"},
            )
        )

    def reply(self, status_code: int, body: bytes = b"", headers: Optional[dict] = None):
        self._responses.append(
            lambda request: httpx.Response(status_code, content=body, headers=headers)
        )

    def fail(self, exc: Exception):
        def raise_error(request):
            raise exc
        self._responses.append(raise_error)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            return httpx.Response(500, content=b"no response queued")
        return self._responses.pop(0)(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


class _ByteStream(httpx.AsyncByteStream):
    def __init__(self, parts: List[bytes]):
        self._parts = parts

    async def __aiter__(self):
        for part in self._parts:
            yield part


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


# ============================================================
# Environment isolation
# ============================================================

PROVIDER_KEY_VARS = (
    "OPENAI_API_KEY",
    "PERPLEXITY_API_KEY",
    "ANTHROPIC_API_KEY",
    "GOOGLE_AI_API_KEY",
)


@pytest.fixture
def clean_provider_env(monkeypatch):
    """Remove shared provider keys so resolution depends on the test only."""
    for name in PROVIDER_KEY_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("USE_STUB_ADAPTERS", raising=False)
    monkeypatch.delenv("OMNIASK_STREAM_IDLE_TIMEOUT", raising=False)
    return monkeypatch


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    yield


# ============================================================
# Skip Helpers
# ============================================================

requires_integration = pytest.mark.skipif(
    not RUN_INTEGRATION,
    reason="Requires RUN_INTEGRATION=1"
)


# ============================================================
# Scripted answer sources for the session layer
# ============================================================

class ScriptedSource:
    """
    Simulator replacement that plays scripted steps per provider.

    A step is text to yield, an asyncio.Event to wait on, or an exception to
    raise. Each call to stream() consumes the next script for that provider;
    once the queue is empty a default one-chunk answer is played.
    """

    def __init__(self, scripts: Optional[dict] = None):
        self.scripts = {p: list(s) for p, s in (scripts or {}).items()}
        self.calls: List = []

    def queue(self, provider, *steps):
        self.scripts.setdefault(provider, []).append(list(steps))

    async def stream(self, provider):
        self.calls.append(provider)
        queued = self.scripts.get(provider)
        steps = queued.pop(0) if queued else [f"answer from {provider.value}"]
        for step in steps:
            if isinstance(step, asyncio.Event):
                await step.wait()
            elif isinstance(step, BaseException):
                raise step
            else:
                yield step


class ScriptedTransport(TransportClient):
    """Transport running on a ScriptedSource that remembers every call."""

    def __init__(self, source: Optional[ScriptedSource] = None):
        self.source = source or ScriptedSource()
        super().__init__(ProxySettings(url=None), simulator=self.source)
        self.calls: List = []

    def open_stream(self, provider, question, **kwargs):
        self.calls.append((provider, question, kwargs))
        return super().open_stream(provider, question, **kwargs)


async def until(predicate: Callable[[], bool], limit: int = 500):
    """Yield to the event loop until predicate() holds."""
    for _ in range(limit):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
