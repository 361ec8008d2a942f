"""Deterministic real-HTTP smoke tests for the stream proxy."""

from __future__ import annotations

import json
import os
import socket
import subprocess
import sys
import time
from pathlib import Path

import httpx
import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]


def _random_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return int(s.getsockname()[1])


def _wait_ready(base_url: str, timeout_s: float = 12.0) -> None:
    deadline = time.time() + timeout_s
    last_error = None
    while time.time() < deadline:
        try:
            with httpx.Client(timeout=1.0) as client:
                resp = client.get(f"{base_url}/health")
                if resp.status_code == 200:
                    return
        except Exception as exc:  # pragma: no cover - transient startup race
            last_error = exc
        time.sleep(0.2)
    raise AssertionError(f"Server did not become healthy in {timeout_s}s: {last_error}")


@pytest.mark.smoke
def test_stream_proxy_smoke_real_http() -> None:
    """Start the proxy on a random port and stream one answer over real HTTP."""
    port = _random_free_port()
    base_url = f"http://127.0.0.1:{port}"
    test_api_key = "sk-test-do-not-leak"
    caller_token = "smoke-caller-token"

    env = os.environ.copy()
    for name in ("PERPLEXITY_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_AI_API_KEY"):
        env.pop(name, None)
    env.update(
        {
            "MODE": "local",
            "PORT": str(port),
            "USE_STUB_ADAPTERS": "true",
            "OPENAI_API_KEY": test_api_key,
            "LOG_LEVEL": "INFO",
        }
    )

    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "omniask.server:app",
        "--host",
        "127.0.0.1",
        "--port",
        str(port),
        "--log-level",
        "info",
    ]

    proc = subprocess.Popen(
        cmd,
        cwd=str(REPO_ROOT),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )

    output = ""
    bodies = []
    try:
        _wait_ready(base_url)

        headers = {"Authorization": f"Bearer {caller_token}"}

        with httpx.Client(timeout=10.0) as client:
            health = client.get(f"{base_url}/health")
            print(f"health={health.status_code}")
            assert health.status_code == 200
            h = health.json()
            assert h["status"] == "healthy"
            assert h["providers"]["chatgpt"]["shared_key"] is True
            bodies.append(health.text)

            ready = client.get(f"{base_url}/ready")
            print(f"ready={ready.status_code}")
            assert ready.status_code == 200
            assert ready.json().get("status") == "ready"

            providers = client.get(f"{base_url}/v1/providers", headers=headers)
            print(f"providers={providers.status_code}")
            assert providers.status_code == 200
            providers_json = providers.json()
            assert providers_json["object"] == "list"
            assert [p["provider"] for p in providers_json["data"]] == [
                "perplexity", "gemini", "chatgpt", "claude",
            ]
            bodies.append(providers.text)

            payloads = []
            with client.stream(
                "POST",
                f"{base_url}/v1/stream",
                headers=headers,
                json={"provider": "chatgpt", "question": "stream please"},
            ) as stream_resp:
                print(f"stream={stream_resp.status_code}")
                assert stream_resp.status_code == 200
                assert stream_resp.headers["content-type"].startswith("text/event-stream")
                for line in stream_resp.iter_lines():
                    if line.startswith("data: "):
                        payloads.append(line[6:])

            assert payloads[-1] == "[DONE]"
            assert len(payloads) >= 2
            assert all(json.loads(p)["type"] == "chunk" for p in payloads[:-1])
            bodies.extend(payloads)

            unconfigured = client.post(
                f"{base_url}/v1/stream",
                headers=headers,
                json={"provider": "claude", "question": "hello"},
            )
            print(f"unconfigured={unconfigured.status_code}")
            assert unconfigured.status_code == 200
            assert '"type":"error"' in unconfigured.text
            assert "No API key configured for claude" in unconfigured.text

    finally:
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait(timeout=5)

        if proc.stdout:
            output = proc.stdout.read()

    # Neither the provider key nor the caller token may leak
    assert test_api_key not in output
    assert caller_token not in output
    assert all(test_api_key not in body for body in bodies)
