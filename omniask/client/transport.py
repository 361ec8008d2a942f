"""
OmniAsk - Transport Client

Opens one provider stream through the stream proxy and yields answer text.

    client = TransportClient()
    async for text in client.open_stream(Provider.CLAUDE, "Why is the sky blue?",
                                         credential_token=token):
        print(text, end="")

Without a credential token, or without a configured proxy URL, the offline
simulator answers instead so callers never need to know which mode they run in.
"""

import json
import os
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

import httpx

from ..core.config import get_stream_idle_timeout, get_upstream_timeout
from ..core.models import ChatTurn, Done, Error, Provider
from ..observability.logging import get_logger
from ..streaming.sse import iter_sse_payloads, parse_outbound_payload
from .cancellation import CancellationToken
from .simulator import StreamSimulator


__version__ = "1.0.0"

logger = get_logger(__name__)


class StreamFailedError(Exception):
    """A stream ended with an error record or was rejected by the proxy."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class ProxySettings:
    """Where the stream proxy lives and how long to wait on it."""
    url: Optional[str] = None
    timeout: float = 30.0
    idle_timeout: Optional[float] = None

    @classmethod
    def from_env(cls) -> "ProxySettings":
        url = os.getenv("OMNIASK_PROXY_URL", "").strip().rstrip("/")
        return cls(
            url=url or None,
            timeout=get_upstream_timeout(),
            idle_timeout=get_stream_idle_timeout(),
        )


def _error_text(status_code: int, body: bytes) -> str:
    text = body.decode("utf-8", errors="replace").strip()
    try:
        data = json.loads(text)
    except ValueError:
        return text or f"HTTP {status_code}"
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        message = data["error"].get("message")
        if message:
            return str(message)
    return text or f"HTTP {status_code}"


class TransportClient:
    """
    Client side of the stream protocol.

    Args:
        settings: Proxy location and timeouts. Defaults to ProxySettings.from_env()
        client: Shared httpx client; one is created on first use otherwise
        simulator: Offline answer source used when no proxy can be called
    """

    def __init__(
        self,
        settings: Optional[ProxySettings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        simulator: Optional[StreamSimulator] = None,
    ):
        self.settings = settings or ProxySettings.from_env()
        self.simulator = simulator or StreamSimulator()
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.timeout, read=self.settings.idle_timeout),
                headers={"User-Agent": f"omniask-python/{__version__}"},
            )
            self._owns_client = True
        return self._client

    async def open_stream(
        self,
        provider: Provider,
        question: str,
        *,
        credential_token: Optional[str] = None,
        prior_turns: Sequence[ChatTurn] = (),
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        """
        Yield answer text fragments in arrival order.

        The stream ends quietly at [DONE], at the end of the body, or as soon
        as cancel_token is cancelled. Cancelling the token also cancels the
        task reading this stream, which closes the connection.

        Raises:
            StreamFailedError: On an error record or a non-2xx proxy response
        """
        if cancel_token is not None and cancel_token.cancelled:
            return

        if credential_token and self.settings.url:
            source = self._proxy_stream(provider, question, credential_token, prior_turns)
        else:
            source = self.simulator.stream(provider)

        detach = cancel_token.attach_current_task() if cancel_token is not None else None
        try:
            async for text in source:
                if cancel_token is not None and cancel_token.cancelled:
                    return
                yield text
        finally:
            if detach is not None:
                detach()
            await source.aclose()

    async def _proxy_stream(
        self,
        provider: Provider,
        question: str,
        credential_token: str,
        prior_turns: Sequence[ChatTurn],
    ) -> AsyncIterator[str]:
        client = await self._get_client()
        payload = {
            "provider": provider.value,
            "question": question,
            "conversationHistory": [turn.to_dict() for turn in prior_turns],
        }
        headers = {
            "Authorization": f"Bearer {credential_token}",
            "Accept": "text/event-stream",
        }

        try:
            async with client.stream(
                "POST",
                f"{self.settings.url}/v1/stream",
                json=payload,
                headers=headers,
            ) as response:
                if not response.is_success:
                    body = await response.aread()
                    raise StreamFailedError(
                        _error_text(response.status_code, body),
                        status_code=response.status_code,
                    )

                async for record in iter_sse_payloads(response.aiter_bytes()):
                    event = parse_outbound_payload(record)
                    if event is None:
                        continue
                    if isinstance(event, Done):
                        return
                    if isinstance(event, Error):
                        raise StreamFailedError(event.message)
                    yield event.text

        except httpx.HTTPError as e:
            logger.warning(
                "Stream proxy request failed",
                provider=provider.value,
                error_type=type(e).__name__,
            )
            raise StreamFailedError("Connection to the stream proxy failed") from e

    async def close(self):
        """Close the underlying HTTP client if this transport created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
