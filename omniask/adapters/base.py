"""
OmniAsk - Provider Adapter Base

Abstract base classes for wire adapters.

A wire adapter turns a canonical message list into one streaming HTTP request
against a provider and decodes the provider's native SSE dialect into
canonical stream events (Chunk, Done, Error).
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import httpx

from ..core.errors import TransportError, UpstreamHTTPError, UpstreamProtocolError
from ..core.models import ChatTurn, Chunk, Done, Error, Provider, StreamEvent
from ..observability.logging import get_logger
from ..streaming.sse import iter_sse_payloads


logger = get_logger(__name__)


@dataclass
class AdapterConfig:
    """Configuration for a provider adapter. Built per request."""
    api_key: str = field(repr=False)
    base_url: Optional[str] = None
    model: Optional[str] = None
    label: Optional[str] = None
    timeout: float = 30.0
    idle_timeout: Optional[float] = None
    max_tokens: Optional[int] = None


class BaseAdapter(ABC):
    """
    Abstract base class for wire adapters.

    Each adapter must implement:
    - stream_chat: Stream canonical events for a message list
    - close: Release any resources the adapter owns

    Invariants every implementation keeps:
    1. Exactly one terminal event (Done or Error) ends the sequence
    2. No Chunk follows the terminal event
    3. Chunk text is never empty
    """

    provider: Provider

    def __init__(self, config: AdapterConfig):
        self.config = config

    @abstractmethod
    def stream_chat(
        self,
        messages: Sequence[ChatTurn],
        request_id: str = ""
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream a chat completion.

        Args:
            messages: Prior turns followed by the new user question
            request_id: Request ID for error tracking

        Yields:
            Canonical stream events, ending with exactly one terminal event.
        """
        pass

    async def close(self):
        """Release resources. Adapters without resources do nothing."""
        return None


class SSEStreamAdapter(BaseAdapter):
    """
    Template for adapters that talk to an HTTP+SSE streaming endpoint.

    Subclasses differ only in:
    - _build_request: endpoint, auth header and body shape
    - _is_sentinel: provider-specific end-of-stream payload
    - _interpret: how one decoded JSON record maps to a canonical event

    The httpx client may be shared (injected) or owned by the adapter; only an
    owned client is closed by close().
    """

    DEFAULT_BASE_URL: str = ""
    DEFAULT_MODEL: str = ""
    LABEL: str = ""

    def __init__(
        self,
        config: AdapterConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(config)
        self.base_url = (config.base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.model = config.model or self.DEFAULT_MODEL
        self.label = config.label or self.LABEL
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self._timeout())

    def _timeout(self) -> httpx.Timeout:
        # read=None disables the idle timeout between body reads
        return httpx.Timeout(self.config.timeout, read=self.config.idle_timeout)

    @abstractmethod
    def _build_request(
        self,
        messages: Sequence[ChatTurn]
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, json payload) for the streaming request."""
        pass

    @abstractmethod
    def _interpret(self, data: Dict[str, Any]) -> Optional[StreamEvent]:
        """Map one decoded record to an event, or None when it carries no text."""
        pass

    def _is_sentinel(self, payload: str) -> bool:
        return False

    async def stream_chat(
        self,
        messages: Sequence[ChatTurn],
        request_id: str = ""
    ) -> AsyncIterator[StreamEvent]:
        url, headers, payload = self._build_request(messages)

        try:
            async with self.client.stream(
                "POST",
                url,
                json=payload,
                headers=headers,
                timeout=self._timeout(),
            ) as response:
                # Non-2xx: one error event, never any chunks
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    error = UpstreamHTTPError(
                        provider=self.provider.value,
                        status=response.status_code,
                        body=body,
                        label=self.label,
                        request_id=request_id,
                    )
                    logger.warning(
                        "Upstream rejected streaming request",
                        provider=self.provider.value,
                        status_code=response.status_code,
                    )
                    yield Error(error.error.message)
                    return

                async for data_str in iter_sse_payloads(response.aiter_bytes()):
                    if self._is_sentinel(data_str):
                        yield Done()
                        return

                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue
                    if not isinstance(data, dict):
                        continue

                    event = self._interpret(data)
                    if event is None:
                        continue
                    if isinstance(event, Chunk) and not event.text:
                        continue

                    yield event
                    if event.is_terminal:
                        return

        except httpx.HTTPError as e:
            raise TransportError(
                provider=self.provider.value,
                request_id=request_id,
                reason=type(e).__name__,
            ) from e

        # End of body without a sentinel
        yield Done()

    async def close(self):
        """Close the HTTP client if this adapter created it."""
        if self._owns_client:
            await self.client.aclose()

    # ============================================================
    # Helper methods for subclasses
    # ============================================================

    def _normalize_messages(
        self,
        messages: Sequence[ChatTurn]
    ) -> List[Dict[str, str]]:
        """
        Convert canonical turns to {role, content} dicts.
        Override in subclass if needed.
        """
        return [turn.to_dict() for turn in messages]

    def _envelope_message(self, error: Any) -> str:
        """Extract the human-readable message from a provider error envelope."""
        if isinstance(error, dict):
            message = error.get("message")
            if message:
                return str(message)
        elif error:
            return str(error)
        return f"{self.label} stream error"

    def _protocol_error(self, envelope: Any) -> Error:
        """Terminal event for an error envelope received inside a 2xx stream."""
        error = UpstreamProtocolError(self.provider.value, self._envelope_message(envelope))
        logger.warning(
            "Upstream sent error envelope",
            provider=self.provider.value,
            error_code=error.error.code,
        )
        return Error(error.error.message)
