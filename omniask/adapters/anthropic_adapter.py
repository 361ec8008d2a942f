"""
OmniAsk - Anthropic Provider Adapter

Adapter for Anthropic's Messages API (Claude) in streaming mode.

Dialect (event-typed SSE):
    event: content_block_delta
    data: {"type":"content_block_delta","delta":{"type":"text_delta","text":"Hi"}}

    event: message_stop
    data: {"type":"message_stop"}

Mid-stream failures arrive as {"type":"error","error":{"message":"..."}}.
"""

from typing import Any, Dict, Optional, Sequence, Tuple

from .base import SSEStreamAdapter
from ..core.models import ChatTurn, Chunk, Done, Provider, StreamEvent


class AnthropicAdapter(SSEStreamAdapter):
    """Adapter for Anthropic Claude."""

    provider = Provider.CLAUDE
    DEFAULT_BASE_URL = "https://api.anthropic.com"
    DEFAULT_MODEL = "claude-sonnet-4-6"
    DEFAULT_MAX_TOKENS = 1024
    API_VERSION = "2023-06-01"
    LABEL = "Anthropic"

    def _build_request(
        self,
        messages: Sequence[ChatTurn]
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        headers = {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": self.config.max_tokens or self.DEFAULT_MAX_TOKENS,
            "stream": True,
            "messages": self._normalize_messages(messages),
        }
        return f"{self.base_url}/v1/messages", headers, payload

    def _interpret(self, data: Dict[str, Any]) -> Optional[StreamEvent]:
        event_type = data.get("type")

        if event_type == "content_block_delta":
            delta = data.get("delta") or {}
            if delta.get("type") == "text_delta":
                text = delta.get("text")
                if isinstance(text, str) and text:
                    return Chunk(text)
            return None

        if event_type == "message_stop":
            return Done()

        if event_type == "error":
            return self._protocol_error(data.get("error"))

        # message_start, content_block_start, ping, message_delta...
        return None
