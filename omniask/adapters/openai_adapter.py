"""
OmniAsk - OpenAI Provider Adapter

Adapter for OpenAI-compatible chat-completions streaming (ChatGPT), also used
for Perplexity, which speaks the same dialect on a different host.

Dialect:
    data: {"choices":[{"delta":{"content":"Hel"}}]}
    data: {"error":{"message":"..."}}
    data: [DONE]
"""

from typing import Any, Dict, Optional, Sequence, Tuple

from .base import SSEStreamAdapter
from ..core.models import ChatTurn, Chunk, Provider, StreamEvent
from ..streaming.sse import DONE_SENTINEL


class OpenAIAdapter(SSEStreamAdapter):
    """
    Adapter for the OpenAI chat-completions API.

    Supports:
    - Streaming chat completions (gpt-4o-mini by default)
    - Mid-stream error envelopes
    """

    provider = Provider.CHATGPT
    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "gpt-4o-mini"
    LABEL = "OpenAI"

    def _build_request(
        self,
        messages: Sequence[ChatTurn]
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": self._normalize_messages(messages),
            "stream": True,
        }
        return f"{self.base_url}/chat/completions", headers, payload

    def _is_sentinel(self, payload: str) -> bool:
        return payload.strip() == DONE_SENTINEL

    def _interpret(self, data: Dict[str, Any]) -> Optional[StreamEvent]:
        if data.get("error"):
            return self._protocol_error(data["error"])

        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None

        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        if isinstance(content, str) and content:
            return Chunk(content)
        return None


class PerplexityAdapter(OpenAIAdapter):
    """Perplexity's OpenAI-compatible endpoint."""

    provider = Provider.PERPLEXITY
    DEFAULT_BASE_URL = "https://api.perplexity.ai"
    DEFAULT_MODEL = "llama-3.1-sonar-large-128k-online"
    LABEL = "Perplexity"
