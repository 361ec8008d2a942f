"""
OmniAsk - Google Provider Adapter

Adapter for Google's Gemini API (streamGenerateContent with alt=sse).

Dialect:
    data: {"candidates":[{"content":{"parts":[{"text":"Hi"}],"role":"model"}}]}

There is no end-of-stream sentinel; the stream ends when the body ends.
Errors arrive as {"error":{"code":...,"message":"...","status":"..."}}.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from .base import SSEStreamAdapter
from ..core.models import ChatTurn, Chunk, Provider, Role, StreamEvent


class GoogleAdapter(SSEStreamAdapter):
    """Adapter for Google Gemini."""

    provider = Provider.GEMINI
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MODEL = "gemini-1.5-flash"
    LABEL = "Gemini"

    def _build_request(
        self,
        messages: Sequence[ChatTurn]
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        # Key goes in a header so it never appears in a logged URL
        headers = {
            "x-goog-api-key": self.config.api_key,
            "Content-Type": "application/json",
        }
        payload = {"contents": self._convert_messages(messages)}
        url = f"{self.base_url}/models/{self.model}:streamGenerateContent?alt=sse"
        return url, headers, payload

    def _convert_messages(self, messages: Sequence[ChatTurn]) -> List[Dict[str, Any]]:
        """Gemini calls the assistant role "model" and wraps text in parts."""
        return [
            {
                "role": "model" if turn.role == Role.ASSISTANT else "user",
                "parts": [{"text": turn.content}],
            }
            for turn in messages
        ]

    def _interpret(self, data: Dict[str, Any]) -> Optional[StreamEvent]:
        if data.get("error"):
            return self._protocol_error(data["error"])

        candidates = data.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return None

        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        text = "".join(
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        if text:
            return Chunk(text)
        return None
