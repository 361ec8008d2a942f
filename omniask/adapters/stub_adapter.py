"""
OmniAsk - Stub Provider Adapter

Deterministic in-process adapter used for smoke/integration testing.
No network calls, no external provider keys required.
"""

import re
from typing import AsyncIterator, Sequence

from .base import AdapterConfig, BaseAdapter
from ..core.models import ChatTurn, Chunk, Done, Error, Provider, StreamEvent


# A question containing this marker makes the stub end with an error event
STUB_ERROR_MARKER = "stub:error"


class StubAdapter(BaseAdapter):
    """Deterministic adapter for tests/smoke checks."""

    def __init__(self, config: AdapterConfig, provider: Provider = Provider.CHATGPT):
        super().__init__(config)
        self.provider = provider

    async def stream_chat(
        self,
        messages: Sequence[ChatTurn],
        request_id: str = "",
    ) -> AsyncIterator[StreamEvent]:
        question = messages[-1].content if messages else ""
        text = f"stub: deterministic response from {self.provider.value}"

        for token in re.split(r"(\s+)", text):
            if token:
                yield Chunk(token)

        if STUB_ERROR_MARKER in question:
            yield Error(f"{self.provider.value} stub failure")
            return

        yield Done()
