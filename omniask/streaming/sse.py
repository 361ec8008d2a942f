"""
OmniAsk - Server-Sent Events Framing

Incremental SSE decoding for upstream provider bodies and for the proxy's own
outbound protocol, plus the encoder for that outbound protocol.

Outbound records:
    data: {"type":"chunk","content":"Hello "}
    data: [DONE]
    data: {"type":"error","message":"..."}

Network reads split records at arbitrary byte offsets, including inside a
multi-byte UTF-8 sequence. The decoder carries the unfinished tail of every
read over to the next one, so callers only ever see whole payloads.
"""

import codecs
import json
from typing import AsyncIterator, List, Optional

from ..core.models import Chunk, Done, Error, StreamEvent, StreamEventType


DONE_SENTINEL = "[DONE]"


# ============================================================
# Decoding
# ============================================================

class SSEDecoder:
    """
    Stateful SSE decoder.

    Feed raw bytes as they arrive; each call returns the ``data`` payloads of
    the records completed by that read. ``event:``, ``id:``, ``retry:`` and
    comment lines are ignored. Call ``flush()`` once the body ends to emit a
    record that was not followed by a blank line.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._data_lines: List[str] = []

    def feed(self, data: bytes) -> List[str]:
        return self._consume(self._decoder.decode(data))

    def flush(self) -> List[str]:
        payloads = self._consume(self._decoder.decode(b"", final=True))
        if self._buffer:
            line, self._buffer = self._buffer, ""
            payload = self._process_line(line)
            if payload is not None:
                payloads.append(payload)
        if self._data_lines:
            payloads.append(self._dispatch())
        return payloads

    def _consume(self, text: str) -> List[str]:
        if not text:
            return []
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")

        payloads = []
        for line in lines:
            payload = self._process_line(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def _process_line(self, line: str) -> Optional[str]:
        line = line.rstrip("\r")

        if not line:
            if self._data_lines:
                return self._dispatch()
            return None

        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if name != "data":
            return None
        if value.startswith(" "):
            value = value[1:]
        self._data_lines.append(value)
        return None

    def _dispatch(self) -> str:
        payload = "\n".join(self._data_lines)
        self._data_lines = []
        return payload


async def iter_sse_payloads(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """Decode an async byte stream into SSE data payloads."""
    decoder = SSEDecoder()
    async for data in byte_stream:
        for payload in decoder.feed(data):
            yield payload
    for payload in decoder.flush():
        yield payload


# ============================================================
# Outbound protocol
# ============================================================

def _record(body: dict) -> str:
    return f"data: {json.dumps(body, ensure_ascii=False, separators=(',', ':'))}\n\n"


def format_chunk(text: str) -> str:
    return _record({"type": StreamEventType.CHUNK.value, "content": text})


def format_done() -> str:
    return f"data: {DONE_SENTINEL}\n\n"


def format_error(message: str) -> str:
    return _record({"type": StreamEventType.ERROR.value, "message": message})


def encode_event(event: StreamEvent) -> str:
    """Serialize a canonical event as one outbound SSE record."""
    if isinstance(event, Chunk):
        return format_chunk(event.text)
    if isinstance(event, Done):
        return format_done()
    return format_error(event.message)


def parse_outbound_payload(payload: str) -> Optional[StreamEvent]:
    """
    Parse one outbound record payload.

    Returns None for anything that is not a well-formed record, including
    chunk records with empty content.
    """
    payload = payload.strip()
    if payload == DONE_SENTINEL:
        return Done()

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    event_type = data.get("type")
    if event_type == StreamEventType.CHUNK.value:
        content = data.get("content")
        if isinstance(content, str) and content:
            return Chunk(content)
        return None
    if event_type == StreamEventType.ERROR.value:
        return Error(str(data.get("message") or "Stream failed"))
    return None
