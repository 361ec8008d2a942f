"""
OmniAsk - Streaming Module

SSE framing shared by the wire adapters, the stream proxy and the
transport client.
"""

from .sse import (
    DONE_SENTINEL,
    SSEDecoder,
    iter_sse_payloads,
    encode_event,
    format_chunk,
    format_done,
    format_error,
    parse_outbound_payload,
)

__all__ = [
    "DONE_SENTINEL",
    "SSEDecoder",
    "iter_sse_payloads",
    "encode_event",
    "format_chunk",
    "format_done",
    "format_error",
    "parse_outbound_payload",
]
