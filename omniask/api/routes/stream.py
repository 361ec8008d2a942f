"""
OmniAsk - Stream Proxy API

POST /v1/stream: resolve the caller's key for one provider, open the
provider's native stream and relay it as the canonical SSE protocol.

    data: {"type":"chunk","content":"..."}   zero or more
    data: [DONE]                             or
    data: {"type":"error","message":"..."}   exactly one terminal record

Once the request is validated, every failure becomes the terminal error
record; only request validation produces a non-200 status.
"""

import time
from typing import AsyncIterator, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ...adapters import AdapterConfig, BaseAdapter, get_adapter
from ...auth.middleware import AuthContext, get_caller_context
from ...core.config import (
    get_provider_settings,
    get_stream_idle_timeout,
    get_upstream_timeout,
    use_stub_adapters,
)
from ...core.errors import (
    ConfigurationError,
    MissingRequiredFieldError,
    OmniAskException,
    to_stream_message,
)
from ...core.models import CanonicalRequest, ChatTurn, Chunk, Error, Provider
from ...credentials import LayeredCredentialResolver
from ...observability.logging import LogContext, TimedOperation, get_logger
from ...observability.metrics import StreamOutcome, get_metrics
from ...observability.tracing import mark_stream_error, trace_provider_call
from ...streaming.sse import encode_event, format_done, format_error
from ..dependencies import get_credential_resolver, get_upstream_client, parse_provider
from ..models import StreamRequest


router = APIRouter(prefix="/v1", tags=["stream"])
logger = get_logger(__name__)

# Disable proxy buffering so each record reaches the caller as it is produced
SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

INTERNAL_ERROR_MESSAGE = "Internal server error"


# ============================================================
# Stream Endpoint
# ============================================================

@router.post("/stream")
async def stream_answer(
    body: StreamRequest,
    auth: AuthContext = Depends(get_caller_context),
    resolver: LayeredCredentialResolver = Depends(get_credential_resolver),
    client: Optional[httpx.AsyncClient] = Depends(get_upstream_client),
):
    """
    Stream one provider's answer to a question.

    **Body:**
    - `provider` - one of perplexity, gemini, chatgpt, claude
    - `question` - the new user question
    - `conversationHistory` - optional prior turns, replayed in order
    """
    if not body.provider or not body.provider.strip():
        raise MissingRequiredFieldError("provider", request_id=auth.request_id)
    if not body.question or not body.question.strip():
        raise MissingRequiredFieldError("question", request_id=auth.request_id)

    provider = parse_provider(body.provider, request_id=auth.request_id)
    request = CanonicalRequest(
        provider=provider,
        new_question=body.question,
        prior_turns=tuple(body.prior_turns()),
    )

    log_ctx = LogContext.get_current()
    if log_ctx:
        log_ctx.provider = provider.value

    headers = dict(SSE_HEADERS)
    headers["X-Request-Id"] = auth.request_id
    headers["X-Provider"] = provider.value

    try:
        secret = await resolver.resolve(auth.caller_id, provider)
        if not secret:
            error = ConfigurationError(provider.value, request_id=auth.request_id)
            get_metrics().record_stream(provider.value, StreamOutcome.UNCONFIGURED)
            return _error_response(error.error.message, headers)

        settings = get_provider_settings(provider)
        adapter = get_adapter(
            provider,
            AdapterConfig(
                api_key=secret,
                base_url=settings.base_url,
                model=settings.model,
                label=settings.label,
                timeout=get_upstream_timeout(),
                idle_timeout=get_stream_idle_timeout(),
                max_tokens=settings.max_tokens,
            ),
            client=client,
            use_stub=use_stub_adapters(),
        )

    except OmniAskException as e:
        logger.warning(
            "Stream setup failed",
            provider=provider.value,
            error_code=e.error.code,
        )
        get_metrics().record_stream(provider.value, StreamOutcome.ERROR)
        return _error_response(to_stream_message(e), headers)

    except Exception:
        logger.exception("Unexpected failure while opening stream", provider=provider.value)
        get_metrics().record_stream(provider.value, StreamOutcome.ERROR)
        return _error_response(INTERNAL_ERROR_MESSAGE, headers)

    return StreamingResponse(
        relay_stream(adapter, request.messages(), provider, settings.model, auth.request_id),
        media_type="text/event-stream",
        headers=headers,
    )


# ============================================================
# Relay
# ============================================================

async def _single_record(record: str) -> AsyncIterator[str]:
    yield record


def _error_response(message: str, headers: Dict[str, str]) -> StreamingResponse:
    """A 200 event stream holding only the terminal error record."""
    return StreamingResponse(
        _single_record(format_error(message)),
        media_type="text/event-stream",
        headers=headers,
    )


async def relay_stream(
    adapter: BaseAdapter,
    messages: List[ChatTurn],
    provider: Provider,
    model: str,
    request_id: str = "",
) -> AsyncIterator[str]:
    """
    Serialize an adapter's events as outbound records.

    Guarantees exactly one terminal record even when the adapter raises or
    ends without one. Each record is yielded as soon as its event arrives.
    """
    metrics = get_metrics()
    started = time.perf_counter()
    outcome = StreamOutcome.DISCONNECTED
    first_chunk = True

    events = adapter.stream_chat(messages, request_id)
    try:
        with metrics.track_active_stream(provider.value), \
                trace_provider_call(provider.value, model) as span:
            async with TimedOperation("provider_stream", logger, provider=provider.value):
                terminal: Optional[str] = None
                try:
                    async for event in events:
                        if isinstance(event, Chunk):
                            if first_chunk:
                                metrics.record_time_to_first_chunk(
                                    provider.value, time.perf_counter() - started
                                )
                                first_chunk = False
                            metrics.record_chunk(provider.value)
                            yield encode_event(event)
                            continue

                        terminal = encode_event(event)
                        if isinstance(event, Error):
                            outcome = StreamOutcome.ERROR
                            mark_stream_error(span, event.message)
                            logger.warning(
                                "Provider stream ended with error",
                                provider=provider.value,
                                reason=event.message[:200],
                            )
                        else:
                            outcome = StreamOutcome.DONE
                        break

                except OmniAskException as e:
                    outcome = StreamOutcome.ERROR
                    mark_stream_error(span, e.error.code)
                    logger.warning(
                        "Provider stream failed",
                        provider=provider.value,
                        error_code=e.error.code,
                    )
                    terminal = format_error(to_stream_message(e))

                except Exception as e:
                    outcome = StreamOutcome.ERROR
                    mark_stream_error(span, type(e).__name__)
                    logger.exception(
                        "Unexpected failure while relaying stream",
                        provider=provider.value,
                    )
                    terminal = format_error(INTERNAL_ERROR_MESSAGE)

                if terminal is None:
                    outcome = StreamOutcome.DONE
                    terminal = format_done()
                yield terminal

    finally:
        await events.aclose()
        await adapter.close()
        metrics.record_stream(provider.value, outcome, time.perf_counter() - started)
