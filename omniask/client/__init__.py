"""
OmniAsk - Client Module

Session layer that asks several providers at once through the stream proxy.

Usage:
    from omniask.client import SessionOrchestrator, TransportClient

    async with TransportClient() as transport:
        orchestrator = SessionOrchestrator(transport, credential_token=token)
        await orchestrator.submit("How do vaccines work?")
"""

from .cancellation import CancellationToken, OperationCancelledError
from .transport import ProxySettings, StreamFailedError, TransportClient
from .simulator import CANNED_RESPONSES, StreamSimulator, split_tokens
from .state import SessionPhase, SessionState
from .orchestrator import SessionOrchestrator
from .focused import FAILURE_REPLY, FocusedMessage, FocusedSession
from .history import (
    AnswerPreview,
    ConversationRecorder,
    ConversationSummary,
    InMemoryConversationRecorder,
)

__all__ = [
    # Cancellation
    "CancellationToken",
    "OperationCancelledError",
    # Transport
    "ProxySettings",
    "StreamFailedError",
    "TransportClient",
    "StreamSimulator",
    "CANNED_RESPONSES",
    "split_tokens",
    # Sessions
    "SessionPhase",
    "SessionState",
    "SessionOrchestrator",
    "FocusedSession",
    "FocusedMessage",
    "FAILURE_REPLY",
    # History
    "AnswerPreview",
    "ConversationRecorder",
    "ConversationSummary",
    "InMemoryConversationRecorder",
]
