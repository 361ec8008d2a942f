"""
OmniAsk Core Module

Canonical data models, error taxonomy and provider configuration.
"""

from .models import (
    Provider,
    PROVIDERS,
    Role,
    StreamEventType,
    ChatTurn,
    CanonicalRequest,
    Chunk,
    Done,
    Error,
    StreamEvent,
    build_messages,
)
from .errors import (
    ErrorType,
    ErrorDetails,
    OmniAskException,
    InfraError,
    SemanticError,
    UpstreamHTTPError,
    UpstreamProtocolError,
    TransportError,
    ConfigurationError,
    MissingCallerTokenError,
    MissingRequiredFieldError,
    InvalidRequestError,
)
from .config import ProviderSettings, get_provider_settings

__all__ = [
    # Models
    "Provider",
    "PROVIDERS",
    "Role",
    "StreamEventType",
    "ChatTurn",
    "CanonicalRequest",
    "Chunk",
    "Done",
    "Error",
    "StreamEvent",
    "build_messages",
    # Errors
    "ErrorType",
    "ErrorDetails",
    "OmniAskException",
    "InfraError",
    "SemanticError",
    "UpstreamHTTPError",
    "UpstreamProtocolError",
    "TransportError",
    "ConfigurationError",
    "MissingCallerTokenError",
    "MissingRequiredFieldError",
    "InvalidRequestError",
    # Config
    "ProviderSettings",
    "get_provider_settings",
]
