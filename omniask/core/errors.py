"""
OmniAsk - Error Definitions

Error taxonomy with infra vs semantic classification.

Every failure inside the stream proxy ends up as a single outbound error
record; the classes here carry the message text for that record and the
HTTP status used when a failure happens before streaming starts.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "infra_error"
    SEMANTIC = "semantic_error"


@dataclass
class ErrorDetails:
    """Full error information for API response."""
    # Core fields (always present)
    code: str
    message: str
    type: ErrorType

    # Context fields
    provider: Optional[str] = None
    param: Optional[str] = None

    # Trace fields
    request_id: str = ""

    # Recovery fields
    retryable: bool = False

    # Debug fields
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }

        if self.provider:
            result["provider"] = self.provider
        if self.param:
            result["param"] = self.param
        if self.details:
            result["details"] = self.details

        return {"error": result}


class OmniAskException(Exception):
    """Base exception for all OmniAsk errors."""

    def __init__(self, error: ErrorDetails, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)


# ============================================================
# Infra Errors
# ============================================================

class InfraError(OmniAskException):
    """Base class for infrastructure errors."""
    pass


class UpstreamHTTPError(InfraError):
    """Provider answered the streaming request with a non-2xx status."""

    def __init__(
        self,
        provider: str,
        status: int,
        body: str = "",
        label: str = "",
        request_id: str = "",
    ):
        self.upstream_status = status
        self.body = body
        super().__init__(
            ErrorDetails(
                code="upstream_http_error",
                message=f"{label or provider} error {status}: {body}",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=status == 429 or status >= 500,
                details={"status": status},
            ),
            status_code=502,
        )


class UpstreamProtocolError(InfraError):
    """Provider sent its own structured error envelope mid-stream."""

    def __init__(self, provider: str, message: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="upstream_protocol_error",
                message=message,
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=False,
            ),
            status_code=502,
        )


class TransportError(InfraError):
    """Network or decode failure between proxy and provider."""

    def __init__(self, provider: str = "", request_id: str = "", reason: str = ""):
        target = provider or "provider"
        super().__init__(
            ErrorDetails(
                code="transport_error",
                message=f"Connection to {target} failed",
                type=ErrorType.INFRA,
                provider=provider or None,
                request_id=request_id,
                retryable=True,
                details={"reason": reason} if reason else {},
            ),
            status_code=502,
        )


# ============================================================
# Semantic Errors (client must fix request or configuration)
# ============================================================

class SemanticError(OmniAskException):
    """Base class for semantic errors (client must fix request)."""
    pass


class ConfigurationError(SemanticError):
    """No credential resolvable for a provider."""

    def __init__(self, provider: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="provider_not_configured",
                message=(
                    f"No API key configured for {provider}. "
                    "Add yours in Settings → API Keys."
                ),
                type=ErrorType.SEMANTIC,
                provider=provider,
                request_id=request_id,
                retryable=False,
            ),
            status_code=400,
        )


class MissingCallerTokenError(SemanticError):
    """No bearer token identifying the caller."""

    def __init__(self, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="missing_caller_token",
                message="Authorization header required",
                type=ErrorType.SEMANTIC,
                request_id=request_id,
                retryable=False,
            ),
            status_code=401,
        )


class InvalidRequestError(SemanticError):
    """Request validation failed."""

    def __init__(
        self,
        message: str,
        param: Optional[str] = None,
        request_id: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            ErrorDetails(
                code="invalid_request",
                message=message,
                type=ErrorType.SEMANTIC,
                param=param,
                request_id=request_id,
                retryable=False,
                details=details or {},
            ),
            status_code=400,
        )


class MissingRequiredFieldError(SemanticError):
    """Required field is missing or blank."""

    def __init__(self, field_name: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="missing_required_field",
                message=f"Missing required field: {field_name}",
                type=ErrorType.SEMANTIC,
                param=field_name,
                request_id=request_id,
                retryable=False,
            ),
            status_code=400,
        )


def to_stream_message(error: Exception) -> str:
    """Message text used for the outbound error record."""
    if isinstance(error, OmniAskException):
        return error.error.message
    return str(error) or "Internal server error"
