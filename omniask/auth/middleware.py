"""
OmniAsk - Caller Identity

FastAPI dependency that turns the bearer token into a caller context.

The token only identifies the caller so the matching stored provider key can
be found; it is never forwarded upstream. Verifying the token (for example a
JWT issued by an identity provider) belongs to the deployment: register a
CallerIdentifier on app.state.caller_identifier to plug it in. Without one,
the caller id is a stable digest of the token.
"""

import hashlib
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import Header, Request

from ..core.errors import MissingCallerTokenError
from ..observability.logging import LogContext
from ..observability.middleware import new_request_id


CallerIdentifier = Callable[[str], Awaitable[str]]


@dataclass
class AuthContext:
    """Identity and correlation ids for one request."""
    caller_id: str
    request_id: str
    trace_id: str = ""


def caller_id_from_token(token: str) -> str:
    """Stable, non-reversible caller id for a bearer token."""
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
    return f"caller_{digest[:24]}"


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


async def get_caller_context(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> AuthContext:
    """
    FastAPI dependency returning the caller context.

    Usage:
        @router.post("/stream")
        async def stream(auth: AuthContext = Depends(get_caller_context)):
            ...

    Raises:
        MissingCallerTokenError: If no bearer token is present
    """
    request_id = getattr(request.state, "request_id", "") or new_request_id()
    trace_id = getattr(request.state, "trace_id", "")

    token = _extract_bearer(authorization)
    if token is None:
        raise MissingCallerTokenError(request_id=request_id)

    identifier: Optional[CallerIdentifier] = getattr(
        request.app.state, "caller_identifier", None
    )
    if identifier is not None:
        caller_id = await identifier(token)
    else:
        caller_id = caller_id_from_token(token)

    log_ctx = LogContext.get_current()
    if log_ctx:
        log_ctx.caller_id = caller_id

    return AuthContext(caller_id=caller_id, request_id=request_id, trace_id=trace_id)
