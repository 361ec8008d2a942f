"""
OmniAsk - Authentication Module

Caller identity for requests and deployment-mode configuration.
"""

from .middleware import (
    AuthContext,
    CallerIdentifier,
    caller_id_from_token,
    get_caller_context,
)
from .config import AuthMode, get_auth_mode

__all__ = [
    "AuthContext",
    "CallerIdentifier",
    "caller_id_from_token",
    "get_caller_context",
    "AuthMode",
    "get_auth_mode",
]
