"""
OmniAsk - Auth Configuration

Handles local vs production mode and startup safety checks.
"""

import os
from enum import Enum
from typing import List

from ..core.config import use_stub_adapters


class AuthMode(str, Enum):
    """Deployment mode."""

    LOCAL = "local"  # Development: stub adapters and wildcard CORS allowed
    PROD = "prod"    # Fail-closed production settings
    TEST = "test"    # Deterministic test mode


def get_auth_mode() -> AuthMode:
    """
    Get the current mode from MODE.

    MODE must be one of: local, prod/production, test.

    Default: prod (fail-closed default for safer deployments).
    """
    mode = os.getenv("MODE", "prod").lower().strip()
    if mode in {"prod", "production"}:
        return AuthMode.PROD
    if mode == "local":
        return AuthMode.LOCAL
    if mode == "test":
        return AuthMode.TEST
    raise ValueError("Invalid MODE. Use one of: local, prod, production, test")


def is_local_mode() -> bool:
    return get_auth_mode() == AuthMode.LOCAL


def is_prod_mode() -> bool:
    return get_auth_mode() == AuthMode.PROD


def get_cors_allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOW_ORIGINS from environment.

    Outside production an unset value allows every origin, matching a
    browser client served from anywhere during development.
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "")
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if not origins and not is_prod_mode():
        return ["*"]
    return origins


def validate_security_config() -> None:
    """Fail closed for unsafe production startup configuration."""
    if get_auth_mode() in {AuthMode.LOCAL, AuthMode.TEST}:
        return

    if use_stub_adapters():
        raise RuntimeError("USE_STUB_ADAPTERS is not allowed in production mode")

    origins = get_cors_allowed_origins()
    if not origins:
        raise RuntimeError("CORS_ALLOW_ORIGINS must be set in production mode")
    if "*" in origins:
        raise RuntimeError("CORS_ALLOW_ORIGINS cannot include '*' in production mode")
