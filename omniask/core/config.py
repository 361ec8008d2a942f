"""
OmniAsk - Provider and Stream Configuration

Environment-driven settings for the upstream providers and stream timeouts.
Provider secrets are never read here; see omniask.credentials.
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional

from .models import Provider


@dataclass(frozen=True)
class ProviderSettings:
    """Endpoint, model and fallback-key location for one provider."""
    provider: Provider
    label: str
    env_key: str
    base_url: str
    model: str
    max_tokens: Optional[int] = None


# Defaults, each overridable through the environment
_DEFAULTS: Dict[Provider, ProviderSettings] = {
    Provider.CHATGPT: ProviderSettings(
        provider=Provider.CHATGPT,
        label="OpenAI",
        env_key="OPENAI_API_KEY",
        base_url="https://api.openai.com/v1",
        model="gpt-4o-mini",
    ),
    Provider.PERPLEXITY: ProviderSettings(
        provider=Provider.PERPLEXITY,
        label="Perplexity",
        env_key="PERPLEXITY_API_KEY",
        base_url="https://api.perplexity.ai",
        model="llama-3.1-sonar-large-128k-online",
    ),
    Provider.CLAUDE: ProviderSettings(
        provider=Provider.CLAUDE,
        label="Anthropic",
        env_key="ANTHROPIC_API_KEY",
        base_url="https://api.anthropic.com",
        model="claude-sonnet-4-6",
        max_tokens=1024,
    ),
    Provider.GEMINI: ProviderSettings(
        provider=Provider.GEMINI,
        label="Gemini",
        env_key="GOOGLE_AI_API_KEY",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        model="gemini-1.5-flash",
    ),
}

_ENV_PREFIX = {
    Provider.CHATGPT: "OPENAI",
    Provider.PERPLEXITY: "PERPLEXITY",
    Provider.CLAUDE: "ANTHROPIC",
    Provider.GEMINI: "GOOGLE_AI",
}


def get_provider_settings(provider: Provider) -> ProviderSettings:
    """
    Resolve settings for a provider.

    Reads <PREFIX>_BASE_URL, <PREFIX>_MODEL and, for Claude,
    ANTHROPIC_MAX_TOKENS on every call so tests can patch the environment.
    """
    defaults = _DEFAULTS[provider]
    prefix = _ENV_PREFIX[provider]

    max_tokens = defaults.max_tokens
    raw_max = os.getenv(f"{prefix}_MAX_TOKENS")
    if raw_max and max_tokens is not None:
        max_tokens = int(raw_max)

    return ProviderSettings(
        provider=provider,
        label=defaults.label,
        env_key=defaults.env_key,
        base_url=os.getenv(f"{prefix}_BASE_URL", defaults.base_url).rstrip("/"),
        model=os.getenv(f"{prefix}_MODEL", defaults.model),
        max_tokens=max_tokens,
    )


def _float_env(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    value = float(raw)
    return value if value > 0 else None


def get_upstream_timeout() -> float:
    """Connect/write timeout for calls to providers, in seconds."""
    return _float_env("OMNIASK_UPSTREAM_TIMEOUT", 30.0) or 30.0


def get_stream_idle_timeout() -> Optional[float]:
    """
    Maximum silence between two reads of a stream, in seconds.

    None (the default) waits forever: a provider that never sends a terminal
    event keeps its session streaming until it is cancelled.
    """
    return _float_env("OMNIASK_STREAM_IDLE_TIMEOUT", None)


def use_stub_adapters() -> bool:
    return os.getenv("USE_STUB_ADAPTERS", "false").lower() in {"1", "true", "yes"}
