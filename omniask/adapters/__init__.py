"""
OmniAsk Adapters Module

Wire adapters that translate canonical chat requests into each provider's
native streaming request and decode the native stream back into canonical
events.
"""

from typing import Optional, Union

import httpx

from .base import BaseAdapter, SSEStreamAdapter, AdapterConfig
from .openai_adapter import OpenAIAdapter, PerplexityAdapter
from .anthropic_adapter import AnthropicAdapter
from .google_adapter import GoogleAdapter
from .stub_adapter import StubAdapter
from ..core.models import Provider

__all__ = [
    "BaseAdapter",
    "SSEStreamAdapter",
    "AdapterConfig",
    "OpenAIAdapter",
    "PerplexityAdapter",
    "AnthropicAdapter",
    "GoogleAdapter",
    "StubAdapter",
    "get_adapter",
]


def get_adapter(
    provider: Union[Provider, str],
    config: AdapterConfig,
    client: Optional[httpx.AsyncClient] = None,
    use_stub: bool = False,
) -> BaseAdapter:
    """
    Factory function to get the appropriate adapter for a provider.

    Args:
        provider: Provider tag ("perplexity", "gemini", "chatgpt", "claude")
        config: Adapter configuration carrying the resolved credential
        client: Shared HTTP client; the adapter creates its own when omitted
        use_stub: Return the deterministic offline adapter instead

    Returns:
        Configured adapter instance

    Raises:
        ValueError: If provider is not supported
    """
    try:
        provider = Provider(provider.lower() if isinstance(provider, str) else provider)
    except ValueError:
        raise ValueError(f"Unsupported provider: {provider}")

    if use_stub:
        return StubAdapter(config, provider=provider)

    adapters = {
        Provider.CHATGPT: OpenAIAdapter,
        Provider.PERPLEXITY: PerplexityAdapter,
        Provider.CLAUDE: AnthropicAdapter,
        Provider.GEMINI: GoogleAdapter,
    }

    return adapters[provider](config, client=client)
