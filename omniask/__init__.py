"""
OmniAsk - Ask Every Assistant at Once

Streams one question to several AI providers (Perplexity, Gemini, ChatGPT,
Claude) in parallel and shows every answer as it arrives.

- omniask.server: the stream proxy service
- omniask.client: transport, session orchestration and focused follow-ups
"""

__version__ = "1.0.0"
__author__ = "OmniAsk"
