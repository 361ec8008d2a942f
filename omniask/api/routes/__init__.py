"""
OmniAsk - API Routes

Route modules for the stream proxy and credential management.
"""

from .stream import router as stream_router
from .credentials import router as credentials_router

__all__ = [
    "stream_router",
    "credentials_router",
]
