"""
OmniAsk - Session State

Per-provider state of one answer stream. Transitions only move forward:

    IDLE -> STREAMING -> COMPLETE

Text is appended only while streaming and frozen once complete. A session
completes exactly once; later completion attempts are ignored.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ..core.models import Provider


class SessionPhase(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETE = "complete"


@dataclass
class SessionState:
    """One provider's answer within a batch."""
    provider: Provider
    accumulated_text: str = ""
    phase: SessionPhase = SessionPhase.IDLE
    error_message: Optional[str] = None
    completed_at: Optional[datetime] = None
    generation: int = 0
    cancelled: bool = False

    @property
    def is_streaming(self) -> bool:
        return self.phase == SessionPhase.STREAMING

    @property
    def is_complete(self) -> bool:
        return self.phase == SessionPhase.COMPLETE

    def start(self):
        if self.phase != SessionPhase.IDLE:
            raise RuntimeError(f"Session for {self.provider.value} already started")
        self.phase = SessionPhase.STREAMING

    def append(self, text: str) -> bool:
        """Append a fragment; ignored unless the session is streaming."""
        if self.phase != SessionPhase.STREAMING or not text:
            return False
        self.accumulated_text += text
        return True

    def complete(self, error: Optional[str] = None, cancelled: bool = False) -> bool:
        """
        Move to COMPLETE.

        A cancelled session never carries an error message.

        Returns:
            False if the session had already completed
        """
        if self.phase == SessionPhase.COMPLETE:
            return False

        self.phase = SessionPhase.COMPLETE
        self.completed_at = datetime.now(timezone.utc)
        self.cancelled = cancelled
        self.error_message = None if cancelled else error
        return True
