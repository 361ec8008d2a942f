"""
OmniAsk - Conversation History

Records a short summary of every completed batch so past questions can be
listed with a preview of each provider's answer.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Mapping, Protocol

from ..core.models import PROVIDERS, Provider


MAX_CONVERSATIONS = 50
PREVIEW_LENGTH = 80
PREVIEW_SUFFIX = "…"


@dataclass(frozen=True)
class AnswerPreview:
    provider: Provider
    preview: str


@dataclass(frozen=True)
class ConversationSummary:
    """One asked question and the start of every non-empty answer."""
    id: str
    question: str
    timestamp: datetime
    previews: List[AnswerPreview] = field(default_factory=list)


class ConversationRecorder(Protocol):
    """Receives the final answers of a batch exactly once."""

    def record(self, question: str, answers: Mapping[Provider, str]) -> None:
        ...


def make_preview(text: str) -> str:
    return text[:PREVIEW_LENGTH].rstrip() + PREVIEW_SUFFIX


class InMemoryConversationRecorder:
    """Keeps the most recent summaries, newest first."""

    def __init__(self, limit: int = MAX_CONVERSATIONS):
        self.limit = limit
        self._conversations: List[ConversationSummary] = []

    @property
    def conversations(self) -> List[ConversationSummary]:
        return list(self._conversations)

    def record(self, question: str, answers: Mapping[Provider, str]) -> None:
        previews = [
            AnswerPreview(provider=provider, preview=make_preview(answers[provider]))
            for provider in PROVIDERS
            if answers.get(provider)
        ]
        summary = ConversationSummary(
            id=str(uuid.uuid4()),
            question=question,
            timestamp=datetime.now(timezone.utc),
            previews=previews,
        )
        self._conversations = [summary] + self._conversations[: self.limit - 1]

    def clear(self):
        self._conversations = []
