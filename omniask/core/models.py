"""
OmniAsk - Core Data Models

Canonical types shared by the stream proxy and the client session layer.
Every upstream dialect is reduced to these shapes before anything else sees it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Tuple, Union


# ============================================================
# Enums
# ============================================================

class Provider(str, Enum):
    """Providers a question is fanned out to."""
    PERPLEXITY = "perplexity"
    GEMINI = "gemini"
    CHATGPT = "chatgpt"
    CLAUDE = "claude"


# Canonical fan-out order
PROVIDERS: Tuple[Provider, ...] = (
    Provider.PERPLEXITY,
    Provider.GEMINI,
    Provider.CHATGPT,
    Provider.CLAUDE,
)


class Role(str, Enum):
    """Conversation turn roles."""
    USER = "user"
    ASSISTANT = "assistant"


class StreamEventType(str, Enum):
    """Discriminator for canonical stream events."""
    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"


# ============================================================
# Conversation
# ============================================================

@dataclass(frozen=True)
class ChatTurn:
    """One prior message in a conversation. Order is replayed verbatim."""
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatTurn":
        return cls(role=Role(data["role"]), content=data.get("content") or "")


@dataclass(frozen=True)
class CanonicalRequest:
    """
    Provider-agnostic chat request.

    The message list sent upstream is always the prior turns followed by the
    new question as a user turn.
    """
    provider: Provider
    new_question: str
    prior_turns: Tuple[ChatTurn, ...] = field(default_factory=tuple)

    def messages(self) -> List[ChatTurn]:
        return build_messages(self.prior_turns, self.new_question)


def build_messages(prior_turns: Iterable[ChatTurn], question: str) -> List[ChatTurn]:
    """Append the new question to the replayed history."""
    messages = list(prior_turns)
    messages.append(ChatTurn(role=Role.USER, content=question))
    return messages


# ============================================================
# Canonical Stream Events
# ============================================================

@dataclass(frozen=True)
class Chunk:
    """A non-empty text delta."""
    text: str
    type: StreamEventType = field(default=StreamEventType.CHUNK, init=False)

    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class Done:
    """Successful end of stream."""
    type: StreamEventType = field(default=StreamEventType.DONE, init=False)

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class Error:
    """Abnormal end of stream with a human-readable reason."""
    message: str
    type: StreamEventType = field(default=StreamEventType.ERROR, init=False)

    @property
    def is_terminal(self) -> bool:
        return True


StreamEvent = Union[Chunk, Done, Error]
