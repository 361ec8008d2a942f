"""
OmniAsk - Focused Session

A follow-up conversation with a single provider, seeded with the original
question and the answer that provider already gave.

Each send() streams into one pending assistant message, addressed by its
index. Chunks are applied only while that exchange is still the current one,
so a superseded or cancelled exchange cannot write into newer messages.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from ..core.models import ChatTurn, Provider, Role
from ..observability.logging import get_logger
from .cancellation import CancellationToken
from .transport import TransportClient


logger = get_logger(__name__)

FAILURE_REPLY = "Sorry, something went wrong. Please try again."


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FocusedMessage:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=_now)

    def to_turn(self) -> ChatTurn:
        return ChatTurn(role=self.role, content=self.content)


class FocusedSession:
    """
    Continue the conversation with one provider.

    Args:
        transport: Source of provider streams
        provider: The provider being talked to
        original_question: First user question of the conversation
        initial_response: The provider's answer to it
        credential_token: Caller token forwarded to the proxy
        listener: Called with the session after every change
    """

    def __init__(
        self,
        transport: TransportClient,
        provider: Provider,
        original_question: str,
        initial_response: str,
        *,
        credential_token: Optional[str] = None,
        listener: Optional[Callable[["FocusedSession"], None]] = None,
    ):
        self.transport = transport
        self.provider = provider
        self.credential_token = credential_token
        self.listener = listener

        self._messages: List[FocusedMessage] = [
            FocusedMessage(Role.USER, original_question),
            FocusedMessage(Role.ASSISTANT, initial_response),
        ]
        self._token: Optional[CancellationToken] = None

    @property
    def messages(self) -> Tuple[FocusedMessage, ...]:
        return tuple(self._messages)

    @property
    def is_streaming(self) -> bool:
        return self._token is not None

    def history(self) -> List[ChatTurn]:
        """All non-empty messages as conversation turns, oldest first."""
        return [m.to_turn() for m in self._messages if m.content.strip()]

    def _emit(self):
        if self.listener is not None:
            self.listener(self)

    def cancel(self):
        """Stop the running exchange, keeping whatever text already arrived."""
        token, self._token = self._token, None
        if token is not None:
            token.cancel()
            self._emit()

    async def send(self, text: str) -> Optional[str]:
        """
        Send a follow-up and stream the reply.

        Returns:
            The final reply text, or None when text is blank
        """
        if not text or not text.strip():
            return None
        text = text.strip()

        self.cancel()

        prior_turns = self.history()
        self._messages.append(FocusedMessage(Role.USER, text))
        pending = len(self._messages)
        self._messages.append(FocusedMessage(Role.ASSISTANT, ""))

        token = CancellationToken()
        self._token = token
        self._emit()

        stream = self.transport.open_stream(
            self.provider,
            text,
            credential_token=self.credential_token,
            prior_turns=prior_turns,
            cancel_token=token,
        )
        try:
            async for chunk in stream:
                if self._token is not token:
                    break
                self._messages[pending].content += chunk
                self._emit()

        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            token.acknowledge_interrupt()

        except Exception as e:
            if self._token is token:
                logger.warning(
                    "Focused exchange failed",
                    provider=self.provider.value,
                    error_type=type(e).__name__,
                )
                self._messages[pending].content = FAILURE_REPLY

        finally:
            await stream.aclose()
            if self._token is token:
                self._token = None
                self._messages[pending].timestamp = _now()
                self._emit()

        return self._messages[pending].content
