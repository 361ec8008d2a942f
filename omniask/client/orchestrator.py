"""
OmniAsk - Session Orchestrator

Fans one question out to every provider and tracks each answer separately.

Each provider gets its own SessionState and its own child cancellation token
under one batch scope. A session failing, being cancelled or being retried
never touches its siblings. A retry replaces the provider's state object, and
late writes from the replaced attempt are dropped by comparing identity with
the current state.

Usage:
    orchestrator = SessionOrchestrator(TransportClient(), listener=render)
    await orchestrator.submit("What is a monad?")
    await orchestrator.retry(Provider.GEMINI)
"""

import asyncio
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional

from ..core.models import PROVIDERS, Provider
from ..observability.logging import get_logger
from .cancellation import CancellationToken
from .history import ConversationRecorder
from .state import SessionState
from .transport import StreamFailedError, TransportClient


logger = get_logger(__name__)

StateListener = Callable[[SessionState], None]

FALLBACK_ERROR = "Failed to get response"


class SessionOrchestrator:
    """
    Runs one answer session per provider for the current question.

    Args:
        transport: Source of provider streams
        credential_token: Caller token forwarded to the proxy
        providers: Providers to ask, in display order
        recorder: Receives the final answers once a batch completes
        listener: Called with the changed state on every state change
    """

    def __init__(
        self,
        transport: TransportClient,
        *,
        credential_token: Optional[str] = None,
        providers: Iterable[Provider] = PROVIDERS,
        recorder: Optional[ConversationRecorder] = None,
        listener: Optional[StateListener] = None,
    ):
        self.transport = transport
        self.credential_token = credential_token
        self.providers = tuple(providers)
        self.recorder = recorder
        self.listener = listener

        self._states: Dict[Provider, SessionState] = {p: SessionState(p) for p in self.providers}
        self._tokens: Dict[Provider, CancellationToken] = {}
        self._scope: Optional[CancellationToken] = None
        self._question = ""
        self._generation = 0
        self._is_querying = False
        self._pending_record = False

    # ============================================================
    # Read-only view
    # ============================================================

    @property
    def states(self) -> Mapping[Provider, SessionState]:
        return MappingProxyType(self._states)

    @property
    def current_question(self) -> str:
        return self._question

    @property
    def is_querying(self) -> bool:
        return self._is_querying

    @property
    def has_responses(self) -> bool:
        return any(s.accumulated_text or s.error_message for s in self._states.values())

    # ============================================================
    # Commands
    # ============================================================

    async def submit(self, question: str):
        """
        Ask every provider and wait until all sessions complete.

        The batch is recorded once every current session is complete, which
        may be later than this call returns when a retry replaced a session
        while the batch was running.

        Raises:
            ValueError: If the question is blank
        """
        if not question or not question.strip():
            raise ValueError("question must not be blank")

        self._pending_record = False
        if self._scope is not None:
            self._scope.cancel("superseded")

        scope = CancellationToken()
        self._scope = scope
        self._generation += 1
        self._question = question
        self._is_querying = True
        self._pending_record = True

        runs = []
        for provider in self.providers:
            state, token = self._begin(provider, scope)
            runs.append(self._run_session(state, token, question))

        logger.debug(
            "Batch started",
            generation=self._generation,
            providers=[p.value for p in self.providers],
        )
        try:
            await asyncio.gather(*runs, return_exceptions=True)
        except asyncio.CancelledError:
            if self._scope is scope:
                self.cancel_all()
            raise

        if self._scope is scope:
            self._settle_batch()

    async def retry(self, provider: Provider):
        """
        Ask one provider again with the current question.

        Raises:
            ValueError: If nothing was asked yet or the provider is not part of this orchestrator
        """
        if not self._question:
            raise ValueError("no question to retry")
        if provider not in self._states:
            raise ValueError(f"Unknown provider: {provider}")

        previous = self._tokens.get(provider)

        if self._scope is None or self._scope.cancelled:
            self._scope = CancellationToken()

        state, token = self._begin(provider, self._scope)
        if previous is not None:
            previous.cancel("retried")
        await self._run_session(state, token, self._question)

    def cancel(self, provider: Provider):
        """Stop one session; it completes as cancelled with its partial text."""
        token = self._tokens.get(provider)
        if token is not None:
            token.cancel()

    def cancel_all(self):
        self._pending_record = False
        self._is_querying = False
        if self._scope is not None:
            self._scope.cancel()

    def reset(self):
        """Cancel everything and return every session to an empty IDLE state."""
        self.cancel_all()
        self._scope = None
        self._tokens.clear()
        self._question = ""
        for provider in self.providers:
            self._states[provider] = SessionState(provider, generation=self._generation)
            self._emit(self._states[provider])

    # ============================================================
    # Session lifecycle
    # ============================================================

    def _begin(self, provider: Provider, scope: CancellationToken):
        state = SessionState(provider, generation=self._generation)
        token = scope.child()
        self._states[provider] = state
        self._tokens[provider] = token

        state.start()
        token.register(lambda: self._finish(state, cancelled=True))
        self._emit(state)
        return state, token

    def _is_current(self, state: SessionState) -> bool:
        return self._states.get(state.provider) is state

    def _emit(self, state: SessionState):
        if self.listener is not None:
            self.listener(state)

    def _finish(self, state: SessionState, error: Optional[str] = None, cancelled: bool = False):
        if state.complete(error=error, cancelled=cancelled) and self._is_current(state):
            self._emit(state)
            self._settle_batch()

    def _settle_batch(self):
        """End the running batch once every current session is complete."""
        if not self._is_querying:
            return
        if not all(s.is_complete for s in self._states.values()):
            return

        self._is_querying = False
        if self._pending_record and self.recorder is not None:
            self._pending_record = False
            answers = {p: s.accumulated_text for p, s in self._states.items()}
            self.recorder.record(self._question, answers)

    async def _run_session(self, state: SessionState, token: CancellationToken, question: str):
        stream = self.transport.open_stream(
            state.provider,
            question,
            credential_token=self.credential_token,
            cancel_token=token,
        )
        try:
            async for text in stream:
                if token.cancelled or not self._is_current(state):
                    break
                if state.append(text):
                    self._emit(state)

        except asyncio.CancelledError:
            if not token.cancelled:
                # Cancelled from outside: the batch will not be recorded
                self._pending_record = False
                self._finish(state, cancelled=True)
                raise
            self._finish(state, cancelled=True)
            token.acknowledge_interrupt()

        except StreamFailedError as e:
            self._finish(state, error=e.message or FALLBACK_ERROR)

        except Exception as e:
            logger.warning(
                "Session failed",
                provider=state.provider.value,
                error_type=type(e).__name__,
            )
            self._finish(state, error=str(e) or FALLBACK_ERROR)

        else:
            self._finish(state)

        finally:
            token.release()
            await stream.aclose()
