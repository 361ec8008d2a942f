"""
OmniAsk - Cancellation Tokens

Cooperative cancellation shared by a batch of sessions.

A batch holds one parent token and gives every session a child. Cancelling
the parent cancels every child; cancelling a child affects only that session.
Cancelling is idempotent and never reported as an error.

Usage:
    scope = CancellationToken()
    token = scope.child()
    token.register(lambda: print("stopped"))
    scope.cancel()          # token.cancelled is now True
"""

import asyncio
from typing import Callable, List, Optional


class OperationCancelledError(RuntimeError):
    """Raised by raise_if_cancelled() on a cancelled token."""

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(reason)


class CancellationToken:
    """Node in a cancellation tree."""

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._parent = parent
        self._children: List["CancellationToken"] = []
        self._callbacks: List[Callable[[], None]] = []
        self._cancelled = False
        self._interrupted: Optional[asyncio.Task] = None
        self.reason: Optional[str] = None

        if parent is not None:
            if parent.cancelled:
                self._cancelled = True
                self.reason = parent.reason
            else:
                parent._children.append(self)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def child(self) -> "CancellationToken":
        """Create a token that is cancelled together with this one."""
        return CancellationToken(parent=self)

    def cancel(self, reason: str = "cancelled") -> bool:
        """
        Cancel this token and all of its descendants.

        Returns:
            False if the token was already cancelled
        """
        if self._cancelled:
            return False

        self._cancelled = True
        self.reason = reason

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

        children, self._children = self._children, []
        for child in children:
            child.cancel(reason)

        self.release()
        return True

    def release(self):
        """Detach this token from its parent without cancelling it."""
        if self._parent is not None and self in self._parent._children:
            self._parent._children.remove(self)

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run callback once when the token is cancelled.

        A callback registered on an already cancelled token runs immediately.

        Returns:
            A function that unregisters the callback
        """
        if self._cancelled:
            callback()
            return lambda: None

        self._callbacks.append(callback)

        def unregister():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    def attach_current_task(self) -> Callable[[], None]:
        """
        Cancel the running asyncio task when this token is cancelled.

        This aborts whatever the task is awaiting, such as a pending network
        read. A token cancelled from inside the task itself does not cancel
        it; the task sees the flag at its next check instead.

        Returns:
            A function that detaches the task
        """
        task = asyncio.current_task()
        if task is None:
            return lambda: None

        def cancel_task():
            if not task.done() and asyncio.current_task() is not task:
                self._interrupted = task
                task.cancel()

        return self.register(cancel_task)

    def acknowledge_interrupt(self):
        """
        Withdraw the cancel request this token made on the current task.

        Call after swallowing the CancelledError the token caused, so that
        Task.cancelling() drops back and later timeouts in the same task
        behave normally. No-op before Python 3.11.
        """
        task = asyncio.current_task()
        if task is None or self._interrupted is not task:
            return
        self._interrupted = None
        uncancel = getattr(task, "uncancel", None)
        if uncancel is not None:
            uncancel()

    def raise_if_cancelled(self):
        if self._cancelled:
            raise OperationCancelledError(self.reason or "cancelled")
