"""
OmniAsk - Cancellation Token Tests
"""

import asyncio
import sys

import pytest

from omniask.client import CancellationToken, OperationCancelledError


class TestCancellationToken:

    def test_parent_cancels_children(self):
        scope = CancellationToken()
        a, b = scope.child(), scope.child()

        assert scope.cancel("stop")
        assert a.cancelled and b.cancelled
        assert a.reason == "stop"

    def test_child_cancel_leaves_parent_and_siblings(self):
        scope = CancellationToken()
        a, b = scope.child(), scope.child()

        a.cancel()

        assert not scope.cancelled
        assert not b.cancelled

    def test_cancel_is_idempotent(self):
        token = CancellationToken()
        calls = []
        token.register(lambda: calls.append(1))

        assert token.cancel()
        assert not token.cancel()
        assert calls == [1]

    def test_child_of_cancelled_parent(self):
        scope = CancellationToken()
        scope.cancel("gone")

        child = scope.child()

        assert child.cancelled
        assert child.reason == "gone"

    def test_register_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        token.register(lambda: calls.append("ran"))

        assert calls == ["ran"]

    def test_unregister(self):
        token = CancellationToken()
        calls = []
        unregister = token.register(lambda: calls.append(1))

        unregister()
        token.cancel()

        assert calls == []

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("user")

        with pytest.raises(OperationCancelledError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "user"

    def test_release_detaches_without_cancelling(self):
        parent = CancellationToken()
        finished = parent.child()
        running = parent.child()

        finished.release()
        parent.cancel()

        assert not finished.cancelled
        assert running.cancelled
        assert parent._children == []

    def test_release_is_idempotent(self):
        parent = CancellationToken()
        child = parent.child()

        child.release()
        child.release()
        CancellationToken().release()

        assert parent._children == []


class TestTaskAttachment:

    @pytest.mark.asyncio
    async def test_cancels_attached_task(self):
        token = CancellationToken()
        started = asyncio.Event()

        async def wait_forever():
            token.attach_current_task()
            started.set()
            await asyncio.Event().wait()

        task = asyncio.ensure_future(wait_forever())
        await started.wait()
        token.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_cancel_from_same_task_does_not_interrupt(self):
        token = CancellationToken()
        token.attach_current_task()

        token.cancel()
        await asyncio.sleep(0)

        assert token.cancelled

    @pytest.mark.asyncio
    async def test_detached_task_untouched(self):
        token = CancellationToken()
        started = asyncio.Event()
        release = asyncio.Event()

        async def work():
            detach = token.attach_current_task()
            detach()
            started.set()
            await release.wait()
            return "finished"

        task = asyncio.ensure_future(work())
        await started.wait()
        token.cancel()
        release.set()

        assert await task == "finished"

    @pytest.mark.skipif(sys.version_info < (3, 11), reason="Task.cancelling() needs Python 3.11")
    @pytest.mark.asyncio
    async def test_acknowledged_interrupt_clears_cancel_request(self):
        token = CancellationToken()
        started = asyncio.Event()

        async def reader():
            token.attach_current_task()
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                token.acknowledge_interrupt()
            await asyncio.wait_for(asyncio.sleep(0), timeout=1)
            return asyncio.current_task().cancelling()

        task = asyncio.ensure_future(reader())
        await started.wait()
        token.cancel()

        assert await task == 0

    @pytest.mark.skipif(sys.version_info < (3, 11), reason="Task.cancelling() needs Python 3.11")
    @pytest.mark.asyncio
    async def test_acknowledge_without_interrupt_is_noop(self):
        token = CancellationToken()
        token.attach_current_task()

        token.cancel()
        token.acknowledge_interrupt()

        assert asyncio.current_task().cancelling() == 0
