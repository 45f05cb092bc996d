"""Tests for cancellation tokens."""

import asyncio

import pytest

from zotexon.cancellation import CancellationToken
from zotexon.exceptions import FetchCancelledError, OperationCancelledError


class TestCancellationToken:
    """Tests for the token hierarchy."""

    def test_new_token_is_active(self):
        """Test that a fresh token is not cancelled."""
        token = CancellationToken()
        assert not token.is_cancelled

    def test_cancel(self):
        """Test that cancel marks the token cancelled."""
        token = CancellationToken()
        token.cancel()
        assert token.is_cancelled

    def test_cancel_is_idempotent(self):
        """Test that cancelling twice is harmless."""
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.is_cancelled

    def test_parent_cancels_children(self):
        """Test that cancelling a parent cancels all descendants."""
        root = CancellationToken()
        child = root.child_token()
        grandchild = child.child_token()

        root.cancel()

        assert child.is_cancelled
        assert grandchild.is_cancelled

    def test_parent_cancels_all_siblings(self):
        """Test that every child of a parent is cancelled, not just some."""
        root = CancellationToken()
        children = [root.child_token() for _ in range(5)]
        grandchildren = [child.child_token() for child in children]

        root.cancel()

        assert [child.is_cancelled for child in children] == [True] * 5
        assert [g.is_cancelled for g in grandchildren] == [True] * 5
        assert root._children == []

    def test_released_child_is_forgotten(self):
        """Test that released children no longer follow the parent."""
        root = CancellationToken()
        released = root.child_token()
        active = root.child_token()

        released.release()
        root.cancel()

        assert not released.is_cancelled
        assert active.is_cancelled

    def test_release_keeps_parent_bounded(self):
        """Test that finished operations do not pile up in the parent."""
        root = CancellationToken()
        for _ in range(100):
            child = root.child_token()
            child.child_token().release()
            child.release()
        assert root._children == []

    def test_release_of_cancelled_child(self):
        """Test that releasing after cancellation is harmless."""
        root = CancellationToken()
        root.cancel()
        child = root.child_token()
        child.release()
        assert child.is_cancelled

    def test_child_does_not_cancel_parent(self):
        """Test that cancelling a child leaves the parent and siblings alone."""
        root = CancellationToken()
        child = root.child_token()
        sibling = root.child_token()

        child.cancel()

        assert not root.is_cancelled
        assert not sibling.is_cancelled

    def test_child_of_cancelled_token_is_cancelled(self):
        """Test that deriving from a cancelled token gives a cancelled token."""
        root = CancellationToken()
        root.cancel()
        assert root.child_token().is_cancelled

    def test_cancelled_child_is_forgotten(self):
        """Test that cancelled children are not kept by the parent."""
        root = CancellationToken()
        for _ in range(10):
            root.child_token().cancel()
        assert root._children == []


class TestCancellationTokenAsync:
    """Tests for awaiting and racing tokens."""

    @pytest.mark.asyncio
    async def test_wait_returns_after_cancel(self):
        """Test that wait() wakes up on cancel."""
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        """Test that run() passes through the coroutine result."""

        async def compute():
            return 42

        token = CancellationToken()
        assert await token.run(compute()) == 42

    @pytest.mark.asyncio
    async def test_run_propagates_exception(self):
        """Test that run() re-raises errors of the coroutine."""

        async def fail():
            raise ValueError("boom")

        token = CancellationToken()
        with pytest.raises(ValueError, match="boom"):
            await token.run(fail())

    @pytest.mark.asyncio
    async def test_run_cancels_pending_coroutine(self):
        """Test that cancelling the token aborts the coroutine."""
        started = asyncio.Event()
        was_cancelled = asyncio.Event()

        async def slow():
            started.set()
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                was_cancelled.set()
                raise

        token = CancellationToken()
        task = asyncio.create_task(token.run(slow()))
        await started.wait()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(task, timeout=1)
        assert was_cancelled.is_set()

    @pytest.mark.asyncio
    async def test_run_with_parent_cancel(self):
        """Test that cancelling the parent aborts work running on a child."""
        root = CancellationToken()
        child = root.child_token()

        task = asyncio.create_task(
            child.run(asyncio.sleep(60), error=FetchCancelledError)
        )
        await asyncio.sleep(0)
        root.cancel()

        with pytest.raises(FetchCancelledError):
            await asyncio.wait_for(task, timeout=1)

    @pytest.mark.asyncio
    async def test_run_on_cancelled_token(self):
        """Test that run() on a cancelled token fails without running."""
        ran = False

        async def work():
            nonlocal ran
            ran = True

        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelledError):
            await token.run(work())
        assert not ran
