"""Cooperative, hierarchical cancellation for asyncio tasks.

A :class:`CancellationToken` is passed down through every suspending call.
Sub-operations derive child tokens, so cancelling a parent cancels all of
its in-flight children without any bookkeeping by the caller.
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from .exceptions import OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """A token that can be cancelled once and awaited by any number of tasks."""

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = asyncio.Event()
        self._children: list[CancellationToken] = []
        self._parent = parent
        if parent is not None and parent.is_cancelled:
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """Whether this token (or one of its ancestors) was cancelled."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel this token and every token derived from it."""
        if self._event.is_set():
            return
        self._event.set()
        children, self._children = self._children, []
        for child in children:
            child.cancel()
        self.release()

    def child_token(self) -> "CancellationToken":
        """Derive a token that is cancelled together with this one.

        Cancelling the child does not affect this token.
        """
        child = CancellationToken(parent=self)
        if not child.is_cancelled:
            self._children.append(child)
        return child

    def release(self) -> None:
        """Detach this token from its parent once its operation finished.

        A released token can still be cancelled directly but no longer
        follows its parent.
        """
        if self._parent is not None:
            self._parent._forget(self)
            self._parent = None

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    async def run(
        self,
        awaitable: Awaitable[T],
        error: type[OperationCancelledError] = OperationCancelledError,
    ) -> T:
        """Run ``awaitable`` unless the token fires first.

        If the token is cancelled before the awaitable completes, the
        awaitable is cancelled and ``error`` is raised.

        Args:
            awaitable: Coroutine or future to race against the token
            error: Exception class raised on cancellation

        Returns:
            Result of the awaitable

        Raises:
            OperationCancelledError: If the token was cancelled first
        """
        task = asyncio.ensure_future(awaitable)
        if self.is_cancelled:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise error()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise error()

    def _forget(self, child: "CancellationToken") -> None:
        # The list is detached while cancel() runs
        try:
            self._children.remove(child)
        except ValueError:
            pass

    def __repr__(self) -> str:
        state = "cancelled" if self.is_cancelled else "active"
        return f"CancellationToken({state})"
