"""Triggers that decide when the library export is refreshed.

A trigger is a lazy sequence of "sync now" signals. Producers run as
background tasks and hand signals to the consumer through a single-slot
channel; a signal sent while another one is still pending is dropped, so a
burst of remote changes collapses into one re-sync.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from ..cancellation import CancellationToken

if TYPE_CHECKING:
    from .websocket import WebSocketTrigger

logger = logging.getLogger(__name__)

_CLOSED = object()


class TriggerChannel:
    """Bounded (capacity 1) channel carrying unit signals."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> bool:
        """Whether a signal is waiting to be received."""
        return not self._queue.empty()

    def send(self) -> bool:
        """Offer a signal without waiting.

        Returns:
            True if the signal was queued, False if it was dropped because
            one is already pending or the channel is closed
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(True)
        except asyncio.QueueFull:
            logger.debug("Trigger already pending, dropping signal")
            return False
        return True

    def close(self) -> None:
        """End the sequence once the pending signal (if any) was received."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # receive() notices the closed flag after draining the signal
            pass

    async def receive(self) -> Optional[bool]:
        """Wait for the next signal.

        Returns:
            True for a signal, None once the channel is closed and drained
        """
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return True


class SyncTrigger:
    """Decoupled way of triggering the exporter.

    ``await trigger.next()`` returns True whenever a sync should run and None
    when no more syncs will ever be requested.
    """

    def __init__(
        self,
        channel: TriggerChannel,
        task: Optional[asyncio.Task[None]] = None,
    ):
        self._channel = channel
        self._task = task

    @property
    def channel(self) -> TriggerChannel:
        return self._channel

    @property
    def error(self) -> Optional[BaseException]:
        """Exception that ended the background producer, if any."""
        task = self._task
        if task is None or not task.done() or task.cancelled():
            return None
        return task.exception()

    async def next(self) -> Optional[bool]:
        """Wait for the next trigger signal."""
        return await self._channel.receive()

    async def aclose(self) -> None:
        """Stop the background producer and close the channel."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._channel.close()

    @classmethod
    def none(cls) -> SyncTrigger:
        """Create a trigger whose ``next()`` immediately returns None."""
        channel = TriggerChannel()
        channel.close()
        return cls(channel)

    @classmethod
    def periodic(
        cls, period: float, cancellation_token: CancellationToken
    ) -> SyncTrigger:
        """Create a trigger firing every ``period`` seconds.

        The first signal is sent right away. The sequence ends after the
        cancellation token is cancelled. Must be called from a running
        event loop.
        """
        if period <= 0:
            raise ValueError("period must be positive")
        channel = TriggerChannel()
        task = asyncio.create_task(
            trigger_periodically(channel, period, cancellation_token)
        )
        return cls(channel, task)

    @classmethod
    async def websocket(
        cls,
        api_key: str,
        user_id: int,
        cancellation_token: CancellationToken,
        url: Optional[str] = None,
    ) -> SyncTrigger:
        """Create a trigger fed by the Zotero streaming API.

        Connects and subscribes to the user's library before returning;
        handshake failures are raised here. Afterwards every library change
        notification produces a signal. One initial signal is sent so the
        export is brought up to date right away.

        Raises:
            WebSocketError: If connecting or subscribing fails
        """
        from .websocket import WebSocketTrigger

        channel = TriggerChannel()
        builder = WebSocketTrigger.builder(api_key, user_id, channel, url=url)
        ws_trigger = await builder.try_build()
        channel.send()
        task = asyncio.create_task(
            _run_and_close(ws_trigger, channel, cancellation_token)
        )
        return cls(channel, task)


async def trigger_periodically(
    channel: TriggerChannel,
    period: float,
    cancellation_token: CancellationToken,
) -> None:
    """Send a signal every ``period`` seconds until cancelled."""
    logger.info(f"Starting periodic export trigger with {period:g} seconds")
    try:
        while not cancellation_token.is_cancelled:
            logger.debug("Triggering now")
            channel.send()
            try:
                await asyncio.wait_for(cancellation_token.wait(), timeout=period)
            except asyncio.TimeoutError:
                continue
        logger.info("Cancellation requested, stopping periodic export trigger")
    finally:
        channel.close()


async def _run_and_close(
    ws_trigger: WebSocketTrigger,
    channel: TriggerChannel,
    cancellation_token: CancellationToken,
) -> None:
    try:
        await ws_trigger.run(cancellation_token)
    except Exception as e:
        logger.error(f"WebSocket trigger failed: {e}")
        raise
    finally:
        channel.close()
