"""In-memory per-run publish/subscribe hub for live run events."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from threading import Lock
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

from core import RunStatusEvent
from core.contracts import RunEvent
from utils.exceptions import ChannelNotFoundError


logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """One observer's view of a run channel, from its subscription point forward."""

    def __init__(
        self,
        run_id: str,
        *,
        queue_size: int,
        on_close: Optional[Callable[["Subscription"], None]] = None,
    ) -> None:
        self.run_id = run_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: RunEvent) -> bool:
        """Queue an event without blocking. Returns False when the subscriber cannot take it."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def finish(self) -> None:
        """Stop the stream after already-queued events have been read."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # reader fell behind; its backlog is discarded
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        """Finish the stream and leave the channel."""
        self.finish()
        if self._on_close is not None:
            callback, self._on_close = self._on_close, None
            callback(self)

    async def events(self, keepalive_interval: Optional[float] = None) -> AsyncIterator[Optional[RunEvent]]:
        """
        Yield events until the channel closes.

        A ``None`` item is a keep-alive tick, produced whenever nothing arrived
        for ``keepalive_interval`` seconds.
        """
        while True:
            try:
                if keepalive_interval:
                    item = await asyncio.wait_for(self._queue.get(), timeout=keepalive_interval)
                else:
                    item = await self._queue.get()
            except asyncio.TimeoutError:
                yield None
                continue
            if item is _CLOSED:
                return
            yield item


@dataclass
class RunChannel:
    """Engine-side handle for one run's channel."""

    run_id: str
    hub: "RunEventHub"
    subscribers: Set[Subscription] = field(default_factory=set)
    terminal: bool = False
    cleanup_handle: Optional[asyncio.TimerHandle] = None

    def publish(self, event: RunEvent) -> int:
        return self.hub.publish(self.run_id, event)


class RunEventHub:
    """
    Fans run events out to live subscribers.

    One hub instance is created per process and handed to the engine. Events
    are never replayed: subscribers see only what is published after they
    join. A channel stays open for ``cleanup_grace`` seconds after the run's
    terminal ``run-status`` event, then is closed and released. Publishing and
    subscribing must happen on the event loop that owns the subscriber queues.
    """

    def __init__(
        self,
        *,
        cleanup_grace: float = 60.0,
        keepalive_interval: float = 25.0,
        subscriber_queue_size: int = 256,
    ) -> None:
        self.cleanup_grace = float(cleanup_grace)
        self.keepalive_interval = float(keepalive_interval)
        self.subscriber_queue_size = int(subscriber_queue_size)
        self._channels: Dict[str, RunChannel] = {}
        self._lock = Lock()

    def open_channel(self, run_id: str) -> RunChannel:
        with self._lock:
            channel = self._channels.get(run_id)
            if channel is None:
                channel = RunChannel(run_id=run_id, hub=self)
                self._channels[run_id] = channel
            return channel

    def has_channel(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._channels

    def subscriber_count(self, run_id: str) -> int:
        with self._lock:
            channel = self._channels.get(run_id)
            return len(channel.subscribers) if channel else 0

    def publish(self, run_id: str, event: RunEvent) -> int:
        """Deliver to current subscribers; returns how many took the event."""
        terminal = isinstance(event, RunStatusEvent) and event.is_terminal
        with self._lock:
            channel = self._channels.get(run_id)
            if channel is None:
                return 0
            targets = list(channel.subscribers)
            if terminal:
                channel.terminal = True

        delivered = 0
        failed: List[Subscription] = []
        for subscription in targets:
            if subscription.deliver(event):
                delivered += 1
            else:
                failed.append(subscription)

        for subscription in failed:
            logger.debug("subscriber_dropped run_id=%s", run_id)
            subscription.close()

        if terminal:
            self._schedule_cleanup(run_id)
        return delivered

    def subscribe(self, run_id: str) -> Subscription:
        """
        Join a run's channel.

        Raises:
            ChannelNotFoundError: the run has no open channel
        """
        with self._lock:
            channel = self._channels.get(run_id)
            if channel is None:
                raise ChannelNotFoundError(run_id)
            subscription = Subscription(
                run_id,
                queue_size=self.subscriber_queue_size,
                on_close=self._unsubscribe,
            )
            if channel.terminal:
                subscription.finish()
            else:
                channel.subscribers.add(subscription)
        return subscription

    def close_channel(self, run_id: str) -> None:
        with self._lock:
            channel = self._channels.pop(run_id, None)
            if channel is None:
                return
            subscribers = list(channel.subscribers)
            channel.subscribers.clear()
            if channel.cleanup_handle is not None:
                channel.cleanup_handle.cancel()
                channel.cleanup_handle = None
        for subscription in subscribers:
            subscription.finish()
        logger.debug("channel_closed run_id=%s subscribers=%d", run_id, len(subscribers))

    def close_all(self) -> None:
        with self._lock:
            run_ids = list(self._channels)
        for run_id in run_ids:
            self.close_channel(run_id)

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            channel = self._channels.get(subscription.run_id)
            if channel is not None:
                channel.subscribers.discard(subscription)

    def _schedule_cleanup(self, run_id: str) -> None:
        if self.cleanup_grace <= 0:
            self.close_channel(run_id)
            return
        loop = asyncio.get_running_loop()
        with self._lock:
            channel = self._channels.get(run_id)
            if channel is None:
                return
            if channel.cleanup_handle is not None:
                channel.cleanup_handle.cancel()
            channel.cleanup_handle = loop.call_later(self.cleanup_grace, self.close_channel, run_id)
