"""
Image Cache Events

Publish/subscribe channel for "image cache updated" notifications.
Each subscriber owns a Subscription with its own queue and must close it
(or use it as an async context manager) when done.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Dict, Optional

from .models import ImageCacheUpdated

logger = logging.getLogger(__name__)


class Subscription:
    """A subscriber's view of the broadcaster."""

    def __init__(self, broadcaster: "ImageUpdateBroadcaster", max_pending: int = 16):
        self.subscription_id = uuid.uuid4().hex[:8]
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[ImageCacheUpdated] = asyncio.Queue(maxsize=max_pending)
        self.closed = False

    def _deliver(self, event: ImageCacheUpdated) -> None:
        # Slow subscribers lose the oldest events, never block the publisher
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> ImageCacheUpdated:
        """Wait for the next event."""
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._broadcaster._unsubscribe(self.subscription_id)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ImageCacheUpdated:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()


class ImageUpdateBroadcaster:
    """
    Fan-out of ImageCacheUpdated events.

    Usage:
        async with broadcaster.subscribe() as subscription:
            event = await subscription.get()
    """

    def __init__(self):
        self._subscribers: Dict[str, Subscription] = {}

    def subscribe(self, max_pending: int = 16) -> Subscription:
        subscription = Subscription(self, max_pending=max_pending)
        self._subscribers[subscription.subscription_id] = subscription
        logger.debug(f"[ImageEvents] Subscribed {subscription.subscription_id}")
        return subscription

    def _unsubscribe(self, subscription_id: str) -> None:
        if self._subscribers.pop(subscription_id, None) is not None:
            logger.debug(f"[ImageEvents] Unsubscribed {subscription_id}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: Optional[ImageCacheUpdated] = None) -> ImageCacheUpdated:
        """Deliver an event to every open subscription."""
        event = event or ImageCacheUpdated()
        for subscription in list(self._subscribers.values()):
            subscription._deliver(event)
        logger.info(f"[ImageEvents] Image cache updated, notified {len(self._subscribers)} subscribers")
        return event

    def close_all(self) -> None:
        for subscription in list(self._subscribers.values()):
            subscription.close()
