"""
ImageUpdateBroadcaster tests
"""

import asyncio

import pytest

from profile_images.events import ImageUpdateBroadcaster
from profile_images.models import ImageCacheUpdated


class TestBroadcaster:

    @pytest.mark.asyncio
    async def test_publish_reaches_every_subscriber(self):
        broadcaster = ImageUpdateBroadcaster()
        first = broadcaster.subscribe()
        second = broadcaster.subscribe()

        event = broadcaster.publish(ImageCacheUpdated(timestamp=42.0))

        assert await first.get(timeout=1.0) is event
        assert await second.get(timeout=1.0) is event

    @pytest.mark.asyncio
    async def test_closed_subscription_stops_receiving(self):
        broadcaster = ImageUpdateBroadcaster()
        subscription = broadcaster.subscribe()
        subscription.close()

        broadcaster.publish()

        assert broadcaster.subscriber_count == 0
        assert subscription.pending() == 0

    @pytest.mark.asyncio
    async def test_context_manager_unsubscribes(self):
        broadcaster = ImageUpdateBroadcaster()

        async with broadcaster.subscribe():
            assert broadcaster.subscriber_count == 1

        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_slow_subscriber_keeps_latest_events(self):
        broadcaster = ImageUpdateBroadcaster()
        subscription = broadcaster.subscribe(max_pending=2)

        for ts in (1.0, 2.0, 3.0):
            broadcaster.publish(ImageCacheUpdated(timestamp=ts))

        assert subscription.pending() == 2
        assert (await subscription.get()).timestamp == 2.0
        assert (await subscription.get()).timestamp == 3.0

    @pytest.mark.asyncio
    async def test_get_times_out_without_events(self):
        subscription = ImageUpdateBroadcaster().subscribe()

        with pytest.raises(asyncio.TimeoutError):
            await subscription.get(timeout=0.01)

    @pytest.mark.asyncio
    async def test_async_iteration_ends_after_close(self):
        broadcaster = ImageUpdateBroadcaster()
        subscription = broadcaster.subscribe()
        broadcaster.publish(ImageCacheUpdated(timestamp=1.0))

        received = []
        async for event in subscription:
            received.append(event.timestamp)
            subscription.close()

        assert received == [1.0]

    @pytest.mark.asyncio
    async def test_close_all(self):
        broadcaster = ImageUpdateBroadcaster()
        subscriptions = [broadcaster.subscribe() for _ in range(3)]

        broadcaster.close_all()

        assert broadcaster.subscriber_count == 0
        assert all(s.closed for s in subscriptions)
