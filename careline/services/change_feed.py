"""In-process change feed for booking and queue subscriptions."""

import asyncio
import logging
from typing import Any, Dict, Hashable, Optional, Set

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """
    Async iterator of snapshots for one topic.

    Only the latest undelivered snapshot matters to a subscriber, so a slow
    consumer sees the newest state rather than a backlog. Close it (or leave
    the ``async with`` block) to cancel.
    """

    def __init__(self, feed: "ChangeFeed", topic: Hashable):
        self._feed = feed
        self.topic = topic
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self.closed = False

    def _offer(self, snapshot: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(snapshot)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed._remove(self)
        self._offer(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ChangeFeed:
    """Fan-out of snapshots to subscribers, keyed by topic."""

    def __init__(self):
        self._subscribers: Dict[Hashable, Set[Subscription]] = {}

    def subscribe(self, topic: Hashable, initial: Optional[Any] = None) -> Subscription:
        """Open a subscription, optionally primed with the current snapshot."""
        subscription = Subscription(self, topic)
        self._subscribers.setdefault(topic, set()).add(subscription)
        if initial is not None:
            subscription._offer(initial)
        return subscription

    def publish(self, topic: Hashable, snapshot: Any) -> int:
        """
        Deliver a snapshot to the topic's subscribers.

        Returns:
            Number of subscribers reached
        """
        subscribers = list(self._subscribers.get(topic, ()))
        for subscription in subscribers:
            subscription._offer(snapshot)
        return len(subscribers)

    def subscriber_count(self, topic: Hashable) -> int:
        return len(self._subscribers.get(topic, ()))

    def close_all(self) -> None:
        """End every open subscription, e.g. on shutdown."""
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                subscription.close()

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.topic)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.topic]
