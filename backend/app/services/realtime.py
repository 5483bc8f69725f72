"""
Realtime Hub - in-process pub/sub for live order status.

Channels are named per order (`order_42`). Each subscriber gets its own
bounded asyncio.Queue; a subscriber that stops reading loses its oldest
events instead of slowing publishers down.
"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Set

logger = logging.getLogger(__name__)


def order_channel(order_id: int) -> str:
    return f"order_{order_id}"


class RealtimeHub:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    async def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> int:
        """Fan out to current subscribers; returns how many received it."""
        message = {"event": event, "channel": channel, "payload": payload}
        delivered = 0
        for queue in list(self._subscribers.get(channel, ())):
            if queue.full():
                queue.get_nowait()
                logger.warning(f"[Realtime] Slow subscriber on {channel}, dropped oldest event")
            queue.put_nowait(message)
            delivered += 1
        logger.debug(f"[Realtime] {event} on {channel} -> {delivered} subscriber(s)")
        return delivered

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[channel].add(queue)
        try:
            yield queue
        finally:
            self._subscribers[channel].discard(queue)
            if not self._subscribers[channel]:
                del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))
