"""
In-Memory Event Publisher

Local-only delivery using asyncio.Queue, one queue per subscriber.
"""
import asyncio
import json
import logging
from typing import Dict, Any, Set

from .publisher import EventPublisher

logger = logging.getLogger(__name__)


class InMemoryEventPublisher(EventPublisher):
    """
    In-process publisher.

    Slow subscribers lose messages once their queue is full rather than
    blocking the transition that published them.
    """

    def __init__(self, maxsize: int = 100):
        self._channels: Dict[str, Set[asyncio.Queue]] = {}
        self._lock = asyncio.Lock()
        self._maxsize = maxsize

    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        self.validate_message(message)
        serialized = self._serialize_message(message)

        async with self._lock:
            queues = list(self._channels.get(channel, ()))
        for queue in queues:
            try:
                queue.put_nowait(serialized)
            except asyncio.QueueFull:
                logger.warning(f"Dropping event for slow subscriber on {channel}")

    async def open_queue(self, channel: str) -> asyncio.Queue:
        """Register a raw subscriber queue; messages arrive as JSON strings."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        async with self._lock:
            self._channels.setdefault(channel, set()).add(queue)
        return queue

    async def close_queue(self, channel: str, queue: asyncio.Queue) -> None:
        async with self._lock:
            if channel in self._channels:
                self._channels[channel].discard(queue)

    async def subscribe(self, channel: str):
        queue = await self.open_queue(channel)
        try:
            while True:
                serialized = await queue.get()
                if serialized is None:
                    # close() signals shutdown
                    return
                try:
                    yield json.loads(serialized)
                except json.JSONDecodeError:
                    continue
        finally:
            await self.close_queue(channel, queue)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def close(self) -> None:
        """Close all channels."""
        async with self._lock:
            for queues in self._channels.values():
                for queue in queues:
                    if queue.full():
                        # Drop the oldest message so the sentinel fits
                        queue.get_nowait()
                    queue.put_nowait(None)
            self._channels.clear()
