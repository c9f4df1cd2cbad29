"""
Simple Async Pub/Sub Event Bus

A lightweight publish/subscribe utility built on top of asyncio queues.
The ticker-set writers publish market diagnostics (unresolved symbols,
unsupported quotes) on the "diagnostics" topic; any number of consumers
(alerting, dashboards, tests) subscribe and read them independently.
"""

import asyncio
from typing import Any, Callable, Dict, DefaultDict, Set
from collections import defaultdict

from core.logging import get_logger


DIAGNOSTICS_TOPIC = "diagnostics"


class EventBus:
    """
    Async event bus with topic-based pub/sub.

    - Each subscriber gets its own asyncio.Queue and will not block publishers.
    - Unsubscribing is important to avoid queue leaks when consumers go away.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._topics: DefaultDict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._max_queue_size = max_queue_size
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    async def subscribe(self, topic: str) -> asyncio.Queue:
        """
        Subscribe to a topic. Returns an asyncio.Queue for receiving events.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        async with self._lock:
            self._topics[topic].add(queue)
        self._logger.debug(f"Subscriber added to topic '{topic}'. total={len(self._topics[topic])}")
        return queue

    async def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        """
        Unsubscribe a queue from a topic.
        """
        async with self._lock:
            if queue in self._topics.get(topic, set()):
                self._topics[topic].remove(queue)
                while not queue.empty():
                    queue.get_nowait()
        self._logger.debug(f"Subscriber removed from topic '{topic}'. total={len(self._topics[topic])}")

    def publish_nowait(self, topic: str, event: Dict[str, Any]) -> int:
        """
        Publish an event from synchronous code running on the event loop.

        Drops the event for any subscriber whose queue is full.

        Returns:
            int: Number of subscribers that received the event
        """
        delivered = 0
        for q in list(self._topics.get(topic, set())):
            try:
                q.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                self._logger.warning(f"Dropping event for topic '{topic}' due to full queue")
        return delivered

    async def publish(self, topic: str, event: Dict[str, Any]) -> None:
        """
        Publish an event to a topic. Drops events if subscriber queue is full.
        """
        self.publish_nowait(topic, event)

    def publisher(self, topic: str) -> Callable[[Dict[str, Any]], None]:
        """Return a callback publishing to `topic`, suitable as a normalizer on_event hook."""
        def _publish(event: Dict[str, Any]) -> None:
            self.publish_nowait(topic, event)
        return _publish


# Singleton event bus for the application
bus = EventBus()
