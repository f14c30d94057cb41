from __future__ import annotations

import asyncio
import time
import uuid
from collections import defaultdict, deque
from typing import TYPE_CHECKING

from switchyard_core.types import Message, TopicConfig

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class InProcessEventBus:
    """In-memory event bus with a bounded replay log per topic.

    Live subscribers each get their own queue. Every published message is
    also appended to the topic's log (``TopicConfig.max_messages`` long)
    so that late readers can inspect recent lifecycle events.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue[Message]]] = defaultdict(list)
        self._topics: dict[str, TopicConfig] = {}
        self._logs: dict[str, deque[Message]] = {}
        self._lock = asyncio.Lock()

    def _log_for(self, topic: str) -> deque[Message]:
        if topic not in self._logs:
            config = self._topics.get(topic) or TopicConfig()
            self._logs[topic] = deque(maxlen=config.max_messages)
        return self._logs[topic]

    async def publish(self, topic: str, message: bytes, key: str | None = None) -> str:
        limit = (self._topics.get(topic) or TopicConfig()).max_message_bytes
        if len(message) > limit:
            raise ValueError(
                f"Message of {len(message)} bytes exceeds {limit} byte limit for {topic!r}"
            )
        msg = Message(
            id=uuid.uuid4().hex, topic=topic, payload=message, key=key, timestamp=time.time()
        )
        async with self._lock:
            self._log_for(topic).append(msg)
            for queue in self._subscribers.get(topic, []):
                queue.put_nowait(msg)
        return msg.id

    async def subscribe(self, topic: str, group: str | None = None) -> AsyncIterator[Message]:
        # Consumer groups are not modelled in-process; every subscriber sees every message.
        queue: asyncio.Queue[Message] = asyncio.Queue()
        async with self._lock:
            self._subscribers[topic].append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            async with self._lock:
                if queue in self._subscribers.get(topic, []):
                    self._subscribers[topic].remove(queue)

    def recent(self, topic: str, limit: int | None = None) -> list[Message]:
        """Return logged messages for *topic*, oldest first."""
        log = list(self._logs.get(topic, ()))
        return log if limit is None else log[-limit:]

    async def create_topic(self, topic: str, config: TopicConfig | None = None) -> None:
        config = config or TopicConfig()
        async with self._lock:
            if topic in self._topics:
                if self._topics[topic] != config:
                    raise ValueError(f"Topic {topic!r} already exists with different config")
                return
            self._topics[topic] = config
            if topic in self._logs:
                self._logs[topic] = deque(self._logs[topic], maxlen=config.max_messages)

    async def delete_topic(self, topic: str) -> None:
        async with self._lock:
            self._topics.pop(topic, None)
            self._logs.pop(topic, None)
            self._subscribers.pop(topic, None)
