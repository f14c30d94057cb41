"""Lifecycle notifications.

Every runtime component emits named events through an
:class:`EventEmitter`. Listeners are plain synchronous callables; a
listener that raises is logged and skipped so that observers can never
break registration, routing or execution.

:class:`EventBusBridge` forwards events onto any
:class:`~switchyard_runtime.protocols.EventBusAdapter` as JSON messages.
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import json
import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from switchyard_core.logging import get_logger

if TYPE_CHECKING:
    from switchyard_runtime.protocols.event_bus import EventBusAdapter

logger = get_logger("events")

# ── Event names ─────────────────────────────────────────────────────

ADAPTER_REGISTERED = "adapter.registered"
ADAPTER_DEFAULT_CHANGED = "adapter.default_changed"
ADAPTER_UNREGISTERED = "adapter.unregistered"
ADAPTER_PERFORMANCE_RESET = "adapter.performance_reset"
CAPABILITY_CHANGED = "capability.changed"
TASK_ROUTED = "task.routed"
ROUTE_CACHE_HIT = "route.cache_hit"
CACHE_CLEARED = "cache.cleared"
STRATEGY_SUCCESS = "strategy.success"
STRATEGY_FAILED = "strategy.failed"
STRATEGY_EXHAUSTED = "strategy.exhausted"
BATCH_COMPLETED = "batch.completed"
STREAM_CHUNK = "stream.chunk"
STATISTICS_RESET = "statistics.reset"

ALL_EVENTS = "*"


@dataclass(frozen=True, slots=True)
class Event:
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Listener = Callable[[Event], None]


class EventEmitter:
    """Synchronous in-process notification hub."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, name: str, listener: Listener) -> Listener:
        """Subscribe *listener* to *name* (``"*"`` for every event)."""
        self._listeners[name].append(listener)
        return listener

    def off(self, name: str, listener: Listener) -> None:
        listeners = self._listeners.get(name, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, []))

    def emit(self, name: str, /, **payload: Any) -> Event:
        """Notify listeners of *name*; payload keys may include ``name``."""
        event = Event(name=name, payload=payload)
        targets = [*self._listeners.get(name, []), *self._listeners.get(ALL_EVENTS, [])]
        for listener in targets:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed on %s", listener, name)
        return event


# ── Event bus forwarding ─────────────────────────────────────────────


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: _jsonable(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return repr(value)


def encode_event(event: Event) -> bytes:
    return json.dumps({
        "event": event.name,
        "ts": event.timestamp,
        **{k: _jsonable(v) for k, v in event.payload.items()},
    }).encode()


class EventBusBridge:
    """Queue emitted events and publish them to an event bus.

    Attaching is synchronous (events are only queued); publishing happens
    in :meth:`flush` or in the long-running :meth:`run` loop. At most
    *max_pending* events are held; once full the oldest is dropped.
    """

    def __init__(
        self,
        bus: EventBusAdapter,
        topic: str = "switchyard.events",
        max_pending: int = 1000,
    ) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self._bus = bus
        self._topic = topic
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_pending)
        self.dropped = 0
        self._attached: list[EventEmitter] = []

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def attach(self, emitter: EventEmitter) -> None:
        emitter.on(ALL_EVENTS, self._enqueue)
        self._attached.append(emitter)

    def detach(self) -> None:
        for emitter in self._attached:
            emitter.off(ALL_EVENTS, self._enqueue)
        self._attached.clear()

    def _enqueue(self, event: Event) -> None:
        if self._queue.full():
            stale = self._queue.get_nowait()
            self.dropped += 1
            logger.debug("Bridge queue full, dropped %s", stale.name)
        self._queue.put_nowait(event)

    async def flush(self) -> int:
        """Publish everything queued so far; return the number published."""
        published = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            await self._publish(event)
            published += 1
        return published

    async def run(self) -> None:
        """Publish events as they arrive until cancelled."""
        while True:
            event = await self._queue.get()
            await self._publish(event)

    async def _publish(self, event: Event) -> None:
        try:
            await self._bus.publish(
                self._topic,
                encode_event(event),
                key=event.payload.get("task_id") or event.payload.get("name"),
            )
        except Exception:
            logger.debug(
                "Failed to publish %s to %s", event.name, self._topic, exc_info=True
            )
