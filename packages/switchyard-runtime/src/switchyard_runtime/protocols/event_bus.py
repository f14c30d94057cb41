from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from switchyard_core.types import Message, TopicConfig


@runtime_checkable
class EventBusAdapter(Protocol):
    """Transport that lifecycle events are forwarded onto.

    :class:`~switchyard_runtime.events.EventBusBridge` publishes one JSON
    document per event, keyed by the task id (or adapter name) the event
    concerns.
    """

    async def publish(self, topic: str, message: bytes, key: str | None = None) -> str:
        """Append *message* to *topic* and return its id.

        Raises:
            ValueError: the message exceeds the topic's size limit.
        """
        ...

    def subscribe(self, topic: str, group: str | None = None) -> AsyncIterator[Message]:
        """Yield messages published to *topic* after subscribing."""
        ...

    async def create_topic(self, topic: str, config: TopicConfig | None = None) -> None:
        """Create *topic*; recreating it with a different config is an error."""
        ...

    async def delete_topic(self, topic: str) -> None: ...
