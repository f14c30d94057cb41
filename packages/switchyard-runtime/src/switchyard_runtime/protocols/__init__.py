"""Protocol interfaces for the Switchyard runtime."""
from __future__ import annotations

from switchyard_runtime.protocols.adapter import TaskAdapter
from switchyard_runtime.protocols.event_bus import EventBusAdapter

__all__ = [
    "EventBusAdapter",
    "TaskAdapter",
]
