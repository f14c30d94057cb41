"""In-process backend: zero dependencies, in-memory only."""
from __future__ import annotations

from switchyard_runtime.backends.memory.event_bus import InProcessEventBus

__all__ = [
    "InProcessEventBus",
]
