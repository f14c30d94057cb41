from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from switchyard_core.config import SwitchyardConfig

    from switchyard_runtime.dispatcher import TaskDispatcher
    from switchyard_runtime.events import EventBusBridge, EventEmitter
    from switchyard_runtime.protocols.event_bus import EventBusAdapter
    from switchyard_runtime.registry import AdapterRegistry
    from switchyard_runtime.router import TaskRouter


@dataclass(slots=True)
class RuntimeContext:
    """Everything a caller needs to route and run tasks.

    Created once at startup by the RuntimeBuilder. All components share
    the same ``events`` emitter, which the ``bridge`` forwards onto
    ``event_bus``.
    """
    events: EventEmitter
    registry: AdapterRegistry
    router: TaskRouter
    dispatcher: TaskDispatcher
    event_bus: EventBusAdapter
    bridge: EventBusBridge
    config: SwitchyardConfig
