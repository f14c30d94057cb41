from __future__ import annotations

from typing import TYPE_CHECKING

from switchyard_core.config import SwitchyardConfig
from switchyard_core.logging import get_logger

from switchyard_runtime.adapters.static import StaticAdapter
from switchyard_runtime.backends.memory import InProcessEventBus
from switchyard_runtime.context import RuntimeContext
from switchyard_runtime.dispatcher import TaskDispatcher
from switchyard_runtime.events import EventBusBridge, EventEmitter
from switchyard_runtime.registry import AdapterRegistry
from switchyard_runtime.router import TaskRouter

if TYPE_CHECKING:
    from switchyard_runtime.protocols.adapter import TaskAdapter

logger = get_logger("builder")


class RuntimeBuilder:
    """Build a RuntimeContext from configuration.

    Usage:
        config = SwitchyardConfig.load()
        ctx = await RuntimeBuilder(config).build()

    Every ``[adapters.<name>]`` table becomes a :class:`StaticAdapter`.
    Real backends are added with :meth:`add_adapter` before building.
    """

    def __init__(self, config: SwitchyardConfig | None = None) -> None:
        self._config = config or SwitchyardConfig()
        self._extra: list[tuple[str, TaskAdapter, str | None, bool]] = []

    def add_adapter(
        self,
        name: str,
        adapter: TaskAdapter,
        version: str | None = None,
        *,
        make_default: bool = True,
    ) -> RuntimeBuilder:
        self._extra.append((name, adapter, version, make_default))
        return self

    async def build(self) -> RuntimeContext:
        events = EventEmitter()
        event_bus = InProcessEventBus()
        bridge = EventBusBridge(event_bus)
        bridge.attach(events)

        registry = AdapterRegistry(events)
        for spec in self._config.adapters:
            registry.register(
                spec.name,
                StaticAdapter.from_spec(spec, events=events),
                spec.version,
                make_default=spec.default,
            )
        for name, adapter, version, make_default in self._extra:
            registry.register(name, adapter, version, make_default=make_default)

        router = TaskRouter(registry, self._config.router, events=events)
        dispatcher = TaskDispatcher(
            router, registry, self._config.strategy, events=events
        )
        logger.info(
            "Built runtime for %s with %d adapter(s)",
            self._config.project_name,
            len(registry.describe()),
        )
        return RuntimeContext(
            events=events,
            registry=registry,
            router=router,
            dispatcher=dispatcher,
            event_bus=event_bus,
            bridge=bridge,
            config=self._config,
        )
