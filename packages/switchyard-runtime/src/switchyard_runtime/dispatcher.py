"""Route, execute, and feed timings back into adapter selection."""
from __future__ import annotations

import time
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from switchyard_core.errors import AllStrategiesExhaustedError
from switchyard_core.logging import get_logger

from switchyard_runtime.strategy import StrategyEngine

if TYPE_CHECKING:
    from switchyard_core.config import StrategyConfig
    from switchyard_core.types import ExecutionResult, RoutingDecision, Task

    from switchyard_runtime.events import EventEmitter
    from switchyard_runtime.registry import AdapterRegistry
    from switchyard_runtime.router import TaskRouter

logger = get_logger("dispatcher")


class TaskDispatcher:
    """Runs tasks end to end: route, execute with fallback, record metrics.

    One :class:`StrategyEngine` is kept per adapter name+version so that
    strategy statistics accumulate across tasks. The routed strategy is
    passed to the engine as the explicit first choice; the engine's
    ordinary chain still applies if it fails.
    """

    def __init__(
        self,
        router: TaskRouter,
        registry: AdapterRegistry,
        config: StrategyConfig | None = None,
        *,
        events: EventEmitter | None = None,
    ) -> None:
        self._router = router
        self._registry = registry
        self._config = config
        self._events = events
        self._engines: dict[tuple[str, str], StrategyEngine] = {}

    def engine_for(self, decision: RoutingDecision) -> StrategyEngine:
        key = (decision.adapter_name, decision.adapter_version)
        engine = self._engines.get(key)
        if engine is None or engine.adapter is not decision.adapter:
            engine = StrategyEngine(
                decision.adapter,
                self._config,
                events=self._events,
                name=decision.adapter_name,
            )
            self._engines[key] = engine
        return engine

    def engines(self) -> dict[tuple[str, str], StrategyEngine]:
        return dict(self._engines)

    async def dispatch(self, task: Task, **options: Any) -> ExecutionResult:
        """Route and execute *task*.

        *options* are forwarded to :meth:`StrategyEngine.execute`.

        Raises:
            NoMatchingAdapterError: routing found no adapter.
            AllStrategiesExhaustedError: every strategy failed; the
                failure is still recorded against the adapter first.
        """
        decision = await self._router.route(task)
        engine = self.engine_for(decision)
        options.setdefault("strategy", decision.strategy)

        start = time.monotonic()
        try:
            result = await engine.execute(task, **options)
        except AllStrategiesExhaustedError:
            self._registry.record_performance(
                decision.adapter_name,
                decision.adapter_version,
                (time.monotonic() - start) * 1000,
                failed=True,
            )
            logger.error(
                "Task %s failed on %s v%s",
                task.id,
                decision.adapter_name,
                decision.adapter_version,
                extra={"task_id": task.id, "adapter": decision.adapter_name},
            )
            raise

        self._registry.record_performance(
            decision.adapter_name,
            decision.adapter_version,
            (time.monotonic() - start) * 1000,
        )
        return replace(
            result,
            metadata={
                **result.metadata,
                "adapter": decision.adapter_name,
                "adapter_version": decision.adapter_version,
                "routed_strategy": decision.strategy,
            },
        )
