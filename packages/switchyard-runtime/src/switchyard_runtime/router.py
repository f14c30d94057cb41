"""Task routing: match a task to the best adapter and pick its strategy."""
from __future__ import annotations

import threading
import time
from collections import Counter
from collections.abc import Callable, Hashable
from typing import TYPE_CHECKING, Any

from switchyard_core.config import RouterConfig
from switchyard_core.errors import NoMatchingAdapterError
from switchyard_core.logging import get_logger
from switchyard_core.types import RoutedTask, RoutingDecision

from switchyard_runtime.analysis import (
    are_similar,
    explicit_strategy,
    infer_requirements,
    requirements_cache_key,
    strategy_overrides,
)
from switchyard_runtime.events import (
    CACHE_CLEARED,
    ROUTE_CACHE_HIT,
    TASK_ROUTED,
    EventEmitter,
)
from switchyard_runtime.registry import RoutingPreferences

if TYPE_CHECKING:
    from switchyard_core.types import RequirementProfile, Task

    from switchyard_runtime.protocols.adapter import TaskAdapter
    from switchyard_runtime.registry import AdapterRegistry

logger = get_logger("router")


class RoutingCache:
    """Time-bounded decision cache with batched oldest-first eviction.

    When an insert pushes the size past ``max_entries``, the
    ``evict_count`` oldest decisions (by decision timestamp) are dropped
    in one pass. This approximates LRU without per-read bookkeeping.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 300.0,
        max_entries: int = 1000,
        evict_count: int = 100,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._evict_count = evict_count
        self._clock = clock
        self._entries: dict[Hashable, RoutingDecision] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> RoutingDecision | None:
        with self._lock:
            decision = self._entries.get(key)
            if decision is None:
                return None
            if self._clock() - decision.timestamp > self._ttl:
                del self._entries[key]
                return None
            return decision

    def put(self, key: Hashable, decision: RoutingDecision) -> None:
        with self._lock:
            self._entries[key] = decision
            if len(self._entries) > self._max_entries:
                oldest = sorted(self._entries, key=lambda k: self._entries[k].timestamp)
                for stale in oldest[: self._evict_count]:
                    del self._entries[stale]
                logger.debug(
                    "Routing cache over %d entries; evicted %d",
                    self._max_entries,
                    min(self._evict_count, len(oldest)),
                )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def decisions(self) -> list[RoutingDecision]:
        with self._lock:
            return list(self._entries.values())


class TaskRouter:
    """Routes tasks to adapters held by an :class:`AdapterRegistry`.

    Decisions are cached by normalized requirements, not by task
    identity, so two structurally similar tasks share one decision
    object for the cache TTL.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        config: RouterConfig | None = None,
        *,
        events: EventEmitter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._config = config or RouterConfig()
        self._events = events or EventEmitter()
        self._clock = clock
        self._preferences = RoutingPreferences(
            preferred_adapters=tuple(self._config.preferred_adapters),
            consider_performance=self._config.consider_performance,
        )
        self._cache = RoutingCache(
            ttl_seconds=self._config.cache_ttl_seconds,
            max_entries=self._config.cache_max_entries,
            evict_count=self._config.cache_evict_count,
            clock=clock,
        )

    @property
    def events(self) -> EventEmitter:
        return self._events

    @property
    def cache(self) -> RoutingCache:
        return self._cache

    # ── Analysis ────────────────────────────────────────────────────

    def analyze(self, task: Task) -> RequirementProfile:
        return infer_requirements(
            task,
            tokens_per_file=self._config.tokens_per_file,
            chars_per_token=self._config.chars_per_token,
        )

    def cache_key(self, task: Task) -> Hashable:
        requirements = self.analyze(task)
        batched = task.file_count > self._config.batch_min_files
        return requirements_cache_key(
            requirements, (*strategy_overrides(task), batched)
        )

    # ── Routing ─────────────────────────────────────────────────────

    async def route(self, task: Task) -> RoutingDecision:
        """Return the routing decision for *task*.

        Raises:
            NoMatchingAdapterError: no registered adapter can serve the
                task's requirements.
        """
        key = self.cache_key(task)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Routing cache hit for task %s -> %s", task.id, cached.adapter_name)
            self._events.emit(ROUTE_CACHE_HIT, task_id=task.id, adapter=cached.adapter_name)
            return cached

        requirements = self.analyze(task)
        match = self._registry.select_optimal(requirements, self._preferences)
        if match is None:
            raise NoMatchingAdapterError(
                f"No suitable adapter found for task {task.id!r} "
                f"(features: {', '.join(requirements.features) or 'none'})"
            )

        strategy = self.choose_strategy(match.adapter, task, requirements, vendor=match.name)
        decision = RoutingDecision(
            adapter=match.adapter,
            adapter_name=match.name,
            adapter_version=match.version,
            strategy=strategy,
            requirements=requirements,
            score=match.score,
            timestamp=self._clock(),
        )
        self._cache.put(key, decision)

        logger.info(
            "Routed task %s (%s) -> %s v%s via %s",
            task.id,
            task.type,
            match.name,
            match.version,
            strategy,
            extra={"task_id": task.id, "adapter": match.name, "strategy": strategy},
        )
        self._events.emit(
            TASK_ROUTED,
            task_id=task.id,
            task_type=task.type,
            adapter=match.name,
            version=match.version,
            strategy=strategy,
        )
        return decision

    def choose_strategy(
        self,
        adapter: TaskAdapter,
        task: Task,
        requirements: RequirementProfile,
        *,
        vendor: str | None = None,
    ) -> str:
        """First strategy in the fallback order the adapter can honour.

        An override embedded in the task always wins, whether or not the
        adapter supports it.
        """
        override = explicit_strategy(task, vendor or getattr(adapter, "name", None))
        if override:
            return override

        for strategy in self._config.fallback_strategies:
            if strategy == "sub_agents":
                if requirements.sub_agents and adapter.supports_feature("sub_agents"):
                    return strategy
            elif strategy == "parallel":
                if adapter.supports_feature("parallel_execution"):
                    return strategy
            elif strategy == "streaming":
                if requirements.streaming and adapter.supports_feature("streaming"):
                    return strategy
            elif strategy == "batched":
                if task.file_count > self._config.batch_min_files:
                    return strategy
            elif strategy == "sequential":
                return strategy
        return "sequential"

    async def route_batch(self, tasks: list[Task]) -> list[RoutedTask]:
        """Route similar tasks once per group; results follow input order."""
        routed: dict[int, RoutedTask] = {}
        for group in self._group_similar(tasks):
            primary, *members = group
            decision = await self.route(tasks[primary])
            routed[primary] = RoutedTask(task_id=tasks[primary].id, decision=decision)
            for idx in members:
                routed[idx] = RoutedTask(
                    task_id=tasks[idx].id, decision=decision, grouped=True
                )
        return [routed[i] for i in range(len(tasks))]

    def _group_similar(self, tasks: list[Task]) -> list[list[int]]:
        groups: list[list[int]] = []
        assigned: set[int] = set()
        for i, task in enumerate(tasks):
            if i in assigned:
                continue
            group = [i]
            assigned.add(i)
            for j in range(i + 1, len(tasks)):
                if j not in assigned and are_similar(
                    task,
                    tasks[j],
                    tolerance=self._config.similarity_tolerance,
                    tokens_per_file=self._config.tokens_per_file,
                    chars_per_token=self._config.chars_per_token,
                ):
                    group.append(j)
                    assigned.add(j)
            groups.append(group)
        return groups

    # ── Introspection ───────────────────────────────────────────────

    def get_statistics(self) -> dict[str, Any]:
        decisions = self._cache.decisions()
        adapter_usage = Counter(f"{d.adapter_name}:{d.adapter_version}" for d in decisions)
        strategy_usage = Counter(d.strategy for d in decisions)
        return {
            "cache_size": len(decisions),
            "adapter_usage": dict(adapter_usage),
            "strategy_usage": dict(strategy_usage),
            "average_score": (
                sum(d.score for d in decisions) / len(decisions) if decisions else 0.0
            ),
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Routing cache cleared")
        self._events.emit(CACHE_CLEARED)
