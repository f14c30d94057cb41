"""Graceful-degradation execution engine.

:class:`StrategyEngine` runs a task through an ordered chain of execution
strategies (``sub_agents`` -> ``parallel`` -> ``streaming`` -> ``batched``
-> ``sequential`` by default), skipping those the adapter cannot provide
or the task does not suit, and falling back to the next one on failure.
Every result carries the full attempt trail.

Timeouts race the strategy against a timer with :func:`asyncio.wait`.
The losing adapter call is **not** cancelled: it keeps running in the
background and is tracked in :attr:`StrategyEngine.background_tasks`
until it settles. Callers must treat an adapter as possibly still busy
after a timeout has been reported.
"""
from __future__ import annotations

import asyncio
import functools
import inspect
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from switchyard_core.config import StrategyConfig
from switchyard_core.errors import (
    AllStrategiesExhaustedError,
    StrategyExecutionError,
    StrategyTimeoutError,
    StrategyUnavailableError,
)
from switchyard_core.logging import get_logger
from switchyard_core.types import AttemptStatus, StrategyAttempt

from switchyard_runtime.analysis import explicit_strategy
from switchyard_runtime.decomposition import (
    aggregate_batch_results,
    aggregate_parallel_results,
    build_sub_agent_plan,
    chunk_output,
    decompose_for_parallel,
    decompose_into_batches,
)
from switchyard_runtime.events import (
    BATCH_COMPLETED,
    STATISTICS_RESET,
    STRATEGY_EXHAUSTED,
    STRATEGY_FAILED,
    STRATEGY_SUCCESS,
    STREAM_CHUNK,
    EventEmitter,
)

if TYPE_CHECKING:
    from switchyard_core.types import ExecutionResult, StreamChunk, Task

    from switchyard_runtime.protocols.adapter import TaskAdapter

logger = get_logger("strategy")

ChunkHandler = Callable[["StreamChunk"], "Awaitable[None] | None"]

# strategy -> capability the adapter must report
_REQUIRED_CAPABILITY: dict[str, str] = {
    "sub_agents": "sub_agents",
    "parallel": "parallel_execution",
    "streaming": "streaming",
}
_ALWAYS_AVAILABLE = frozenset({"batched", "sequential"})


@dataclass(frozen=True, slots=True)
class _RunOptions:
    timeout: float | None = None
    batch_size: int | None = None
    chunk_size: int | None = None
    on_chunk: ChunkHandler | None = None
    orchestration_mode: str = "parallel"


@dataclass(slots=True)
class _StrategyStats:
    attempts: int = 0
    successes: int = 0
    failures: int = 0
    total_duration_ms: float = 0.0
    failure_reasons: Counter[str] = field(default_factory=Counter)


class StrategyEngine:
    """Executes tasks on one adapter with automatic strategy fallback.

    *name* is the key the adapter is registered under; it selects the
    task's vendor extension block and defaults to the adapter's own name.
    """

    def __init__(
        self,
        adapter: TaskAdapter,
        config: StrategyConfig | None = None,
        *,
        events: EventEmitter | None = None,
        name: str | None = None,
    ) -> None:
        self._adapter = adapter
        self._name = name
        self._config = config or StrategyConfig()
        self._events = events or EventEmitter()
        self._stats: dict[str, _StrategyStats] = {}
        self.background_tasks: set[asyncio.Future[Any]] = set()
        self._handlers: dict[
            str, Callable[[Task, _RunOptions], Awaitable[ExecutionResult]]
        ] = {
            "sub_agents": self._execute_with_sub_agents,
            "parallel": self._execute_in_parallel,
            "streaming": self._execute_with_streaming,
            "batched": self._execute_in_batches,
            "sequential": self._execute_sequentially,
        }

    @property
    def adapter(self) -> TaskAdapter:
        return self._adapter

    @property
    def events(self) -> EventEmitter:
        return self._events

    @property
    def adapter_name(self) -> str:
        if self._name is not None:
            return self._name
        return getattr(self._adapter, "name", type(self._adapter).__name__)

    # ── Public API ──────────────────────────────────────────────────

    async def execute(
        self,
        task: Task,
        *,
        strategies: list[str] | None = None,
        strategy: str | None = None,
        timeout: float | None = None,
        batch_size: int | None = None,
        chunk_size: int | None = None,
        on_chunk: ChunkHandler | None = None,
        orchestration_mode: str = "parallel",
    ) -> ExecutionResult:
        """Run *task*, degrading through the strategy chain until one works.

        An explicit strategy (vendor extension for this adapter, then
        ``task.execution_strategy``, then *strategy*) is tried first. If
        it fails the ordinary chain runs in full, so the explicit
        strategy may be attempted again there.

        Raises:
            AllStrategiesExhaustedError: no strategy produced a result.
        """
        options = _RunOptions(
            timeout=timeout,
            batch_size=batch_size,
            chunk_size=chunk_size,
            on_chunk=on_chunk,
            orchestration_mode=orchestration_mode,
        )
        started = time.monotonic()
        attempts: list[StrategyAttempt] = []

        explicit = explicit_strategy(task, self.adapter_name) or strategy
        if explicit:
            if explicit in self._handlers:
                result = await self._attempt(explicit, task, options, attempts, started)
                if result is not None:
                    return result
            else:
                attempts.append(
                    StrategyAttempt(
                        strategy=explicit,
                        status=AttemptStatus.SKIPPED,
                        reason="Unknown strategy",
                    )
                )

        for name in strategies or self._config.strategies:
            if not self.is_available(name):
                attempts.append(
                    StrategyAttempt(
                        strategy=name, status=AttemptStatus.SKIPPED, reason="Not available"
                    )
                )
                continue
            if not self.is_suitable(name, task):
                attempts.append(
                    StrategyAttempt(
                        strategy=name,
                        status=AttemptStatus.SKIPPED,
                        reason="Not suitable for task",
                    )
                )
                continue
            result = await self._attempt(name, task, options, attempts, started)
            if result is not None:
                return result

        duration_ms = _elapsed_ms(started)
        logger.error(
            "All strategies exhausted for task %s after %d attempt(s)",
            task.id,
            len(attempts),
        )
        self._events.emit(
            STRATEGY_EXHAUSTED,
            task_id=task.id,
            attempts=tuple(attempts),
            duration_ms=duration_ms,
        )
        raise AllStrategiesExhaustedError(tuple(attempts), duration_ms)

    def is_available(self, strategy: str) -> bool:
        if strategy in _ALWAYS_AVAILABLE:
            return True
        capability = _REQUIRED_CAPABILITY.get(strategy)
        return capability is not None and self._adapter.supports_feature(capability)

    def is_suitable(self, strategy: str, task: Task) -> bool:
        cfg = self._config
        files = task.file_count
        if strategy == "sub_agents":
            return (
                task.complexity == "high"
                or len(task.description) > cfg.sub_agents_min_description
                or files > cfg.sub_agents_min_files
            )
        if strategy == "parallel":
            return files > cfg.parallel_min_files or task.type in ("validation", "testing")
        if strategy == "streaming":
            return task.type == "generation" or task.streaming or "stream" in task.description
        if strategy == "batched":
            return files > cfg.batch_min_files
        return strategy == "sequential"

    # ── Attempt bookkeeping ─────────────────────────────────────────

    async def _attempt(
        self,
        strategy: str,
        task: Task,
        options: _RunOptions,
        attempts: list[StrategyAttempt],
        started: float,
    ) -> ExecutionResult | None:
        """Run one strategy; return its result, or *None* after a failure."""
        limit = options.timeout if options.timeout is not None else self._config.timeout_for(strategy)
        t0 = time.monotonic()
        try:
            result = await self._run_with_timeout(
                self._handlers[strategy](task, options), limit, task, strategy
            )
        except Exception as exc:
            duration_ms = _elapsed_ms(t0)
            error = str(exc) or type(exc).__name__
            self._record_failure(strategy, error)
            attempts.append(
                StrategyAttempt(
                    strategy=strategy,
                    status=AttemptStatus.FAILED,
                    duration_ms=duration_ms,
                    error=error,
                )
            )
            logger.warning(
                "Strategy %s failed for task %s: %s",
                strategy,
                task.id,
                error,
                extra={"task_id": task.id, "adapter": self.adapter_name, "strategy": strategy},
            )
            self._events.emit(
                STRATEGY_FAILED,
                task_id=task.id,
                strategy=strategy,
                error=error,
                duration_ms=duration_ms,
            )
            return None

        duration_ms = _elapsed_ms(t0)
        self._record_success(strategy, duration_ms)
        attempts.append(
            StrategyAttempt(
                strategy=strategy, status=AttemptStatus.SUCCESS, duration_ms=duration_ms
            )
        )
        logger.debug("Strategy %s succeeded for task %s in %.1fms", strategy, task.id, duration_ms)
        self._events.emit(
            STRATEGY_SUCCESS,
            task_id=task.id,
            strategy=strategy,
            duration_ms=duration_ms,
            attempts=tuple(attempts),
        )
        return replace(
            result,
            strategy=strategy,
            attempts=tuple(attempts),
            total_duration_ms=_elapsed_ms(started),
        )

    async def _run_with_timeout(
        self,
        call: Awaitable[ExecutionResult],
        timeout: float,
        task: Task,
        strategy: str,
    ) -> ExecutionResult:
        job = asyncio.ensure_future(call)
        done, _ = await asyncio.wait({job}, timeout=timeout)
        if job in done:
            return job.result()

        # Left running on purpose; see module docstring.
        self.background_tasks.add(job)
        job.add_done_callback(functools.partial(self._settle_background, task.id, strategy))
        raise StrategyTimeoutError()

    def _settle_background(
        self, task_id: str, strategy: str, job: asyncio.Future[Any]
    ) -> None:
        self.background_tasks.discard(job)
        if job.cancelled():
            logger.debug("Timed-out %s call for task %s was cancelled", strategy, task_id)
            return
        exc = job.exception()
        if exc is not None:
            logger.warning(
                "Timed-out %s call for task %s later failed: %s", strategy, task_id, exc
            )
        else:
            logger.info("Timed-out %s call for task %s completed in background", strategy, task_id)

    # ── Strategy implementations ────────────────────────────────────

    async def _execute_with_sub_agents(
        self, task: Task, options: _RunOptions
    ) -> ExecutionResult:
        if not self._adapter.supports_feature("sub_agents"):
            raise StrategyUnavailableError("Sub-agents not supported")

        plan = build_sub_agent_plan(
            task, self._sub_agent_limit(), options.orchestration_mode
        )
        runner = getattr(self._adapter, "execute_with_sub_agents", None)
        if runner is None:
            raise StrategyExecutionError("Sub-agent execution not implemented")
        return await runner(plan)

    async def _execute_in_parallel(
        self, task: Task, options: _RunOptions
    ) -> ExecutionResult:
        if not self._adapter.supports_feature("parallel_execution"):
            raise StrategyUnavailableError("Parallel execution not supported")

        subtasks = decompose_for_parallel(task)
        if len(subtasks) <= 1:
            return await self._execute_sequentially(task, options)

        limit = _config_int(
            self._adapter.get_feature_config("parallel_execution"),
            "max_concurrent",
            self._config.parallel_max_concurrent,
        )
        outcomes: list[ExecutionResult | BaseException] = []
        for i in range(0, len(subtasks), limit):
            batch = subtasks[i : i + limit]
            outcomes.extend(
                await asyncio.gather(
                    *(self._adapter.execute_task(t) for t in batch),
                    return_exceptions=True,
                )
            )
        return aggregate_parallel_results(task, subtasks, outcomes)

    async def _execute_with_streaming(
        self, task: Task, options: _RunOptions
    ) -> ExecutionResult:
        if not self._adapter.supports_feature("streaming"):
            raise StrategyUnavailableError("Streaming not supported")

        handler = options.on_chunk or functools.partial(self._default_chunk_handler, task.id)

        async def on_chunk(chunk: StreamChunk) -> None:
            outcome = handler(chunk)
            if inspect.isawaitable(outcome):
                await outcome

        native = getattr(self._adapter, "execute_with_streaming", None)
        if native is not None:
            return await native(replace(task, streaming=True), on_chunk)

        result = await self._adapter.execute_task(task)
        size = options.chunk_size or self._config.stream_chunk_size
        for chunk in chunk_output(result.output, size):
            await on_chunk(chunk)
        return result

    async def _execute_in_batches(
        self, task: Task, options: _RunOptions
    ) -> ExecutionResult:
        size = options.batch_size or self._config.batch_size
        if task.file_count <= size:
            return await self._execute_sequentially(task, options)

        batches = decompose_into_batches(task, size)
        results: list[ExecutionResult] = []
        for batch in batches:
            results.append(await self._adapter.execute_task(batch))
            self._events.emit(
                BATCH_COMPLETED,
                task_id=task.id,
                batch_id=batch.id,
                progress=len(results) / len(batches),
            )
        return aggregate_batch_results(task, results)

    async def _execute_sequentially(
        self, task: Task, options: _RunOptions
    ) -> ExecutionResult:
        return await self._adapter.execute_task(task)

    def _default_chunk_handler(self, task_id: str, chunk: StreamChunk) -> None:
        self._events.emit(
            STREAM_CHUNK, task_id=task_id, chunk=chunk.chunk, progress=chunk.progress
        )

    def _sub_agent_limit(self) -> int:
        configured = _config_int(
            self._adapter.get_feature_config("sub_agents"), "max_concurrent", 0
        )
        if configured > 0:
            return configured
        declared = self._adapter.capabilities.sub_agents.max_concurrent
        return declared if declared > 0 else self._config.sub_agents_max_concurrent

    # ── Statistics ──────────────────────────────────────────────────

    def _record_success(self, strategy: str, duration_ms: float) -> None:
        stats = self._stats.setdefault(strategy, _StrategyStats())
        stats.attempts += 1
        stats.successes += 1
        stats.total_duration_ms += duration_ms

    def _record_failure(self, strategy: str, reason: str) -> None:
        stats = self._stats.setdefault(strategy, _StrategyStats())
        stats.attempts += 1
        stats.failures += 1
        stats.failure_reasons[reason] += 1

    def get_statistics(self) -> dict[str, dict[str, Any]]:
        return {
            name: {
                "attempts": s.attempts,
                "successes": s.successes,
                "failures": s.failures,
                "total_duration_ms": s.total_duration_ms,
                "success_rate": s.successes / s.attempts if s.attempts else 0.0,
                "avg_duration_ms": (
                    s.total_duration_ms / s.successes if s.successes else 0.0
                ),
                "top_failure_reasons": [
                    {"reason": reason, "count": count}
                    for reason, count in s.failure_reasons.most_common(3)
                ],
            }
            for name, s in self._stats.items()
        }

    def reset_statistics(self) -> None:
        self._stats.clear()
        self._events.emit(STATISTICS_RESET, adapter=self.adapter_name)


def _elapsed_ms(since: float) -> float:
    return (time.monotonic() - since) * 1000


def _config_int(config: Any, key: str, default: int) -> int:
    if isinstance(config, Mapping) and config.get(key):
        return int(config[key])
    return default
