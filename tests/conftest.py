from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from switchyard_core.types import ExecutionResult, Task, TaskContext
from switchyard_runtime.adapter import BaseAdapter
from switchyard_runtime.capabilities import CapabilityProfile, FeatureFlag, SubAgentSupport
from switchyard_runtime.events import ALL_EVENTS, EventEmitter
from switchyard_runtime.registry import AdapterRegistry
from switchyard_runtime.router import TaskRouter


class FakeAdapter(BaseAdapter):
    """Adapter whose behaviour is scripted per test.

    ``fail_when`` decides, per task, whether ``execute_task`` raises;
    ``delay`` makes every call sleep first.
    """

    def __init__(
        self,
        name: str = "fake",
        capabilities: CapabilityProfile | None = None,
        *,
        api_version: str = "1.0.0",
        fail_when=None,
        delay: float = 0.0,
        events: EventEmitter | None = None,
    ) -> None:
        super().__init__(capabilities, name=name, events=events)
        self._api_version = api_version
        self._fail_when = fail_when
        self._delay = delay
        self.calls: list[Task] = []
        self.finished: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def api_version(self) -> str:
        return self._api_version

    async def execute_task(self, task: Task) -> ExecutionResult:
        self.calls.append(task)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
        finally:
            self.in_flight -= 1
        if self._fail_when is not None and self._fail_when(task):
            raise RuntimeError(f"boom: {task.id}")
        self.finished.append(task.id)
        return ExecutionResult(
            task_id=task.id,
            output=f"done {task.id}",
            artifacts=(task.id,),
        )


class SubAgentAdapter(FakeAdapter):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.plans = []

    async def execute_with_sub_agents(self, plan) -> ExecutionResult:
        self.plans.append(plan)
        return ExecutionResult(task_id=plan.parent_id, output="delegated")


class StreamingAdapter(FakeAdapter):
    async def execute_with_streaming(self, task, on_chunk) -> ExecutionResult:
        self.calls.append(task)
        for i, part in enumerate(("ab", "cd")):
            await on_chunk(_chunk(part, (i + 1) / 2))
        return ExecutionResult(task_id=task.id, output="abcd")


def _chunk(text: str, progress: float):
    from switchyard_core.types import StreamChunk

    return StreamChunk(chunk=text, progress=progress)


def make_task(
    task_id: str = "t1",
    task_type: str = "comprehension",
    description: str = "explain the module",
    *,
    files: int = 0,
    **kwargs,
) -> Task:
    return Task(
        id=task_id,
        type=task_type,
        description=description,
        context=TaskContext(files=tuple(f"src/f{i}.py" for i in range(files))),
        **kwargs,
    )


BASIC_FEATURES = {
    name: True
    for name in (
        "comprehension",
        "explanation",
        "generation",
        "refactoring",
        "validation",
        "testing",
        "exploration",
        "debugging",
        "documentation",
    )
}


def basic_profile(**overrides) -> CapabilityProfile:
    """A capable profile with no advanced execution features."""
    values = {
        "max_context_tokens": 100_000,
        "supported_languages": frozenset({"python", "javascript"}),
        "multi_file": True,
        "features": dict(BASIC_FEATURES),
    }
    values.update(overrides)
    return CapabilityProfile(**values)


def advanced_profile(**overrides) -> CapabilityProfile:
    values = {
        "streaming": True,
        "sub_agents": SubAgentSupport(supported=True, max_concurrent=3),
        "features": {
            **BASIC_FEATURES,
            "parallel_execution": FeatureFlag(True, {"max_concurrent": 2}),
        },
    }
    values.update(overrides)
    return basic_profile(**values)


class EventLog:
    """Collects every event emitted on an emitter."""

    def __init__(self, emitter: EventEmitter) -> None:
        self.events = []
        emitter.on(ALL_EVENTS, self.events.append)

    def named(self, name: str):
        return [e for e in self.events if e.name == name]


@pytest.fixture
def events():
    return EventEmitter()


@pytest.fixture
def event_log(events):
    return EventLog(events)


@pytest.fixture
def registry(events):
    return AdapterRegistry(events)


@pytest.fixture
def router(registry, events):
    return TaskRouter(registry, events=events)


@pytest.fixture
def basic_adapter():
    return FakeAdapter("basic", basic_profile())


@pytest.fixture
def advanced_adapter():
    return FakeAdapter("advanced", advanced_profile())


@pytest_asyncio.fixture
async def memory_event_bus():
    from switchyard_runtime.backends.memory import InProcessEventBus
    return InProcessEventBus()
