from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from switchyard_core.types import ExecutionResult, Task

    from switchyard_runtime.capabilities import CapabilityProfile


@runtime_checkable
class TaskAdapter(Protocol):
    """Contract every execution backend fulfils.

    Adapters may additionally expose ``execute_with_sub_agents(plan)`` and
    ``execute_with_streaming(task, on_chunk)``; the strategy engine looks
    for them with ``getattr`` and falls back when they are absent.
    """

    name: str

    @property
    def api_version(self) -> str: ...

    @property
    def capabilities(self) -> CapabilityProfile: ...

    def supports_feature(self, name: str) -> bool: ...
    def get_feature_config(self, name: str) -> Any: ...
    async def execute_task(self, task: Task) -> ExecutionResult: ...
