from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from switchyard_core.logging import get_logger
from switchyard_core.types import ExecutionResult

from switchyard_runtime.adapter import BaseAdapter
from switchyard_runtime.capabilities import CapabilityProfile
from switchyard_runtime.decomposition import OUTPUT_SEPARATOR

if TYPE_CHECKING:
    from switchyard_core.config import AdapterSpec
    from switchyard_core.types import Task

    from switchyard_runtime.decomposition import SubAgentPlan
    from switchyard_runtime.events import EventEmitter

logger = get_logger("adapters.static")


class StaticAdapter(BaseAdapter):
    """Adapter with a declared profile that echoes tasks instead of running them.

    Used for dry runs: routing and strategy selection behave exactly as
    they would against a real backend, while execution just reports
    ``"[<name>] <description>"``.
    """

    adapter_version = "1.0.0"

    def __init__(
        self,
        name: str,
        capabilities: CapabilityProfile | None = None,
        *,
        api_version: str = "1.0.0",
        events: EventEmitter | None = None,
    ) -> None:
        super().__init__(capabilities, name=name, events=events)
        self._api_version = api_version
        self.calls: list[str] = []

    @classmethod
    def from_spec(
        cls, spec: AdapterSpec, *, events: EventEmitter | None = None
    ) -> StaticAdapter:
        profile = CapabilityProfile.from_dict({
            "max_context_tokens": spec.max_context_tokens,
            "supported_languages": spec.languages,
            "multi_file": spec.multi_file,
            "streaming": spec.streaming,
            "sub_agents": {
                "supported": spec.sub_agents,
                "max_concurrent": spec.sub_agents_max_concurrent,
                "delegation_types": spec.delegation_types,
            },
            "features": spec.features,
        })
        return cls(spec.name, profile, api_version=spec.version, events=events)

    @property
    def api_version(self) -> str:
        return self._api_version

    async def execute_task(self, task: Task) -> ExecutionResult:
        self.calls.append(task.id)
        logger.debug("%s echoing task %s", self.name, task.id)
        return ExecutionResult(
            task_id=task.id,
            output=f"[{self.name}] {task.description}",
            metadata={"files": list(task.context.files)},
        )

    async def execute_with_sub_agents(self, plan: SubAgentPlan) -> ExecutionResult:
        results = await asyncio.gather(
            *(self.execute_task(agent.task) for agent in plan.agents)
        )
        return ExecutionResult(
            task_id=plan.parent_id,
            output=OUTPUT_SEPARATOR.join(
                f"{agent.role}: {result.output}"
                for agent, result in zip(plan.agents, results, strict=True)
            ),
            metadata={"agents": [agent.id for agent in plan.agents]},
        )
