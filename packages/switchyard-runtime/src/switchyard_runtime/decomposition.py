"""Splitting tasks into sub-tasks and merging their results back."""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from switchyard_core.errors import StrategyExecutionError
from switchyard_core.types import ExecutionResult, ParallelSummary, StreamChunk

if TYPE_CHECKING:
    from collections.abc import Sequence

    from switchyard_core.types import Task

OUTPUT_SEPARATOR = "\n---\n"

# task type -> (role, focus) per sub-agent
ROLE_TEMPLATES: dict[str, tuple[tuple[str, str], ...]] = {
    "generation": (
        ("architect", "design"),
        ("implementer", "code"),
        ("reviewer", "quality"),
    ),
    "refactoring": (
        ("analyzer", "current-state"),
        ("refactorer", "improvements"),
        ("validator", "correctness"),
    ),
}

COORDINATOR_RESPONSIBILITIES = ("task-decomposition", "result-aggregation")


# ── Sub-agent plans ───────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AgentAssignment:
    id: str
    role: str
    task: Task


@dataclass(frozen=True, slots=True)
class SubAgentPlan:
    """Execution plan handed to an adapter's own sub-agent entry point."""

    parent_id: str
    orchestration_mode: str
    subtasks: tuple[Task, ...]
    agents: tuple[AgentAssignment, ...]
    coordinator: dict[str, Any] = field(
        default_factory=lambda: {
            "role": "orchestrator",
            "responsibilities": list(COORDINATOR_RESPONSIBILITIES),
        }
    )


def decompose_for_sub_agents(task: Task, max_agents: int) -> list[Task]:
    """Split *task* by role template, or evenly by files.

    The result never holds more than *max_agents* sub-tasks.
    """
    max_agents = max(max_agents, 1)
    template = ROLE_TEMPLATES.get(task.type)
    if template:
        subtasks = [replace(task, role=role, focus=focus) for role, focus in template]
    elif task.file_count > 1:
        files = task.context.files
        per_agent = math.ceil(len(files) / max_agents)
        subtasks = [
            replace(
                task,
                id=f"{task.id}-sub-{i}",
                context=replace(task.context, files=files[i : i + per_agent]),
            )
            for i in range(0, len(files), per_agent)
        ]
    else:
        subtasks = [task]
    return subtasks[:max_agents]


def build_sub_agent_plan(
    task: Task,
    max_agents: int,
    orchestration_mode: str = "parallel",
) -> SubAgentPlan:
    subtasks = decompose_for_sub_agents(task, max_agents)
    return SubAgentPlan(
        parent_id=task.id,
        orchestration_mode=orchestration_mode,
        subtasks=tuple(subtasks),
        agents=tuple(
            AgentAssignment(id=f"agent-{i}", role=st.role or "worker", task=st)
            for i, st in enumerate(subtasks)
        ),
    )


# ── Parallel fan-out ──────────────────────────────────────────


def decompose_for_parallel(task: Task) -> list[Task]:
    """One sub-task per context file; a single-file task is returned as-is."""
    if task.file_count <= 1:
        return [task]
    return [
        replace(
            task,
            id=f"{task.id}-parallel-{i}",
            context=replace(task.context, files=(path,)),
        )
        for i, path in enumerate(task.context.files)
    ]


def aggregate_parallel_results(
    original: Task,
    subtasks: Sequence[Task],
    outcomes: Sequence[ExecutionResult | BaseException],
) -> ExecutionResult:
    """Merge per-file outcomes; failures are reported, not raised.

    Raises:
        StrategyExecutionError: every sub-task failed.
    """
    succeeded: list[ExecutionResult] = []
    failures: list[tuple[str, str]] = []
    for subtask, outcome in zip(subtasks, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            failures.append((subtask.id, str(outcome) or type(outcome).__name__))
        else:
            succeeded.append(outcome)

    if not succeeded:
        raise StrategyExecutionError("All parallel tasks failed")

    return ExecutionResult(
        task_id=original.id,
        status="partial" if failures else "completed",
        output=OUTPUT_SEPARATOR.join(r.output for r in succeeded),
        artifacts=tuple(a for r in succeeded for a in r.artifacts),
        parallel_summary=ParallelSummary(
            succeeded=len(succeeded),
            failed=len(failures),
            failures=tuple(failures),
        ),
    )


# ── Batches ───────────────────────────────────────────────────


def decompose_into_batches(task: Task, batch_size: int) -> list[Task]:
    """Chunk context files into groups of *batch_size*.

    Batch ids carry the index of their first file.
    """
    files = task.context.files
    batch_size = max(batch_size, 1)
    return [
        replace(
            task,
            id=f"{task.id}-batch-{i}",
            context=replace(task.context, files=files[i : i + batch_size]),
        )
        for i in range(0, len(files), batch_size)
    ]


def aggregate_batch_results(
    original: Task, results: Sequence[ExecutionResult]
) -> ExecutionResult:
    return ExecutionResult(
        task_id=original.id,
        status="completed",
        output=OUTPUT_SEPARATOR.join(r.output for r in results),
        artifacts=tuple(a for r in results for a in r.artifacts),
        batch_count=len(results),
    )


# ── Streaming ─────────────────────────────────────────────────


def chunk_output(output: str, chunk_size: int) -> list[StreamChunk]:
    """Slice *output* into fixed-size chunks with rising progress.

    Progress is the fraction of output delivered once the chunk has been
    handled, so the last chunk always reports 1.0.
    """
    if not output:
        return []
    chunk_size = max(chunk_size, 1)
    total = len(output)
    return [
        StreamChunk(
            chunk=output[start : start + chunk_size],
            progress=min((start + chunk_size) / total, 1.0),
        )
        for start in range(0, total, chunk_size)
    ]
