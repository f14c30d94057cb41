from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any

# ── Event Bus Types ──────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class Message:
    """A message received from the event bus."""
    id: str
    topic: str
    payload: bytes
    key: str | None = None
    timestamp: float = field(default_factory=time.time)
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TopicConfig:
    """Configuration for creating a topic."""
    max_messages: int = 1000
    max_message_bytes: int = 1_048_576


# ── Task Types ───────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class TaskContext:
    """Files and inline text a task operates on."""
    files: tuple[str, ...] = ()
    content: str | None = None
    code: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> TaskContext:
        raw = raw or {}
        return cls(
            files=tuple(raw.get("files") or ()),
            content=raw.get("content"),
            code=raw.get("code"),
        )


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of work to be routed to an adapter and executed.

    ``extensions`` holds vendor-specific settings keyed by adapter name.
    Recognised keys inside a vendor block are ``features`` (list),
    ``streaming``, ``sub_agents`` and ``execution_strategy``; anything
    else is passed through untouched for the adapter itself.
    """
    id: str
    type: str
    description: str = ""
    context: TaskContext = field(default_factory=TaskContext)
    extensions: dict[str, dict[str, Any]] = field(default_factory=dict)
    complexity: str | None = None
    streaming: bool = False
    execution_strategy: str | None = None
    role: str | None = None
    focus: str | None = None

    @property
    def file_count(self) -> int:
        return len(self.context.files)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        """Build a Task from a JSON-style mapping."""
        return cls(
            id=str(raw["id"]),
            type=str(raw.get("type", "")),
            description=str(raw.get("description", "")),
            context=TaskContext.from_dict(raw.get("context")),
            extensions={
                str(vendor): dict(ext or {})
                for vendor, ext in (raw.get("extensions") or {}).items()
            },
            complexity=raw.get("complexity"),
            streaming=bool(raw.get("streaming", False)),
            execution_strategy=raw.get("execution_strategy"),
        )


# ── Requirement Types ────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class RequirementProfile:
    """What a task needs from an adapter. Derived per task, never stored."""
    features: tuple[str, ...] = ()
    min_context_tokens: int = 0
    languages: tuple[str, ...] = ()
    multi_file: bool = False
    streaming: bool = False
    sub_agents: bool = False


# ── Execution Types ──────────────────────────────────────────────────

class AttemptStatus(enum.Enum):
    SKIPPED = "skipped"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class StrategyAttempt:
    """One recorded try of a single execution strategy."""
    strategy: str
    status: AttemptStatus
    duration_ms: float = 0.0
    reason: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ParallelSummary:
    """Outcome counts of a parallel fan-out."""
    succeeded: int
    failed: int
    failures: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True, slots=True)
class StreamChunk:
    """A slice of streamed output and how far along the stream is (0-1)."""
    chunk: str
    progress: float


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Result of executing a task through an adapter.

    Adapters fill in ``task_id``, ``status``, ``output`` and
    ``artifacts``; the strategy engine adds ``strategy``, ``attempts``
    and ``total_duration_ms`` on the way out.
    """
    task_id: str
    status: str = "completed"
    output: str = ""
    artifacts: tuple[Any, ...] = ()
    strategy: str | None = None
    attempts: tuple[StrategyAttempt, ...] = ()
    total_duration_ms: float = 0.0
    batch_count: int | None = None
    parallel_summary: ParallelSummary | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ── Registry / Routing Types ─────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class PerformanceRecord:
    """Accumulated execution metrics for one adapter name+version."""
    total_executions: int = 0
    total_duration_ms: float = 0.0
    failures: int = 0
    avg_duration_ms: float = 0.0
    success_rate: float = 1.0
    last_updated: float | None = None


@dataclass(frozen=True, slots=True)
class RoutingDecision:
    """The cached outcome of matching a task to an adapter and strategy."""
    adapter: Any
    adapter_name: str
    adapter_version: str
    strategy: str
    requirements: RequirementProfile
    score: float
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class RoutedTask:
    """A routing decision fanned out to one member of a batch."""
    task_id: str
    decision: RoutingDecision
    grouped: bool = False
