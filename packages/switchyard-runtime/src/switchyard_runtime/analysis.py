"""Requirement inference: derive what a task needs from its shape.

Everything here is pure and deterministic; the same task always yields
the same :class:`RequirementProfile`.
"""
from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING, Any

from switchyard_core.types import RequirementProfile

if TYPE_CHECKING:
    from switchyard_core.types import Task, TaskContext

# ── Heuristic tables ──────────────────────────────────────────

TASK_TYPE_FEATURES: dict[str, tuple[str, ...]] = {
    "comprehension": ("comprehension", "explanation"),
    "generation": ("generation", "refactoring"),
    "validation": ("validation", "testing"),
    "exploration": ("exploration", "debugging"),
    "refactoring": ("refactoring", "generation"),
    "testing": ("testing", "generation"),
    "documentation": ("documentation", "generation"),
}

LANGUAGE_PATTERNS: dict[str, re.Pattern[str]] = {
    "javascript": re.compile(r"\b(javascript|js|node|npm)\b"),
    "typescript": re.compile(r"\b(typescript|ts|tsx)\b"),
    "python": re.compile(r"\b(python|py|pip)\b"),
    "java": re.compile(r"\b(java|maven|gradle)\b"),
    "go": re.compile(r"\b(go|golang)\b"),
    "rust": re.compile(r"\b(rust|cargo)\b"),
    "c++": re.compile(r"\b(c\+\+|cpp)\b"),
}

STREAMING_KEYWORDS = ("stream", "real-time")
SUB_AGENT_KEYWORDS = ("delegate", "sub-agent", "parallel", "distribute")

TOKENS_PER_FILE = 500
CHARS_PER_TOKEN = 4


def estimate_context_size(
    context: TaskContext,
    *,
    tokens_per_file: int = TOKENS_PER_FILE,
    chars_per_token: int = CHARS_PER_TOKEN,
) -> int:
    """Rough token count: a flat cost per file plus chars/4 for inline text."""
    size = len(context.files) * tokens_per_file
    if context.content:
        size += math.ceil(len(context.content) / chars_per_token)
    if context.code:
        size += math.ceil(len(context.code) / chars_per_token)
    return size


def detect_languages(text: str) -> list[str]:
    lowered = text.lower()
    return [lang for lang, pattern in LANGUAGE_PATTERNS.items() if pattern.search(lowered)]


def infer_requirements(
    task: Task,
    *,
    tokens_per_file: int = TOKENS_PER_FILE,
    chars_per_token: int = CHARS_PER_TOKEN,
) -> RequirementProfile:
    """Build the requirement profile for *task*.

    Vendor extensions can only add requirements: their ``features`` are
    appended and their ``streaming`` / ``sub_agents`` flags are OR-ed in.
    """
    features: list[str] = list(TASK_TYPE_FEATURES.get(task.type, ()))
    description = task.description.lower()

    streaming = any(k in description for k in STREAMING_KEYWORDS)
    sub_agents = any(k in description for k in SUB_AGENT_KEYWORDS)

    for ext in task.extensions.values():
        if ext.get("sub_agents"):
            sub_agents = True
        if ext.get("streaming"):
            streaming = True
        features.extend(ext.get("features") or ())

    return RequirementProfile(
        features=tuple(dict.fromkeys(features)),
        min_context_tokens=estimate_context_size(
            task.context,
            tokens_per_file=tokens_per_file,
            chars_per_token=chars_per_token,
        ),
        languages=tuple(detect_languages(description)),
        multi_file=task.file_count > 1,
        streaming=streaming,
        sub_agents=sub_agents,
    )


def explicit_strategy(task: Task, vendor: str | None = None) -> str | None:
    """Strategy override embedded in the task, if any.

    The vendor block for *vendor* wins over ``task.execution_strategy``.
    """
    if vendor is not None:
        ext = task.extensions.get(vendor) or {}
        if ext.get("execution_strategy"):
            return str(ext["execution_strategy"])
    return task.execution_strategy or None


def strategy_overrides(task: Task) -> tuple[Any, ...]:
    """Every strategy override carried by *task*, in a hashable form."""
    vendor_overrides = tuple(sorted(
        (vendor, str(ext["execution_strategy"]))
        for vendor, ext in task.extensions.items()
        if ext.get("execution_strategy")
    ))
    return (task.execution_strategy, vendor_overrides)


def requirements_cache_key(
    requirements: RequirementProfile,
    overrides: tuple[Any, ...] = (),
) -> tuple[Any, ...]:
    """Normalized, hashable key for a requirement profile.

    Context size is bucketed to the thousand below, so tasks whose
    estimates differ only slightly share a key. Task identity is not
    part of the key.
    """
    return (
        tuple(sorted(requirements.features)),
        requirements.min_context_tokens // 1000,
        tuple(sorted(requirements.languages)),
        requirements.multi_file,
        requirements.streaming,
        requirements.sub_agents,
        overrides,
    )


def are_similar(
    first: Task,
    second: Task,
    *,
    tolerance: float = 0.2,
    tokens_per_file: int = TOKENS_PER_FILE,
    chars_per_token: int = CHARS_PER_TOKEN,
) -> bool:
    """Whether two tasks can share one routing decision."""
    if first.type != second.type:
        return False
    size_a = estimate_context_size(
        first.context, tokens_per_file=tokens_per_file, chars_per_token=chars_per_token
    )
    size_b = estimate_context_size(
        second.context, tokens_per_file=tokens_per_file, chars_per_token=chars_per_token
    )
    largest = max(size_a, size_b)
    if largest and abs(size_a - size_b) / largest > tolerance:
        return False
    return set(first.extensions) == set(second.extensions)
