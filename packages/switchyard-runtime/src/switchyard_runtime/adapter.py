from __future__ import annotations

import dataclasses
import inspect
import itertools
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from switchyard_core.errors import MigrationError
from switchyard_core.logging import get_logger

from switchyard_runtime.capabilities import (
    CapabilityProfile,
    NegotiatedFeatures,
    changed_fields,
    get_feature_config,
    negotiate_features,
    supports_feature,
)
from switchyard_runtime.events import CAPABILITY_CHANGED, EventEmitter

if TYPE_CHECKING:
    from switchyard_core.types import ExecutionResult, Task

logger = get_logger("adapter")

MigrationHandler = Callable[["Task"], "Task | Awaitable[Task]"]


class BaseAdapter(ABC):
    """Base class for execution backends.

    Subclasses provide ``api_version`` and ``execute_task``. The base
    class owns the capability profile: queries go through
    :func:`supports_feature` / :func:`get_feature_config`, and runtime
    changes go through :meth:`set_capabilities`, which announces every
    changed field before the new profile becomes visible.
    """

    name: str = "base-adapter"
    adapter_version: str = "1.0.0"

    def __init__(
        self,
        capabilities: CapabilityProfile | None = None,
        *,
        name: str | None = None,
        events: EventEmitter | None = None,
    ) -> None:
        if name is not None:
            self.name = name
        self._capabilities = capabilities or CapabilityProfile()
        self._events = events or EventEmitter()
        self._lock = threading.RLock()
        self._migrations: dict[tuple[str, str], MigrationHandler] = {}

    @property
    @abstractmethod
    def api_version(self) -> str:
        """Version of the backend API this adapter speaks."""
        ...

    @property
    def supported_api_versions(self) -> tuple[str, ...]:
        return (self.api_version,)

    @property
    def events(self) -> EventEmitter:
        return self._events

    # ── Capabilities ────────────────────────────────────────────────

    @property
    def capabilities(self) -> CapabilityProfile:
        return self._capabilities

    def supports_feature(self, name: str) -> bool:
        return supports_feature(self._capabilities, name)

    def get_feature_config(self, name: str) -> Any:
        return get_feature_config(self._capabilities, name)

    def negotiate_features(
        self, requested: Mapping[str, Any] | Iterable[str]
    ) -> NegotiatedFeatures:
        return negotiate_features(self._capabilities, requested)

    def set_capabilities(
        self, profile: CapabilityProfile
    ) -> list[tuple[str, Any, Any]]:
        """Replace the whole profile, announcing each changed field first."""
        with self._lock:
            changes = changed_fields(self._capabilities, profile)
            for capability, old_value, new_value in changes:
                self._events.emit(
                    CAPABILITY_CHANGED,
                    adapter=self.name,
                    capability=capability,
                    old_value=old_value,
                    new_value=new_value,
                )
            self._capabilities = profile
        if changes:
            logger.info(
                "Adapter %s capabilities changed: %s",
                self.name,
                ", ".join(c[0] for c in changes),
            )
        return changes

    def update_capabilities(self, **changes: Any) -> list[tuple[str, Any, Any]]:
        """Convenience wrapper: ``set_capabilities(replace(current, **changes))``."""
        with self._lock:
            profile = dataclasses.replace(self._capabilities, **changes)
            return self.set_capabilities(profile)

    # ── Execution ───────────────────────────────────────────────────

    @abstractmethod
    async def execute_task(self, task: Task) -> ExecutionResult:
        """Run *task* directly and return its result."""
        ...

    # ── Vendor extensions ───────────────────────────────────────────

    def get_vendor_extensions(
        self, task: Task, vendor: str | None = None
    ) -> dict[str, Any] | None:
        return task.extensions.get(vendor or self.name)

    def add_vendor_extensions(
        self, task: Task, extensions: dict[str, Any], vendor: str | None = None
    ) -> Task:
        return dataclasses.replace(
            task,
            extensions={**task.extensions, vendor or self.name: dict(extensions)},
        )

    # ── Task migrations ─────────────────────────────────────────────

    def register_migration(
        self, from_version: str, to_version: str, handler: MigrationHandler
    ) -> None:
        """Register a one-hop task upgrade between two API versions."""
        self._migrations[(from_version, to_version)] = handler

    def find_migration_path(
        self, from_version: str, to_version: str
    ) -> list[str] | None:
        """Shortest chain of registered hops, or *None*."""
        queue: deque[list[str]] = deque([[from_version]])
        visited = {from_version}
        while queue:
            path = queue.popleft()
            current = path[-1]
            if current == to_version:
                return path
            for src, dst in self._migrations:
                if src == current and dst not in visited:
                    visited.add(dst)
                    queue.append([*path, dst])
        return None

    async def migrate_task(
        self, task: Task, from_version: str, to_version: str
    ) -> Task:
        """Upgrade *task* through every hop between two versions.

        Raises:
            MigrationError: no chain of registered migrations connects
                the versions.
        """
        path = self.find_migration_path(from_version, to_version)
        if path is None:
            raise MigrationError(
                f"No migration path found from {from_version} to {to_version}"
            )
        for src, dst in itertools.pairwise(path):
            migrated = self._migrations[(src, dst)](task)
            task = await migrated if inspect.isawaitable(migrated) else migrated
            logger.debug("Migrated task %s from %s to %s", task.id, src, dst)
        return task

    # ── Diagnostics ─────────────────────────────────────────────────

    def get_diagnostics(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "api_version": self.api_version,
            "adapter_version": self.adapter_version,
            "supported_api_versions": list(self.supported_api_versions),
            "capabilities": self._capabilities.to_dict(),
            "migration_paths": [f"{a}->{b}" for a, b in self._migrations],
            "timestamp": time.time(),
        }
