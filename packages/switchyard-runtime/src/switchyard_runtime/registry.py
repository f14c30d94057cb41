"""Adapter registry: versioned storage, capability scoring and selection."""
from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from switchyard_core.errors import AdapterNotFoundError, InvalidRegistrationError
from switchyard_core.logging import get_logger
from switchyard_core.types import PerformanceRecord

from switchyard_runtime.capabilities import compatibility_report
from switchyard_runtime.events import (
    ADAPTER_DEFAULT_CHANGED,
    ADAPTER_PERFORMANCE_RESET,
    ADAPTER_REGISTERED,
    ADAPTER_UNREGISTERED,
    EventEmitter,
)

if TYPE_CHECKING:
    from switchyard_core.types import RequirementProfile

    from switchyard_runtime.capabilities import CapabilityProfile, CompatibilityReport
    from switchyard_runtime.protocols.adapter import TaskAdapter

logger = get_logger("registry")

# ── Scoring weights ───────────────────────────────────────────

_SCORE_FEATURE = 10
_SCORE_CONTEXT = 5
_MAX_CONTEXT_BONUS = 5
_SCORE_LANGUAGES = 5
_PREFERRED_BOOST = 1.5
_MAX_SPEED_BOOST = 0.3

# requirement flag -> (capability name, points)
_CAPABILITY_CHECKS: tuple[tuple[str, str, int], ...] = (
    ("multi_file", "multi_file", 3),
    ("streaming", "streaming", 2),
    ("sub_agents", "sub_agents.supported", 5),
)

_LEADING_INT = re.compile(r"\d+")


# ── Result types ──────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AdapterMatch:
    """A registered adapter version paired with its capability score."""

    name: str
    version: str
    adapter: TaskAdapter
    score: float


@dataclass(frozen=True, slots=True)
class RoutingPreferences:
    preferred_adapters: tuple[str, ...] = ()
    consider_performance: bool = True


@dataclass(frozen=True, slots=True)
class AdapterDescriptor:
    name: str
    version: str
    capabilities: CapabilityProfile
    is_default: bool
    adapter_version: str | None = None
    supported_api_versions: tuple[str, ...] = field(default_factory=tuple)


# ── Helpers ───────────────────────────────────────────────────


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse ``major.minor.patch``; missing or non-numeric parts are 0."""
    parts: list[int] = []
    for piece in str(version).split(".")[:3]:
        m = _LEADING_INT.match(piece)
        parts.append(int(m.group()) if m else 0)
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def score_adapter(adapter: TaskAdapter, requirements: RequirementProfile) -> float:
    """Capability score of *adapter* against *requirements*.

    Every counted category is evaluated before deciding; if any counted
    requirement is unmet the score is 0. Language coverage only adds
    points and never disqualifies.
    """
    capabilities = adapter.capabilities
    score = 0.0
    required = 0
    matched = 0

    for feature in requirements.features:
        required += 1
        if adapter.supports_feature(feature):
            matched += 1
            score += _SCORE_FEATURE

    if requirements.min_context_tokens > 0:
        required += 1
        if capabilities.max_context_tokens >= requirements.min_context_tokens:
            matched += 1
            ratio = capabilities.max_context_tokens / requirements.min_context_tokens
            score += _SCORE_CONTEXT + min(ratio - 1, _MAX_CONTEXT_BONUS)

    wanted = set(requirements.languages)
    if wanted:
        covered = len(wanted & capabilities.supported_languages)
        score += (covered / len(wanted)) * _SCORE_LANGUAGES
    else:
        score += _SCORE_LANGUAGES

    for flag, capability, points in _CAPABILITY_CHECKS:
        if getattr(requirements, flag):
            required += 1
            if adapter.supports_feature(capability):
                matched += 1
                score += points

    if matched < required:
        return 0.0
    return score


# ── Registry ──────────────────────────────────────────────────


class AdapterRegistry:
    """Versioned adapter store keyed by name, then version.

    The first version registered under a name is always its default,
    so every registered name has exactly one default version. All state
    is guarded by a re-entrant lock; "not found" lookups return *None*.
    """

    def __init__(self, events: EventEmitter | None = None) -> None:
        self._events = events or EventEmitter()
        self._lock = threading.RLock()
        self._adapters: dict[str, dict[str, TaskAdapter]] = {}
        self._defaults: dict[str, str] = {}
        self._performance: dict[tuple[str, str], PerformanceRecord] = {}

    @property
    def events(self) -> EventEmitter:
        return self._events

    # ── Registration ────────────────────────────────────────────────

    def register(
        self,
        name: str,
        adapter: TaskAdapter,
        version: str | None = None,
        *,
        make_default: bool = True,
    ) -> str:
        """Register *adapter* under *name*; return the version used.

        *version* defaults to the adapter's ``api_version``. Registering
        an existing name+version replaces it.

        Raises:
            InvalidRegistrationError: name or adapter missing, or no
                version can be determined.
        """
        if not name or adapter is None:
            raise InvalidRegistrationError("Name and adapter are required")
        version = version or getattr(adapter, "api_version", None)
        if not version:
            raise InvalidRegistrationError(
                f"No version given for adapter {name!r} and it reports none"
            )

        with self._lock:
            versions = self._adapters.setdefault(name, {})
            versions[version] = adapter
            is_default = make_default or name not in self._defaults
            if is_default:
                self._defaults[name] = version

        logger.info(
            "Registered adapter: %s v%s%s",
            name,
            version,
            " (default)" if is_default else "",
        )
        self._events.emit(
            ADAPTER_REGISTERED, name=name, version=version, is_default=is_default
        )
        return version

    def unregister(self, name: str, version: str | None = None) -> bool:
        """Remove one version, or every version when *version* is omitted.

        Removing the default version promotes the earliest remaining
        registration. Returns whether anything was removed.
        """
        with self._lock:
            versions = self._adapters.get(name)
            if versions is None or (version is not None and version not in versions):
                return False
            if version is None:
                del self._adapters[name]
                self._defaults.pop(name, None)
            else:
                del versions[version]
                if not versions:
                    del self._adapters[name]
                    self._defaults.pop(name, None)
                elif self._defaults.get(name) == version:
                    self._defaults[name] = next(iter(versions))

        logger.info("Unregistered adapter: %s%s", name, f" v{version}" if version else "")
        self._events.emit(ADAPTER_UNREGISTERED, name=name, version=version)
        return True

    def set_default_version(self, name: str, version: str) -> None:
        """Raises :class:`AdapterNotFoundError` for an unknown name/version."""
        with self._lock:
            if version not in self._adapters.get(name, {}):
                raise AdapterNotFoundError(f"Adapter {name} v{version} not found")
            self._defaults[name] = version
        self._events.emit(ADAPTER_DEFAULT_CHANGED, name=name, version=version)

    # ── Lookup ──────────────────────────────────────────────────────

    def get(self, name: str, version: str | None = None) -> TaskAdapter | None:
        with self._lock:
            versions = self._adapters.get(name)
            if not versions:
                return None
            return versions.get(version or self._defaults.get(name, ""))

    def get_latest(self, name: str) -> TaskAdapter | None:
        with self._lock:
            versions = self._adapters.get(name)
            if not versions:
                return None
            return versions[max(versions, key=parse_version)]

    def default_version(self, name: str) -> str | None:
        with self._lock:
            return self._defaults.get(name)

    def list_adapters(self) -> list[str]:
        with self._lock:
            return list(self._adapters)

    def list_versions(self, name: str) -> list[str]:
        """Registered versions of *name*, oldest first."""
        with self._lock:
            return sorted(self._adapters.get(name, {}), key=parse_version)

    def describe(self) -> list[AdapterDescriptor]:
        with self._lock:
            return [
                AdapterDescriptor(
                    name=name,
                    version=version,
                    capabilities=adapter.capabilities,
                    is_default=self._defaults.get(name) == version,
                    adapter_version=getattr(adapter, "adapter_version", None),
                    supported_api_versions=tuple(
                        getattr(adapter, "supported_api_versions", ())
                    ),
                )
                for name, versions in self._adapters.items()
                for version, adapter in versions.items()
            ]

    def compatibility_report(
        self, name: str, from_version: str, to_version: str
    ) -> CompatibilityReport:
        """Compare two registered versions of *name*.

        The migration path comes from the target version's registered
        task migrations, when it keeps any.

        Raises:
            AdapterNotFoundError: either version is not registered.
        """
        old, new = self.get(name, from_version), self.get(name, to_version)
        for version, adapter in ((from_version, old), (to_version, new)):
            if adapter is None:
                raise AdapterNotFoundError(f"Adapter {name} v{version} not found")
        find_path = getattr(new, "find_migration_path", None)
        report = compatibility_report(
            old.capabilities,
            new.capabilities,
            from_version=from_version,
            to_version=to_version,
            migration_path=find_path(from_version, to_version) if find_path else None,
        )
        logger.debug(
            "Compatibility %s v%s -> v%s: %s",
            name,
            from_version,
            to_version,
            "compatible" if report.compatible else ", ".join(report.breaking_changes),
        )
        return report

    # ── Matching ────────────────────────────────────────────────────

    def find_matching(
        self,
        requirements: RequirementProfile,
        *,
        include_unusable: bool = False,
    ) -> list[AdapterMatch]:
        """Score every registered version; best first.

        Zero-score adapters are dropped unless *include_unusable* is set,
        which is useful for diagnostics.
        """
        with self._lock:
            entries = [
                (name, version, adapter)
                for name, versions in self._adapters.items()
                for version, adapter in versions.items()
            ]

        matches = []
        for name, version, adapter in entries:
            score = score_adapter(adapter, requirements)
            if score > 0 or include_unusable:
                matches.append(
                    AdapterMatch(name=name, version=version, adapter=adapter, score=score)
                )
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    def select_optimal(
        self,
        requirements: RequirementProfile,
        preferences: RoutingPreferences | None = None,
    ) -> AdapterMatch | None:
        """Best match after preference and performance boosts, or *None*."""
        preferences = preferences or RoutingPreferences()
        matches = self.find_matching(requirements)
        if not matches:
            return None

        if preferences.preferred_adapters:
            matches = [
                replace(m, score=m.score * _PREFERRED_BOOST)
                if m.name in preferences.preferred_adapters
                else m
                for m in matches
            ]
            matches.sort(key=lambda m: m.score, reverse=True)

        if preferences.consider_performance:
            boosted = []
            for m in matches:
                record = self.get_performance(m.name, m.version)
                if record.avg_duration_ms > 0:
                    speed = 1000 / record.avg_duration_ms
                    m = replace(m, score=m.score * (1 + min(speed * 0.1, _MAX_SPEED_BOOST)))
                boosted.append(m)
            matches = sorted(boosted, key=lambda m: m.score, reverse=True)

        best = matches[0]
        logger.debug(
            "Selected %s v%s (score=%.2f) from %d candidate(s)",
            best.name,
            best.version,
            best.score,
            len(matches),
        )
        return best

    # ── Performance ─────────────────────────────────────────────────

    def record_performance(
        self,
        name: str,
        version: str,
        duration_ms: float,
        *,
        failed: bool = False,
    ) -> PerformanceRecord:
        with self._lock:
            prev = self._performance.get((name, version), PerformanceRecord())
            total = prev.total_executions + 1
            total_duration = prev.total_duration_ms + max(duration_ms, 0.0)
            failures = prev.failures + (1 if failed else 0)
            record = PerformanceRecord(
                total_executions=total,
                total_duration_ms=total_duration,
                failures=failures,
                avg_duration_ms=total_duration / total,
                success_rate=(total - failures) / total,
                last_updated=time.time(),
            )
            self._performance[(name, version)] = record
        return record

    def get_performance(self, name: str, version: str) -> PerformanceRecord:
        with self._lock:
            return self._performance.get((name, version), PerformanceRecord())

    def reset_performance(self, name: str | None = None) -> None:
        """Forget recorded metrics for *name*, or for every adapter."""
        with self._lock:
            if name is None:
                self._performance.clear()
            else:
                for key in [k for k in self._performance if k[0] == name]:
                    del self._performance[key]
        self._events.emit(ADAPTER_PERFORMANCE_RESET, name=name)
