"""Capability model: what an adapter can do, and how to ask about it.

A :class:`CapabilityProfile` is an immutable snapshot. Feature entries
are a tagged union of a plain ``bool`` or a :class:`FeatureFlag` carrying
configuration. Queries never raise; unknown names resolve to ``False``.
"""
from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True, slots=True)
class FeatureFlag:
    """A feature entry with configuration attached."""
    enabled: bool
    config: Any = None

    def __bool__(self) -> bool:
        return self.enabled


Feature = bool | FeatureFlag


@dataclass(frozen=True, slots=True)
class SubAgentSupport:
    supported: bool = False
    max_concurrent: int = 0
    delegation_types: frozenset[str] = frozenset()

    def __bool__(self) -> bool:
        return self.supported


@dataclass(frozen=True, slots=True)
class CapabilityProfile:
    """Read-only descriptor attached to every adapter."""
    max_context_tokens: int = 0
    supported_languages: frozenset[str] = frozenset()
    multi_file: bool = False
    streaming: bool = False
    sub_agents: SubAgentSupport = field(default_factory=SubAgentSupport)
    features: Mapping[str, Feature] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "supported_languages", frozenset(self.supported_languages)
        )
        object.__setattr__(
            self, "features", MappingProxyType(dict(self.features))
        )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> CapabilityProfile:
        """Build a profile from TOML/JSON-shaped data."""
        sub_raw = raw.get("sub_agents", False)
        if isinstance(sub_raw, Mapping):
            sub_agents = SubAgentSupport(
                supported=bool(sub_raw.get("supported", False)),
                max_concurrent=int(sub_raw.get("max_concurrent", 0)),
                delegation_types=frozenset(sub_raw.get("delegation_types", ())),
            )
        else:
            sub_agents = SubAgentSupport(supported=bool(sub_raw))

        return cls(
            max_context_tokens=int(raw.get("max_context_tokens", 0)),
            supported_languages=frozenset(
                raw.get("supported_languages", raw.get("languages", ()))
            ),
            multi_file=bool(raw.get("multi_file", False)),
            streaming=bool(raw.get("streaming", False)),
            sub_agents=sub_agents,
            features={
                name: _coerce_feature(value)
                for name, value in (raw.get("features") or {}).items()
            },
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain-data view, suitable for JSON or display."""
        return {
            "max_context_tokens": self.max_context_tokens,
            "supported_languages": sorted(self.supported_languages),
            "multi_file": self.multi_file,
            "streaming": self.streaming,
            "sub_agents": {
                "supported": self.sub_agents.supported,
                "max_concurrent": self.sub_agents.max_concurrent,
                "delegation_types": sorted(self.sub_agents.delegation_types),
            },
            "features": {
                name: (
                    {"enabled": value.enabled, "config": value.config}
                    if isinstance(value, FeatureFlag)
                    else value
                )
                for name, value in self.features.items()
            },
        }


PROFILE_FIELDS = frozenset(f.name for f in dataclasses.fields(CapabilityProfile))


def _coerce_feature(value: Any) -> Feature:
    if isinstance(value, FeatureFlag):
        return value
    if isinstance(value, Mapping):
        return FeatureFlag(
            enabled=bool(value.get("enabled", False)),
            config=value.get("config"),
        )
    return bool(value)


def _child(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    if dataclasses.is_dataclass(value) and name in {
        f.name for f in dataclasses.fields(value)
    }:
        return getattr(value, name)
    return None


def supports_feature(profile: CapabilityProfile | None, name: str) -> bool:
    """Resolve a feature name against a profile.

    Resolution order:
    1. exact top-level profile field (``streaming``) -> truthiness
    2. ``features[name]`` -> the bool, or ``FeatureFlag.enabled``
    3. dotted path (``sub_agents.max_concurrent``) walked from a
       top-level field
    """
    if profile is None or not name:
        return False

    if name in PROFILE_FIELDS:
        return bool(getattr(profile, name))

    if name in profile.features:
        return bool(profile.features[name])

    if "." in name:
        parent, *path = name.split(".")
        if parent not in PROFILE_FIELDS:
            return False
        value: Any = getattr(profile, parent)
        for part in path:
            value = _child(value, part)
            if value is None:
                return False
        return bool(value)

    return False


def get_feature_config(profile: CapabilityProfile | None, name: str) -> Any:
    """Return the config of a complex feature entry, else ``None``."""
    if profile is None:
        return None
    entry = profile.features.get(name)
    if isinstance(entry, FeatureFlag):
        return entry.config
    return None


def changed_fields(
    old: CapabilityProfile | None, new: CapabilityProfile
) -> list[tuple[str, Any, Any]]:
    """List ``(field, old_value, new_value)`` for every field that differs."""
    changes: list[tuple[str, Any, Any]] = []
    for f in dataclasses.fields(CapabilityProfile):
        old_value = getattr(old, f.name) if old is not None else None
        new_value = getattr(new, f.name)
        if old_value != new_value:
            changes.append((f.name, old_value, new_value))
    return changes


# ── Negotiation ─────────────────────────────────────────────────────

# missing feature -> substitutes, in order of preference
FEATURE_ALTERNATIVES: dict[str, tuple[str, ...]] = {
    "sub_agents": ("parallel_execution", "batched"),
    "streaming": ("chunked", "progressive"),
    "vision": ("image_description", "ocr"),
}


@dataclass(frozen=True, slots=True)
class NegotiatedFeatures:
    """Outcome of matching requested features against one profile.

    ``supported`` maps each available feature to its effective config
    (the adapter's config overlaid with the requested one).
    ``alternatives`` maps a missing feature to the substitute the
    adapter does offer; every missing feature is listed in
    ``unsupported`` whether or not it has one.
    """
    supported: Mapping[str, dict[str, Any]] = field(default_factory=dict)
    unsupported: tuple[str, ...] = ()
    alternatives: Mapping[str, str] = field(default_factory=dict)

    @property
    def satisfied(self) -> bool:
        return all(name in self.alternatives for name in self.unsupported)


def find_alternative(profile: CapabilityProfile | None, name: str) -> str | None:
    for alternative in FEATURE_ALTERNATIVES.get(name, ()):
        if supports_feature(profile, alternative):
            return alternative
    return None


def negotiate_features(
    profile: CapabilityProfile | None,
    requested: Mapping[str, Any] | Iterable[str],
) -> NegotiatedFeatures:
    """Split *requested* into supported, substitutable and missing features.

    *requested* is either a list of names or a mapping of name to the
    config the caller wants; mapping values that are not dicts are
    treated as "no particular config".
    """
    wanted = requested if isinstance(requested, Mapping) else dict.fromkeys(requested)
    supported: dict[str, dict[str, Any]] = {}
    unsupported: list[str] = []
    alternatives: dict[str, str] = {}

    for name, requirement in wanted.items():
        if supports_feature(profile, name):
            offered = get_feature_config(profile, name)
            supported[name] = {
                **(offered if isinstance(offered, Mapping) else {}),
                **(requirement if isinstance(requirement, Mapping) else {}),
            }
            continue
        unsupported.append(name)
        alternative = find_alternative(profile, name)
        if alternative is not None:
            alternatives[name] = alternative

    return NegotiatedFeatures(
        supported=MappingProxyType(supported),
        unsupported=tuple(unsupported),
        alternatives=MappingProxyType(alternatives),
    )


# ── Compatibility between versions ──────────────────────────────────


def enabled_features(profile: CapabilityProfile) -> frozenset[str]:
    """Names of every flag and feature entry that is switched on."""
    names = {
        flag
        for flag in ("multi_file", "streaming", "sub_agents")
        if getattr(profile, flag)
    }
    names.update(name for name, value in profile.features.items() if value)
    return frozenset(names)


@dataclass(frozen=True, slots=True)
class CompatibilityReport:
    from_version: str
    to_version: str
    breaking_changes: tuple[str, ...] = ()
    new_features: tuple[str, ...] = ()
    migration_path: tuple[str, ...] | None = None

    @property
    def compatible(self) -> bool:
        return not self.breaking_changes


def compatibility_report(
    old: CapabilityProfile,
    new: CapabilityProfile,
    *,
    from_version: str,
    to_version: str,
    migration_path: Sequence[str] | None = None,
) -> CompatibilityReport:
    """Compare two profiles of the same adapter.

    Breaking changes are features that were enabled and no longer are,
    languages that were dropped (``language:<name>``) and a smaller
    context window (``max_context_tokens``).
    """
    before, after = enabled_features(old), enabled_features(new)
    breaking = sorted(before - after)
    breaking.extend(
        f"language:{lang}"
        for lang in sorted(old.supported_languages - new.supported_languages)
    )
    if new.max_context_tokens < old.max_context_tokens:
        breaking.append("max_context_tokens")

    return CompatibilityReport(
        from_version=from_version,
        to_version=to_version,
        breaking_changes=tuple(breaking),
        new_features=tuple(sorted(after - before)),
        migration_path=tuple(migration_path) if migration_path is not None else None,
    )
