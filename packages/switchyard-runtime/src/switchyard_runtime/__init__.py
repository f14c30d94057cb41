"""Switchyard Runtime: capability-based routing with graceful degradation."""
from __future__ import annotations

from switchyard_runtime.adapter import BaseAdapter
from switchyard_runtime.adapters import StaticAdapter
from switchyard_runtime.analysis import (
    estimate_context_size,
    infer_requirements,
    requirements_cache_key,
)
from switchyard_runtime.builder import RuntimeBuilder
from switchyard_runtime.capabilities import (
    CapabilityProfile,
    CompatibilityReport,
    Feature,
    FeatureFlag,
    NegotiatedFeatures,
    SubAgentSupport,
    compatibility_report,
    get_feature_config,
    negotiate_features,
    supports_feature,
)
from switchyard_runtime.context import RuntimeContext
from switchyard_runtime.decomposition import SubAgentPlan
from switchyard_runtime.dispatcher import TaskDispatcher
from switchyard_runtime.events import Event, EventBusBridge, EventEmitter
from switchyard_runtime.protocols import EventBusAdapter, TaskAdapter
from switchyard_runtime.registry import (
    AdapterDescriptor,
    AdapterMatch,
    AdapterRegistry,
    RoutingPreferences,
)
from switchyard_runtime.router import RoutingCache, TaskRouter
from switchyard_runtime.strategy import StrategyEngine

__all__ = [
    "AdapterDescriptor",
    "AdapterMatch",
    "AdapterRegistry",
    "BaseAdapter",
    "CapabilityProfile",
    "CompatibilityReport",
    "Event",
    "EventBusAdapter",
    "EventBusBridge",
    "EventEmitter",
    "Feature",
    "FeatureFlag",
    "NegotiatedFeatures",
    "RoutingCache",
    "RoutingPreferences",
    "RuntimeBuilder",
    "RuntimeContext",
    "StaticAdapter",
    "StrategyEngine",
    "SubAgentPlan",
    "SubAgentSupport",
    "TaskAdapter",
    "TaskDispatcher",
    "TaskRouter",
    "compatibility_report",
    "estimate_context_size",
    "get_feature_config",
    "infer_requirements",
    "negotiate_features",
    "requirements_cache_key",
    "supports_feature",
]
