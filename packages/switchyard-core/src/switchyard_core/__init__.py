"""Switchyard Core: shared types, config, errors, and logging."""
from __future__ import annotations

from switchyard_core._version import __version__
from switchyard_core.config import (
    DEFAULT_STRATEGIES,
    DEFAULT_TIMEOUTS,
    AdapterSpec,
    LoggingConfig,
    RouterConfig,
    StrategyConfig,
    SwitchyardConfig,
)
from switchyard_core.errors import (
    AdapterError,
    AdapterNotFoundError,
    AllStrategiesExhaustedError,
    ConfigError,
    InvalidRegistrationError,
    MigrationError,
    NoMatchingAdapterError,
    RegistryError,
    RoutingError,
    StrategyError,
    StrategyExecutionError,
    StrategyTimeoutError,
    StrategyUnavailableError,
    SwitchyardError,
)
from switchyard_core.logging import get_logger, setup_logging
from switchyard_core.types import (
    AttemptStatus,
    ExecutionResult,
    Message,
    ParallelSummary,
    PerformanceRecord,
    RequirementProfile,
    RoutedTask,
    RoutingDecision,
    StrategyAttempt,
    StreamChunk,
    Task,
    TaskContext,
    TopicConfig,
)

__all__ = [
    # Config
    "DEFAULT_STRATEGIES",
    "DEFAULT_TIMEOUTS",
    # Errors
    "AdapterError",
    "AdapterNotFoundError",
    "AdapterSpec",
    "AllStrategiesExhaustedError",
    # Types
    "AttemptStatus",
    "ConfigError",
    "ExecutionResult",
    "InvalidRegistrationError",
    "LoggingConfig",
    "Message",
    "MigrationError",
    "NoMatchingAdapterError",
    "ParallelSummary",
    "PerformanceRecord",
    "RegistryError",
    "RequirementProfile",
    "RoutedTask",
    "RouterConfig",
    "RoutingDecision",
    "RoutingError",
    "StrategyAttempt",
    "StrategyConfig",
    "StrategyError",
    "StrategyExecutionError",
    "StrategyTimeoutError",
    "StrategyUnavailableError",
    "StreamChunk",
    "SwitchyardConfig",
    "SwitchyardError",
    "Task",
    "TaskContext",
    "TopicConfig",
    # Version
    "__version__",
    # Logging
    "get_logger",
    "setup_logging",
]
