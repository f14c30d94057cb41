from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from switchyard_core.types import StrategyAttempt


class SwitchyardError(Exception):
    """Base exception for all Switchyard errors."""


# ── Config Errors ────────────────────────────────────────────────────

class ConfigError(SwitchyardError):
    """Invalid or missing configuration."""


# ── Registry Errors ──────────────────────────────────────────────────

class RegistryError(SwitchyardError):
    """Base for adapter registry errors."""


class InvalidRegistrationError(RegistryError):
    """Registration call is missing a name, an adapter, or a version."""


class AdapterNotFoundError(RegistryError):
    """Adapter name/version is not registered."""


# ── Routing Errors ───────────────────────────────────────────────────

class RoutingError(SwitchyardError):
    """Base for task routing errors."""


class NoMatchingAdapterError(RoutingError):
    """No registered adapter satisfies the task requirements."""


# ── Strategy Errors ──────────────────────────────────────────────────

class StrategyError(SwitchyardError):
    """Base for execution strategy errors."""


class StrategyUnavailableError(StrategyError):
    """The adapter lacks the capability a strategy needs."""


class StrategyTimeoutError(StrategyError):
    """A strategy lost the race against its timeout."""

    def __init__(self, message: str = "Strategy timeout") -> None:
        super().__init__(message)


class StrategyExecutionError(StrategyError):
    """A strategy ran but could not produce a result."""


class AllStrategiesExhaustedError(StrategyError):
    """Every candidate strategy failed or was skipped.

    Carries the complete attempt trail so callers can diagnose the
    failure without access to engine internals.
    """

    def __init__(
        self,
        attempts: tuple[StrategyAttempt, ...],
        duration_ms: float,
        message: str = "All execution strategies failed",
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.duration_ms = duration_ms


# ── Adapter Errors ───────────────────────────────────────────────────

class AdapterError(SwitchyardError):
    """Base for adapter-side errors."""


class MigrationError(AdapterError):
    """No migration path exists between two task versions."""
