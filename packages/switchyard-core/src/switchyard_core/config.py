from __future__ import annotations

import tomllib
from dataclasses import MISSING, Field, dataclass, field, fields
from pathlib import Path
from typing import Any

from switchyard_core.errors import ConfigError

DEFAULT_STRATEGIES: tuple[str, ...] = (
    "sub_agents",
    "parallel",
    "streaming",
    "batched",
    "sequential",
)

DEFAULT_TIMEOUTS: dict[str, float] = {
    "sub_agents": 300.0,
    "parallel": 180.0,
    "streaming": 120.0,
    "batched": 90.0,
    "sequential": 60.0,
}


def _read_toml(path: Path) -> dict[str, Any]:
    """Parse *path*; a file that does not exist reads as empty."""
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Malformed config file {path}: {exc}") from exc


def _merge_tables(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively overlay *override* on *base*.

    Nested tables such as ``[adapters.<name>]`` and
    ``[strategy.timeouts]`` merge key by key; any other value replaces.
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge_tables(current, value)
        else:
            merged[key] = value
    return merged


def config_paths(project_dir: Path | str | None = None) -> tuple[Path, Path]:
    """Return the global and project config file locations.

    In the project, ``.switchyard/config.toml`` is preferred over
    ``switchyard.toml`` when both exist. Neither path need exist.
    """
    root = Path.cwd() if project_dir is None else Path(project_dir)
    project_path = root / ".switchyard" / "config.toml"
    if not project_path.exists():
        project_path = root / "switchyard.toml"
    return Path.home() / ".switchyard" / "config.toml", project_path


def _check_strategies(names: list[str] | tuple[str, ...], where: str) -> None:
    unknown = [n for n in names if n not in DEFAULT_STRATEGIES]
    if unknown:
        raise ConfigError(
            f"Unknown strategies in {where}: {', '.join(map(str, unknown))}. "
            f"Valid: {', '.join(DEFAULT_STRATEGIES)}"
        )


def _expected_type(f: Field) -> type | None:
    if f.default is not MISSING:
        return type(f.default)
    if f.default_factory is not MISSING:
        return type(f.default_factory())
    return None


def _pick(section: dict[str, Any], dc: type, where: str) -> dict[str, Any]:
    """Keep the keys *dc* knows about, checking each against its default's type.

    Unknown keys are ignored. Integers are accepted for float fields;
    booleans never stand in for numbers.
    """
    picked: dict[str, Any] = {}
    for f in fields(dc):
        if f.name not in section:
            continue
        value = section[f.name]
        expected = _expected_type(f)
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        elif expected is not None and (
            not isinstance(value, expected)
            or (expected is not bool and isinstance(value, bool))
        ):
            raise ConfigError(
                f"{where} {f.name} must be {expected.__name__}, "
                f"got {type(value).__name__}: {value!r}"
            )
        picked[f.name] = value
    return picked


@dataclass(frozen=True, slots=True)
class RouterConfig:
    cache_ttl_seconds: float = 300.0  # 5 min
    cache_max_entries: int = 1000
    cache_evict_count: int = 100
    preferred_adapters: list[str] = field(default_factory=list)
    consider_performance: bool = True
    fallback_strategies: list[str] = field(
        default_factory=lambda: list(DEFAULT_STRATEGIES)
    )
    tokens_per_file: int = 500
    chars_per_token: int = 4
    similarity_tolerance: float = 0.2
    batch_min_files: int = 10


@dataclass(frozen=True, slots=True)
class StrategyConfig:
    strategies: list[str] = field(
        default_factory=lambda: list(DEFAULT_STRATEGIES)
    )
    timeouts: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_TIMEOUTS)
    )
    batch_size: int = 5
    batch_min_files: int = 10
    stream_chunk_size: int = 1000
    parallel_max_concurrent: int = 5
    parallel_min_files: int = 2
    sub_agents_max_concurrent: int = 3
    sub_agents_min_files: int = 5
    sub_agents_min_description: int = 500

    def timeout_for(self, strategy: str) -> float:
        """Configured timeout, else the built-in default for *strategy*."""
        if strategy in self.timeouts:
            return self.timeouts[strategy]
        return DEFAULT_TIMEOUTS.get(strategy, DEFAULT_TIMEOUTS["sequential"])


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    level: str = "INFO"
    json_output: bool = False


@dataclass(frozen=True, slots=True)
class AdapterSpec:
    """Declarative capability profile for a static adapter."""
    name: str
    version: str = "1.0.0"
    default: bool = True
    max_context_tokens: int = 8000
    languages: list[str] = field(default_factory=list)
    multi_file: bool = False
    streaming: bool = False
    sub_agents: bool = False
    sub_agents_max_concurrent: int = 0
    delegation_types: list[str] = field(default_factory=list)
    features: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SwitchyardConfig:
    """Top-level configuration, parsed from switchyard.toml."""
    project_name: str = "switchyard-project"
    router: RouterConfig = field(default_factory=RouterConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    adapters: tuple[AdapterSpec, ...] = ()

    @classmethod
    def from_toml(cls, path: Path | str = "switchyard.toml") -> SwitchyardConfig:
        """Parse a single config file, without layering."""
        return cls._from_raw(_read_toml(Path(path)))

    @classmethod
    def load(cls, project_dir: Path | str | None = None) -> SwitchyardConfig:
        """Load config with global → project layering.

        Resolution order (later wins):
        1. Built-in defaults
        2. ~/.switchyard/config.toml (global)
        3. .switchyard/config.toml or switchyard.toml (project)
        """
        global_path, project_path = config_paths(project_dir)
        return cls._from_raw(
            _merge_tables(_read_toml(global_path), _read_toml(project_path))
        )

    @classmethod
    def _from_raw(cls, raw: dict) -> SwitchyardConfig:
        """Build SwitchyardConfig from a raw TOML dict."""
        router_raw = raw.get("router", {})
        strategy_raw = raw.get("strategy", {})
        logging_raw = raw.get("logging", {})
        adapters_raw = raw.get("adapters", {})
        project_raw = raw.get("project", {})

        for section, value in (
            ("project", project_raw),
            ("router", router_raw),
            ("strategy", strategy_raw),
            ("logging", logging_raw),
            ("adapters", adapters_raw),
        ):
            if not isinstance(value, dict):
                raise ConfigError(f"[{section}] must be a table")

        strategy_kwargs = _pick(strategy_raw, StrategyConfig, "[strategy]")
        if "timeouts" in strategy_kwargs:
            timeouts = strategy_kwargs["timeouts"]
            _check_strategies(list(timeouts), "[strategy.timeouts]")
            try:
                strategy_kwargs["timeouts"] = {
                    **DEFAULT_TIMEOUTS,
                    **{k: float(v) for k, v in timeouts.items()},
                }
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"Invalid strategy timeout: {exc}") from exc
        if "strategies" in strategy_kwargs:
            _check_strategies(strategy_kwargs["strategies"], "[strategy]")

        router_kwargs = _pick(router_raw, RouterConfig, "[router]")
        if "fallback_strategies" in router_kwargs:
            _check_strategies(router_kwargs["fallback_strategies"], "[router]")

        adapters = []
        for name, spec_raw in adapters_raw.items():
            if not isinstance(spec_raw, dict):
                raise ConfigError(f"[adapters.{name}] must be a table")
            picked = _pick(spec_raw, AdapterSpec, f"[adapters.{name}]")
            adapters.append(AdapterSpec(**(picked | {"name": name})))

        project_name = project_raw.get("name", "switchyard-project")
        if not isinstance(project_name, str):
            raise ConfigError("[project] name must be str")

        return cls(
            project_name=project_name,
            router=RouterConfig(**router_kwargs),
            strategy=StrategyConfig(**strategy_kwargs),
            logging=LoggingConfig(**_pick(logging_raw, LoggingConfig, "[logging]")),
            adapters=tuple(adapters),
        )
