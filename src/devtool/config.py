"""User configuration for devtool.

Settings come from an optional YAML file, then ``DEVTOOL_*`` environment
variables, then command-line flags (highest precedence).
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from devtool.parallel.graph import DependencyCycleError, DependencyGraph
from devtool.parallel.types import Tool

DEVTOOL_CONFIG_ENV = "DEVTOOL_CONFIG"
DEVTOOL_JOBS_ENV = "DEVTOOL_JOBS"

DEFAULT_JOBS = 3
DEFAULT_POLL_INTERVAL_MS = 10

CACHE_SUBDIRS: tuple[str, ...] = ("homebrew", "rustup", "mise")


class ConfigError(ValueError):
    """Configuration file or override is invalid."""


@dataclass(frozen=True)
class Settings:
    """Resolved run configuration."""

    jobs: int = DEFAULT_JOBS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    keep_logs: bool = False
    dependencies: dict[Tool, tuple[Tool, ...]] = field(default_factory=dict)
    source: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, source: Path | None = None) -> Settings:
        """Validate a parsed config mapping."""
        unknown = sorted(set(data) - {"jobs", "poll_interval_ms", "keep_logs", "dependencies"})
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        jobs = _parse_int(data.get("jobs", DEFAULT_JOBS), "jobs", minimum=0)
        poll_interval_ms = _parse_int(
            data.get("poll_interval_ms", DEFAULT_POLL_INTERVAL_MS), "poll_interval_ms", minimum=1
        )
        keep_logs = data.get("keep_logs", False)
        if not isinstance(keep_logs, bool):
            raise ConfigError("keep_logs must be true or false")

        raw_deps = data.get("dependencies") or {}
        if not isinstance(raw_deps, dict):
            raise ConfigError("dependencies must be a mapping of tool -> list of tools")
        dependencies: dict[Tool, tuple[Tool, ...]] = {}
        for raw_tool, raw_list in raw_deps.items():
            if isinstance(raw_list, str):
                raw_list = [raw_list]
            if not isinstance(raw_list, list):
                raise ConfigError(f"dependencies for {raw_tool!r} must be a list")
            try:
                tool = Tool.parse(str(raw_tool))
                dependencies[tool] = tuple(Tool.parse(str(item)) for item in raw_list)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc

        settings = cls(
            jobs=jobs,
            poll_interval_ms=poll_interval_ms,
            keep_logs=keep_logs,
            dependencies=dependencies,
            source=source,
        )
        settings.dependency_graph()
        return settings

    def with_overrides(self, **overrides: Any) -> Settings:
        """Return a copy with every non-None override applied."""
        applied = {key: value for key, value in overrides.items() if value is not None}
        if "jobs" in applied:
            applied["jobs"] = _parse_int(applied["jobs"], "jobs", minimum=0)
        return replace(self, **applied)

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0

    def dependency_graph(self, tools: Iterable[Tool] | None = None) -> DependencyGraph:
        """Build the ordering graph, keeping only edges between ``tools`` when given."""
        mapping = self.dependencies
        if tools is not None:
            selected = set(tools)
            mapping = {
                tool: tuple(dep for dep in deps if dep in selected)
                for tool, deps in mapping.items()
                if tool in selected
            }
        try:
            return DependencyGraph.from_mapping(mapping)
        except DependencyCycleError as exc:
            raise ConfigError(f"Invalid dependencies: {exc}") from exc


def _parse_int(value: Any, name: str, *, minimum: int) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if parsed < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {parsed}")
    return parsed


def default_config_path() -> Path:
    base = os.getenv("XDG_CONFIG_HOME", "").strip()
    root = Path(base).expanduser() if base else Path.home() / ".config"
    return root / "devtool" / "config.yaml"


def resolve_config_path(cli_path: Path | None = None) -> tuple[Path, bool]:
    """Return the config path and whether it was requested explicitly."""
    if cli_path is not None:
        return cli_path.expanduser(), True
    env_path = os.getenv(DEVTOOL_CONFIG_ENV, "").strip()
    if env_path:
        return Path(env_path).expanduser(), True
    return default_config_path(), False


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from YAML and environment.

    A missing default config file yields defaults; a missing file that was
    named explicitly (``--config`` or ``DEVTOOL_CONFIG``) is an error.

    Raises:
        ConfigError: If the file is missing when requested, malformed, or invalid.
    """
    config_path, explicit = resolve_config_path(path)

    data: dict[str, Any] = {}
    source: Path | None = None
    if config_path.exists():
        try:
            loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"Malformed YAML config at {config_path}: {exc}") from exc
        except OSError as exc:
            raise ConfigError(f"Failed to read config {config_path}: {exc}") from exc
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"Config at {config_path} must be a mapping")
        data = loaded or {}
        source = config_path
    elif explicit:
        raise ConfigError(f"Config file not found: {config_path}")

    settings = Settings.from_dict(data, source=source)

    env_jobs = os.getenv(DEVTOOL_JOBS_ENV, "").strip()
    if env_jobs:
        settings = settings.with_overrides(jobs=env_jobs)
    return settings


def get_cache_dir() -> Path:
    """Return ``$XDG_CACHE_HOME/devtool`` (default ``~/.cache/devtool``)."""
    base = os.getenv("XDG_CACHE_HOME", "").strip()
    root = Path(base).expanduser() if base else Path.home() / ".cache"
    return root / "devtool"


def ensure_cache_dir() -> Path:
    cache_dir = get_cache_dir()
    cache_dir.mkdir(parents=True, exist_ok=True)
    for subdir in CACHE_SUBDIRS:
        (cache_dir / subdir).mkdir(exist_ok=True)
    return cache_dir
