"""Dependency-aware parallel execution of tool updates."""

from devtool.parallel.graph import DependencyCycleError, DependencyGraph
from devtool.parallel.scheduler import ParallelScheduler, SchedulerRunState
from devtool.parallel.types import DEFAULT_TOOLS, TaskOutcome, Tool, display_name_of

__all__ = [
    "DEFAULT_TOOLS",
    "DependencyCycleError",
    "DependencyGraph",
    "ParallelScheduler",
    "SchedulerRunState",
    "TaskOutcome",
    "Tool",
    "display_name_of",
]
