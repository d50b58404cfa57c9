"""Update command sequences for each supported tool."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path

from devtool.commands.base import PhaseReporter, StepResult, StepState, no_report
from devtool.commands.homebrew import update_homebrew
from devtool.commands.mise import update_mise
from devtool.commands.rustup import update_rustup
from devtool.parallel.types import Tool
from devtool.runner import Runner

ToolUpdate = Callable[[Runner, Path, bool, PhaseReporter], Awaitable[list[StepResult]]]

TOOL_UPDATES: dict[Tool, ToolUpdate] = {
    Tool.HOMEBREW: update_homebrew,
    Tool.RUSTUP: update_rustup,
    Tool.MISE: update_mise,
}

__all__ = [
    "PhaseReporter",
    "StepResult",
    "StepState",
    "TOOL_UPDATES",
    "ToolUpdate",
    "no_report",
]
