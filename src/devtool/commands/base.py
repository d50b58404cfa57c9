"""Shared result types for tool update steps."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from devtool.ui.progress import ProgressState

if TYPE_CHECKING:
    from pathlib import Path

PhaseReporter = Callable[[ProgressState], object]


class StepState(str, Enum):
    """What a single update step did."""

    CHANGED = "changed"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one command step (e.g. ``brew cleanup``)."""

    name: str
    state: StepState
    returncode: int
    logfile: Path
    details: tuple[str, ...] = ()


def no_report(_state: ProgressState) -> None:
    """Phase reporter that discards phase changes."""
