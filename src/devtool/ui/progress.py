"""Per-tool progress state machine and the rich progress bars that display it."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from devtool.parallel.types import display_name_of
from devtool.ui.console import get_console
from devtool.ui.status import ProgressStatus, status_timestamp, write_progress_status

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

logger = logging.getLogger(__name__)


class ProgressState(str, Enum):
    """Lifecycle of one progress indicator."""

    PREPARING = "preparing"
    EXECUTING = "executing"
    EXECUTING_MID = "executing_mid"
    EXECUTING_LATE = "executing_late"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProgressState.COMPLETED, ProgressState.FAILED)


_PERCENTAGES: dict[ProgressState, int] = {
    ProgressState.PREPARING: 0,
    ProgressState.EXECUTING: 25,
    ProgressState.EXECUTING_MID: 50,
    ProgressState.EXECUTING_LATE: 75,
    ProgressState.COMPLETED: 100,
    ProgressState.FAILED: 100,
}

_VALID_TRANSITIONS: dict[ProgressState, frozenset[ProgressState]] = {
    ProgressState.PREPARING: frozenset({ProgressState.EXECUTING}),
    ProgressState.EXECUTING: frozenset(
        {ProgressState.EXECUTING_MID, ProgressState.COMPLETED, ProgressState.FAILED}
    ),
    ProgressState.EXECUTING_MID: frozenset(
        {ProgressState.EXECUTING_LATE, ProgressState.COMPLETED, ProgressState.FAILED}
    ),
    ProgressState.EXECUTING_LATE: frozenset({ProgressState.COMPLETED, ProgressState.FAILED}),
    ProgressState.COMPLETED: frozenset(),
    ProgressState.FAILED: frozenset(),
}

# Percentage of the state that follows each executing phase.
_NEXT_MILESTONE: dict[ProgressState, int] = {
    ProgressState.EXECUTING: _PERCENTAGES[ProgressState.EXECUTING_MID],
    ProgressState.EXECUTING_MID: _PERCENTAGES[ProgressState.EXECUTING_LATE],
    ProgressState.EXECUTING_LATE: _PERCENTAGES[ProgressState.COMPLETED],
}

_MESSAGES: dict[ProgressState, str] = {
    ProgressState.PREPARING: "{name} preparing...",
    ProgressState.EXECUTING: "{name} running...",
    ProgressState.EXECUTING_MID: "{name} upgrading...",
    ProgressState.EXECUTING_LATE: "{name} finishing...",
    ProgressState.COMPLETED: "✅ {name} done",
    ProgressState.FAILED: "❌ {name} failed",
}

INTERRUPTED_MESSAGE = "⏸️ {name} interrupted"


def is_valid_transition(current: ProgressState, new: ProgressState) -> bool:
    return new in _VALID_TRANSITIONS[current]


def progress_percentage(state: ProgressState) -> int:
    return _PERCENTAGES[state]


def display_message(name: str, state: ProgressState) -> str:
    return _MESSAGES[state].format(name=name)


class ProgressAnimator:
    """Creeps the displayed percentage toward the next milestone while a phase runs.

    The value never reaches the next state's percentage; entering a new state
    restarts the interpolation from that state's own percentage.
    """

    def __init__(
        self,
        expected_seconds: float = 10.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if expected_seconds <= 0:
            raise ValueError("expected_seconds must be > 0")
        self.expected_seconds = expected_seconds
        self._clock = clock
        self._state = ProgressState.PREPARING
        self._entered_at = clock()

    @property
    def state(self) -> ProgressState:
        return self._state

    def enter(self, state: ProgressState) -> None:
        self._state = state
        self._entered_at = self._clock()

    def percentage(self) -> int:
        base = progress_percentage(self._state)
        ceiling = _NEXT_MILESTONE.get(self._state)
        if ceiling is None:
            return base
        fraction = min(max(self._clock() - self._entered_at, 0.0) / self.expected_seconds, 1.0)
        return min(base + int((ceiling - base) * fraction), ceiling - 1)


@dataclass
class Indicator:
    """What one progress bar currently shows."""

    task_id: Hashable
    name: str
    state: ProgressState
    message: str
    percentage: int
    finished: bool = False
    bar_id: TaskID | None = None


class ProgressBarManager:
    """Binds one progress indicator per task and drives it through ProgressState.

    Bars are only drawn when the console is an interactive terminal; the
    states are tracked either way. None of the methods await, so pushing
    updates from inside concurrently running task bodies is safe on a single
    event loop.
    """

    def __init__(
        self,
        console: Console | None = None,
        *,
        status_path: Path | None = None,
        expected_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.console = console if console is not None else get_console()
        self.status_path = status_path
        self._expected_seconds = expected_seconds
        self._clock = clock
        self._interactive: bool | None = None
        self._progress: Progress | None = None
        self._indicators: dict[Hashable, Indicator] = {}
        self._animators: dict[Hashable, ProgressAnimator] = {}
        self._finalized = False

    @property
    def interactive(self) -> bool:
        return bool(self._interactive)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._indicators

    def ids(self) -> list[Hashable]:
        return list(self._indicators)

    def indicator(self, task_id: Hashable) -> Indicator:
        return self._indicators[task_id]

    def state(self, task_id: Hashable) -> ProgressState:
        return self._indicators[task_id].state

    def register(self, ids: Iterable[Hashable]) -> None:
        """Create a Preparing indicator for each id not registered yet."""
        if self._interactive is None:
            self._interactive = self.console.is_terminal

        for task_id in ids:
            if task_id in self._indicators:
                continue
            name = display_name_of(task_id)
            state = ProgressState.PREPARING
            indicator = Indicator(
                task_id=task_id,
                name=name,
                state=state,
                message=display_message(name, state),
                percentage=progress_percentage(state),
            )
            if self._interactive:
                indicator.bar_id = self._ensure_progress().add_task(
                    indicator.message, total=100, completed=indicator.percentage
                )
            self._indicators[task_id] = indicator
            self._animators[task_id] = ProgressAnimator(self._expected_seconds, clock=self._clock)
        self._write_status()

    def transition(self, task_id: Hashable, new_state: ProgressState) -> bool:
        """Move an indicator to ``new_state``; invalid moves are logged and ignored."""
        indicator = self._indicators.get(task_id)
        if indicator is None:
            logger.warning("No progress indicator registered for %s", display_name_of(task_id))
            return False
        if indicator.finished or not is_valid_transition(indicator.state, new_state):
            logger.warning(
                "Rejected progress transition for %s: %s -> %s",
                indicator.name,
                indicator.state.value,
                new_state.value,
            )
            return False

        indicator.state = new_state
        indicator.message = display_message(indicator.name, new_state)
        indicator.percentage = progress_percentage(new_state)
        self._animators[task_id].enter(new_state)
        self._render(indicator)
        self._write_status()
        return True

    def tick(self) -> None:
        """Advance the animation overlay of every running indicator."""
        for task_id, indicator in self._indicators.items():
            if indicator.finished or indicator.state.is_terminal:
                continue
            value = self._animators[task_id].percentage()
            if value > indicator.percentage:
                indicator.percentage = value
                self._render(indicator)

    def finalize(self) -> None:
        """Write terminal messages and stop the display. Later calls are no-ops."""
        if self._finalized:
            logger.debug("Progress manager already finalized")
            return
        self._finalized = True

        for indicator in self._indicators.values():
            if indicator.state.is_terminal:
                indicator.message = display_message(indicator.name, indicator.state)
            else:
                indicator.message = INTERRUPTED_MESSAGE.format(name=indicator.name)
            indicator.finished = True
            self._render(indicator)
            if self._progress is not None and indicator.bar_id is not None:
                self._progress.stop_task(indicator.bar_id)

        if self._progress is not None:
            self._progress.stop()
        self._write_status()

    def status(self) -> ProgressStatus:
        indicators = list(self._indicators.values())
        total = len(indicators)
        done = sum(1 for item in indicators if item.state.is_terminal)
        percent = round(sum(item.percentage for item in indicators) / total) if total else 0

        if not self._finalized:
            state = "running"
        elif any(not item.state.is_terminal for item in indicators):
            state = "interrupted"
        elif any(item.state is ProgressState.FAILED for item in indicators):
            state = "failed"
        else:
            state = "completed"

        return ProgressStatus(
            state=state,
            percent=percent,
            done=done,
            total=total,
            desc=f"{done}/{total} tools finished",
            ts=status_timestamp(),
        )

    def _ensure_progress(self) -> Progress:
        if self._progress is None:
            self._progress = Progress(
                SpinnerColumn(style="green"),
                TimeElapsedColumn(),
                BarColumn(bar_width=20, complete_style="cyan", finished_style="blue"),
                TextColumn("{task.percentage:>3.0f}%"),
                TextColumn("{task.description}"),
                console=self.console,
            )
            self._progress.start()
        return self._progress

    def _render(self, indicator: Indicator) -> None:
        if self._progress is None or indicator.bar_id is None:
            return
        self._progress.update(
            indicator.bar_id,
            completed=indicator.percentage,
            description=indicator.message,
        )

    def _write_status(self) -> None:
        if self.status_path is None:
            return
        try:
            write_progress_status(self.status_path, self.status())
        except OSError as exc:
            logger.warning("Could not write progress status to %s: %s", self.status_path, exc)
