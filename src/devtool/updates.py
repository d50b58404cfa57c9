"""Tool detection, per-tool update execution and the scheduled update run."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from devtool.commands import TOOL_UPDATES, StepState
from devtool.parallel import DEFAULT_TOOLS, ParallelScheduler, TaskOutcome, Tool
from devtool.runner import (
    CommandError,
    disable_output_suppression,
    enable_output_suppression,
    run_command,
)
from devtool.ui.progress import ProgressState

if TYPE_CHECKING:
    from pathlib import Path

    from devtool.commands import PhaseReporter
    from devtool.config import Settings
    from devtool.runner import Runner
    from devtool.ui.progress import ProgressBarManager

logger = logging.getLogger(__name__)

ANIMATION_INTERVAL = 0.2


def detect_available_tools(
    tools: Sequence[Tool] = DEFAULT_TOOLS,
    *,
    which: Callable[[str], str | None] = shutil.which,
) -> tuple[list[Tool], list[Tool]]:
    """Split ``tools`` into (installed, skipped) by looking up their binaries."""
    available: list[Tool] = []
    skipped: list[Tool] = []
    for tool in tools:
        (available if which(tool.binary) else skipped).append(tool)
    return available, skipped


async def execute_tool_update(
    tool: Tool,
    *,
    workdir: Path,
    runner: Runner | None = None,
    dry_run: bool = False,
    verbose: bool = False,
    report: PhaseReporter | None = None,
) -> TaskOutcome:
    """Run every step for ``tool`` and fold the step results into one outcome."""
    name = tool.display_name
    if dry_run:
        return TaskOutcome(id=tool, success=True, message=f"{name} (dry run)")

    tool_dir = workdir / tool.value
    tool_dir.mkdir(parents=True, exist_ok=True)
    try:
        steps = await TOOL_UPDATES[tool](
            runner or run_command,
            tool_dir,
            verbose,
            report or (lambda _state: None),
        )
    except CommandError as exc:
        logger.error("%s: %s", name, exc)
        return TaskOutcome.failure(tool, f"{name} failed: could not run {exc.command}")

    failed = [step for step in steps if step.state is StepState.FAILED]
    if failed:
        first = failed[0]
        return TaskOutcome(
            id=tool,
            success=False,
            message=f"{name} failed: {first.name} exited {first.returncode} (log: {first.logfile})",
        )

    changed = any(step.state is StepState.CHANGED for step in steps)
    details = tuple(detail for step in steps for detail in step.details)
    message = f"{name} updated" if changed else f"{name} already latest"
    return TaskOutcome(id=tool, success=True, message=message, changed=changed, details=details)


async def _animate(manager: ProgressBarManager, interval: float) -> None:
    while True:
        manager.tick()
        await asyncio.sleep(interval)


async def run_updates(
    tools: Iterable[Tool],
    *,
    settings: Settings,
    manager: ProgressBarManager,
    workdir: Path,
    runner: Runner | None = None,
    dry_run: bool = False,
    verbose: bool = False,
) -> list[TaskOutcome]:
    """Schedule the updates for ``tools`` and drive their progress indicators."""
    ordered = list(tools)
    scheduler = ParallelScheduler(
        settings.jobs,
        graph=settings.dependency_graph(ordered),
        poll_interval=settings.poll_interval,
    )
    manager.register(ordered)

    def on_start(tool: Tool) -> None:
        manager.transition(tool, ProgressState.EXECUTING)

    def on_finish(outcome: TaskOutcome) -> None:
        new_state = ProgressState.COMPLETED if outcome.success else ProgressState.FAILED
        manager.transition(outcome.id, new_state)
        if not outcome.success:
            logger.info("%s", outcome.message)

    async def run(tool: Tool) -> TaskOutcome:
        return await execute_tool_update(
            tool,
            workdir=workdir,
            runner=runner,
            dry_run=dry_run,
            verbose=verbose,
            report=lambda state: manager.transition(tool, state),
        )

    animation: asyncio.Task[None] | None = None
    if manager.interactive:
        # Command output would tear the live progress display.
        enable_output_suppression()
        animation = asyncio.create_task(_animate(manager, ANIMATION_INTERVAL))
    try:
        return await scheduler.execute_parallel(ordered, run, on_start=on_start, on_finish=on_finish)
    finally:
        if animation is not None:
            animation.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await animation
            disable_output_suppression()
        manager.finalize()


@dataclass
class UpdateSummary:
    """Outcomes grouped the way the final report prints them."""

    updated: list[Tool] = field(default_factory=list)
    unchanged: list[Tool] = field(default_factory=list)
    failed: list[TaskOutcome] = field(default_factory=list)
    details: dict[Tool, tuple[str, ...]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def summarize(outcomes: Iterable[TaskOutcome]) -> UpdateSummary:
    """Group outcomes; a tool counts as updated only when it reports details."""
    order = {tool: index for index, tool in enumerate(DEFAULT_TOOLS)}
    summary = UpdateSummary()
    for outcome in sorted(outcomes, key=lambda item: order.get(item.id, len(order))):
        if not outcome.success:
            summary.failed.append(outcome)
        elif outcome.changed and outcome.details:
            summary.updated.append(outcome.id)
            summary.details[outcome.id] = outcome.details
        else:
            summary.unchanged.append(outcome.id)
    return summary
