"""Rustup step: rustup update."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from devtool.commands.base import PhaseReporter, StepResult, StepState, no_report

if TYPE_CHECKING:
    from pathlib import Path

    from devtool.runner import Runner

_UPDATED_LINE = re.compile(
    r"^\s*(?P<toolchain>\S+) updated - (?P<after>.+?)(?: \(from (?P<before>.+)\))?\s*$"
)
_RUSTC_VERSION = re.compile(r"rustc (\S+)")
_UNCHANGED_MARKERS = ("unchanged", "up to date")


def _short_version(text: str) -> str:
    match = _RUSTC_VERSION.search(text)
    return match.group(1) if match else text.strip()


def parse_rustup_updates(output: str) -> list[str]:
    """Summarize ``<toolchain> updated - rustc X (from rustc Y)`` lines."""
    details: list[str] = []
    for line in output.splitlines():
        match = _UPDATED_LINE.match(line)
        if match is None:
            continue
        toolchain = match.group("toolchain")
        after = _short_version(match.group("after"))
        before = match.group("before")
        if before:
            details.append(f"{toolchain}: {_short_version(before)} → {after}")
        else:
            details.append(f"{toolchain}: {after} (new)")
    return details


async def rustup_update(runner: Runner, workdir: Path, verbose: bool) -> StepResult:
    logfile = workdir / "rustup_update.log"
    result = await runner("rustup update", logfile=logfile, verbose=verbose)
    if not result.ok:
        return StepResult("rustup update", StepState.FAILED, result.returncode, logfile)

    details = tuple(parse_rustup_updates(result.output))
    lowered = result.output.lower()
    if details:
        state = StepState.CHANGED
    elif any(marker in lowered for marker in _UNCHANGED_MARKERS):
        state = StepState.UNCHANGED
    else:
        state = StepState.CHANGED
    return StepResult("rustup update", state, result.returncode, logfile, details)


async def update_rustup(
    runner: Runner,
    workdir: Path,
    verbose: bool,
    report: PhaseReporter = no_report,
) -> list[StepResult]:
    _ = report
    return [await rustup_update(runner, workdir, verbose)]
