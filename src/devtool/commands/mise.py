"""Mise step: mise up, bracketed by version listings."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from devtool.commands.base import PhaseReporter, StepResult, StepState, no_report
from devtool.ui.progress import ProgressState

if TYPE_CHECKING:
    from pathlib import Path

    from devtool.runner import Runner

LIST_COMMAND = "mise ls --current"

INSTALL_MARKERS: tuple[str, ...] = ("install", "installed", "upgraded", "updated", "->", "→")
_VERSION_TOKEN = re.compile(r"[a-zA-Z0-9_+\-.]+@[0-9]+(?:\.[0-9]+)+")


def parse_mise_versions(output: str) -> dict[str, str]:
    """Map tool name to version from ``mise ls`` text output.

    Accepts both ``tool@version`` and whitespace separated ``tool version``
    lines; JSON output is ignored.
    """
    versions: dict[str, str] = {}
    if output.strip().startswith("{"):
        return versions

    for raw in output.splitlines():
        line = raw.strip()
        if not line or line[0] in "{}\"":
            continue
        if "@" in line:
            name, _, rest = line.partition("@")
            version = rest.split()[0] if rest.split() else ""
            if version:
                versions[name.strip()] = version
            continue
        parts = line.split()
        if len(parts) >= 2:
            versions[parts[0]] = parts[1]
    return versions


def diff_versions(before: dict[str, str], after: dict[str, str]) -> list[str]:
    details: list[str] = []
    for name, after_version in sorted(after.items()):
        before_version = before.get(name)
        if before_version is None:
            details.append(f"{name}: {after_version} (new)")
        elif before_version != after_version:
            details.append(f"{name}: {before_version} → {after_version}")
    return details


async def mise_up(
    runner: Runner,
    workdir: Path,
    verbose: bool,
    report: PhaseReporter = no_report,
) -> StepResult:
    logfile = workdir / "mise_up.log"

    listed_before = await runner(LIST_COMMAND, logfile=workdir / "mise_before.log", verbose=False)
    report(ProgressState.EXECUTING_MID)
    result = await runner("mise up", logfile=logfile, verbose=verbose)
    if not result.ok:
        return StepResult("mise up", StepState.FAILED, result.returncode, logfile)
    report(ProgressState.EXECUTING_LATE)
    listed_after = await runner(LIST_COMMAND, logfile=workdir / "mise_after.log", verbose=False)

    before = parse_mise_versions(listed_before.output) if listed_before.ok else {}
    after = parse_mise_versions(listed_after.output) if listed_after.ok else {}
    details = diff_versions(before, after) if before and after else []
    if not details:
        details = [token.replace("@", ": ", 1) for token in _VERSION_TOKEN.findall(result.output)]

    lowered = result.output.lower()
    changed = bool(details) or any(marker in lowered for marker in INSTALL_MARKERS)
    state = StepState.CHANGED if changed else StepState.UNCHANGED
    return StepResult("mise up", state, result.returncode, logfile, tuple(details))


async def update_mise(
    runner: Runner,
    workdir: Path,
    verbose: bool,
    report: PhaseReporter = no_report,
) -> list[StepResult]:
    return [await mise_up(runner, workdir, verbose, report)]
