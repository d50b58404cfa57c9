"""Homebrew steps: brew update, brew upgrade, brew cleanup."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from devtool.commands.base import PhaseReporter, StepResult, StepState, no_report
from devtool.ui.progress import ProgressState

if TYPE_CHECKING:
    from pathlib import Path

    from devtool.runner import Runner

# Keep brew's own progress output and analytics out of the logs.
HOMEBREW_ENV = "HOMEBREW_NO_PROGRESS=1 HOMEBREW_NO_ANALYTICS=1 HOMEBREW_NO_INSECURE_REDIRECT=1"
REPO_HEAD_COMMAND = "cd \"$(brew --repository)\" && git log -1 --format='%H' 2>/dev/null || echo 'unknown'"
OUTDATED_JSON_COMMAND = "brew outdated --json=v2"
OUTDATED_COMMAND = "brew outdated --verbose"

_OUTDATED_LINE = re.compile(r"^(?P<name>\S+) \((?P<installed>[^)]+)\) (?:<|!=) (?P<current>\S+)")


@dataclass(frozen=True)
class OutdatedPackage:
    name: str
    installed_version: str
    current_version: str


def parse_outdated(output: str) -> list[OutdatedPackage]:
    """Parse ``brew outdated --verbose`` lines such as ``wget (1.21.3) < 1.21.4``."""
    packages: list[OutdatedPackage] = []
    for line in output.splitlines():
        match = _OUTDATED_LINE.match(line.strip())
        if match is None:
            continue
        installed = match.group("installed").split(",")[-1].strip()
        packages.append(
            OutdatedPackage(
                name=match.group("name"),
                installed_version=installed,
                current_version=match.group("current"),
            )
        )
    return packages


def parse_outdated_json(output: str) -> list[OutdatedPackage] | None:
    """Parse `brew outdated --json` output, formulae and casks alike.

    Returns None when the output is not the expected JSON document.
    """
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        return None
    if isinstance(data, list):
        entries = data
    elif isinstance(data, dict):
        entries = [*data.get("formulae", []), *data.get("casks", [])]
    else:
        return None

    packages: list[OutdatedPackage] = []
    for entry in entries:
        if not isinstance(entry, dict):
            return None
        installed = entry.get("installed_versions") or []
        name = entry.get("name")
        current = entry.get("current_version")
        if not name or not current or not installed:
            continue
        packages.append(
            OutdatedPackage(name=name, installed_version=str(installed[0]), current_version=str(current))
        )
    return packages


async def list_outdated(runner: Runner, logfile: Path) -> list[OutdatedPackage]:
    listed = await runner(OUTDATED_JSON_COMMAND, logfile=logfile, verbose=False)
    if listed.ok:
        packages = parse_outdated_json(listed.output)
        if packages is not None:
            return packages
    listed = await runner(OUTDATED_COMMAND, logfile=logfile, verbose=False)
    return parse_outdated(listed.output) if listed.ok else []


async def brew_update(runner: Runner, workdir: Path, verbose: bool) -> StepResult:
    logfile = workdir / "brew_update.log"

    before = await runner(REPO_HEAD_COMMAND, logfile=logfile, verbose=verbose)
    result = await runner(f"{HOMEBREW_ENV} brew update --quiet", logfile=logfile, verbose=verbose)
    if not result.ok:
        return StepResult("brew update", StepState.FAILED, result.returncode, logfile)
    after = await runner(REPO_HEAD_COMMAND, logfile=logfile, verbose=verbose)

    head_before = before.output.strip()
    unchanged = (head_before == after.output.strip() and head_before != "unknown") or (
        "Already up-to-date." in result.output
    )
    state = StepState.UNCHANGED if unchanged else StepState.CHANGED
    return StepResult("brew update", state, result.returncode, logfile)


async def brew_upgrade(runner: Runner, workdir: Path, verbose: bool) -> StepResult:
    logfile = workdir / "brew_upgrade.log"
    outdated_log = workdir / "brew_outdated.log"

    outdated = await list_outdated(runner, outdated_log)
    if not outdated:
        return StepResult("brew upgrade", StepState.UNCHANGED, 0, logfile)

    result = await runner(f"{HOMEBREW_ENV} brew upgrade --quiet", logfile=logfile, verbose=verbose)
    if not result.ok:
        return StepResult("brew upgrade", StepState.FAILED, result.returncode, logfile)

    still_outdated = {pkg.name for pkg in await list_outdated(runner, outdated_log)}
    details = tuple(
        f"{pkg.name}: {pkg.installed_version} → {pkg.current_version}"
        for pkg in outdated
        if pkg.name not in still_outdated
    )
    return StepResult("brew upgrade", StepState.CHANGED, result.returncode, logfile, details)


async def brew_cleanup(runner: Runner, workdir: Path, verbose: bool) -> StepResult:
    logfile = workdir / "brew_cleanup.log"
    result = await runner(f"{HOMEBREW_ENV} brew cleanup --quiet", logfile=logfile, verbose=verbose)
    if not result.ok:
        return StepResult("brew cleanup", StepState.FAILED, result.returncode, logfile)
    state = StepState.UNCHANGED if "Nothing to clean up" in result.output else StepState.CHANGED
    return StepResult("brew cleanup", state, result.returncode, logfile)


async def update_homebrew(
    runner: Runner,
    workdir: Path,
    verbose: bool,
    report: PhaseReporter = no_report,
) -> list[StepResult]:
    steps = [await brew_update(runner, workdir, verbose)]
    report(ProgressState.EXECUTING_MID)
    steps.append(await brew_upgrade(runner, workdir, verbose))
    report(ProgressState.EXECUTING_LATE)
    steps.append(await brew_cleanup(runner, workdir, verbose))
    return steps
