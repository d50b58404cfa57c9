"""Tests for tool detection, per-tool execution and the scheduled run."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console

from devtool import updates
from devtool.config import Settings
from devtool.parallel import DependencyGraph, ParallelScheduler, TaskOutcome, Tool
from devtool.runner import CommandError
from devtool.ui.progress import ProgressBarManager, ProgressState
from devtool.updates import detect_available_tools, execute_tool_update, run_updates, summarize
from tests.unit.devtool.stub_runner import StubRunner


def _manager(**kwargs) -> ProgressBarManager:
    return ProgressBarManager(Console(file=io.StringIO()), **kwargs)


def test_detect_available_tools_splits_by_binary() -> None:
    installed = {"brew", "mise"}

    available, skipped = detect_available_tools(which=lambda name: f"/bin/{name}" if name in installed else None)

    assert available == [Tool.HOMEBREW, Tool.MISE]
    assert skipped == [Tool.RUSTUP]


@pytest.mark.asyncio
async def test_dry_run_runs_nothing(tmp_path: Path) -> None:
    stub = StubRunner({})

    outcome = await execute_tool_update(Tool.MISE, workdir=tmp_path, runner=stub, dry_run=True)

    assert outcome == TaskOutcome(id=Tool.MISE, success=True, message="Mise (dry run)")
    assert stub.calls == []


@pytest.mark.asyncio
async def test_failed_step_names_log(tmp_path: Path) -> None:
    stub = StubRunner({"rustup update": (1, "error")})

    outcome = await execute_tool_update(Tool.RUSTUP, workdir=tmp_path, runner=stub)

    assert outcome.success is False
    expected_log = tmp_path / "rustup" / "rustup_update.log"
    assert outcome.message == f"Rustup failed: rustup update exited 1 (log: {expected_log})"


@pytest.mark.asyncio
async def test_changed_outcome_carries_details(tmp_path: Path) -> None:
    stub = StubRunner({"rustup update": (0, "  stable updated - rustc 1.76.0 (from rustc 1.75.0)")})

    outcome = await execute_tool_update(Tool.RUSTUP, workdir=tmp_path, runner=stub)

    assert outcome.success
    assert outcome.changed
    assert outcome.message == "Rustup updated"
    assert outcome.details == ("stable: 1.75.0 → 1.76.0",)


@pytest.mark.asyncio
async def test_unspawnable_command_becomes_failure(tmp_path: Path) -> None:
    async def broken(command: str, *, logfile: Path, verbose: bool = False):
        raise CommandError(command, "No such file or directory")

    outcome = await execute_tool_update(Tool.RUSTUP, workdir=tmp_path, runner=broken)

    assert outcome == TaskOutcome.failure(Tool.RUSTUP, "Rustup failed: could not run rustup update")


@pytest.mark.asyncio
async def test_default_runner_is_looked_up_at_call_time(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    stub = StubRunner({"rustup update": (0, "unchanged")})
    monkeypatch.setattr(updates, "run_command", stub)

    outcome = await execute_tool_update(Tool.RUSTUP, workdir=tmp_path)

    assert outcome.message == "Rustup already latest"
    assert stub.calls == ["rustup update"]


@pytest.mark.asyncio
async def test_run_updates_drives_progress(tmp_path: Path) -> None:
    stub = StubRunner(
        {
            "rustup update": (0, "unchanged"),
            "mise ls": [(0, "node 20.10.0"), (0, "node 20.11.0")],
            "mise up": (0, "installed node@20.11.0"),
        }
    )
    status_path = tmp_path / "progress.status"
    manager = _manager(status_path=status_path)
    settings = Settings(jobs=2, dependencies={Tool.MISE: (Tool.RUSTUP,)})

    outcomes = await run_updates(
        [Tool.RUSTUP, Tool.MISE],
        settings=settings,
        manager=manager,
        workdir=tmp_path,
        runner=stub,
    )

    assert [outcome.id for outcome in outcomes] == [Tool.RUSTUP, Tool.MISE]
    assert all(outcome.success for outcome in outcomes)
    assert manager.finalized
    assert manager.state(Tool.RUSTUP) is ProgressState.COMPLETED
    assert manager.state(Tool.MISE) is ProgressState.COMPLETED
    assert stub.calls.index("rustup update") < stub.calls.index("mise up")
    assert '"state":"completed"' in status_path.read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_run_updates_ignores_dependency_on_missing_tool(tmp_path: Path) -> None:
    manager = _manager()
    settings = Settings(dependencies={Tool.MISE: (Tool.HOMEBREW,)})

    outcomes = await run_updates([Tool.MISE], settings=settings, manager=manager, workdir=tmp_path, dry_run=True)

    assert outcomes == [TaskOutcome(id=Tool.MISE, success=True, message="Mise (dry run)")]


@pytest.mark.asyncio
async def test_run_updates_marks_failures(tmp_path: Path) -> None:
    stub = StubRunner({"rustup update": (101, "error: could not download")})
    manager = _manager()

    outcomes = await run_updates([Tool.RUSTUP], settings=Settings(), manager=manager, workdir=tmp_path, runner=stub)

    assert outcomes[0].success is False
    assert manager.state(Tool.RUSTUP) is ProgressState.FAILED
    assert manager.status().state == "failed"


@pytest.mark.asyncio
async def test_blocked_tool_ends_failed_not_interrupted() -> None:
    manager = _manager()
    manager.register([Tool.MISE])
    scheduler = ParallelScheduler(
        graph=DependencyGraph.from_mapping({Tool.MISE: [Tool.HOMEBREW]}),
        poll_interval=0.001,
    )

    async def run(tool: Tool) -> TaskOutcome:
        raise AssertionError("blocked tool must not run")

    outcomes = await scheduler.execute_parallel(
        [Tool.MISE],
        run,
        on_start=lambda tool: manager.transition(tool, ProgressState.EXECUTING),
        on_finish=lambda outcome: manager.transition(outcome.id, ProgressState.FAILED),
    )
    manager.finalize()

    assert outcomes[0].message == "blocked: waiting on Homebrew"
    assert manager.state(Tool.MISE) is ProgressState.FAILED
    assert manager.indicator(Tool.MISE).message == "❌ Mise failed"
    assert manager.status().state == "failed"


def test_summarize_groups_in_tool_order() -> None:
    outcomes = [
        TaskOutcome(id=Tool.MISE, success=False, message="Mise failed: mise up exited 1"),
        TaskOutcome(id=Tool.RUSTUP, success=True, message="Rustup updated", changed=True),
        TaskOutcome(
            id=Tool.HOMEBREW,
            success=True,
            message="Homebrew updated",
            changed=True,
            details=("wget: 1.21.3 → 1.21.4",),
        ),
    ]

    summary = summarize(outcomes)

    assert summary.updated == [Tool.HOMEBREW]
    assert summary.unchanged == [Tool.RUSTUP]
    assert [outcome.id for outcome in summary.failed] == [Tool.MISE]
    assert summary.details == {Tool.HOMEBREW: ("wget: 1.21.3 → 1.21.4",)}
    assert not summary.ok
