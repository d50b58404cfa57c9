"""devtool CLI - update Homebrew, Rustup and Mise in one go."""

from __future__ import annotations

import asyncio
import sys
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import typer

from devtool import __version__
from devtool.config import ConfigError, Settings, ensure_cache_dir, get_cache_dir, load_settings
from devtool.log import configure_logging
from devtool.parallel import DEFAULT_TOOLS, Tool
from devtool.ui.console import (
    configure_console,
    format_duration,
    get_console,
    icon,
    print_error,
    print_info,
    print_success,
    print_warning,
    render_banner,
    should_show_banner,
)
from devtool.ui.progress import ProgressBarManager
from devtool.ui.status import STATUS_FILENAME, read_progress_status
from devtool.updates import UpdateSummary, detect_available_tools, run_updates, summarize

cli = typer.Typer(
    name="devtool",
    help="devtool - unified updater for Homebrew, Rustup and Mise.",
    no_args_is_help=False,
)

DETAIL_ICONS: dict[Tool, str] = {
    Tool.HOMEBREW: "package",
    Tool.RUSTUP: "rust",
    Tool.MISE: "wrench",
}


@dataclass(frozen=True)
class UpdateOptions:
    """Flags accepted by `devtool update`."""

    dry_run: bool = False
    verbose: bool = False
    no_color: bool = False
    keep_logs: bool = False
    jobs: int | None = None
    sequential: bool = False
    no_banner: bool = False
    compact: bool = False
    config: Path | None = None


def _version_option_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@cli.callback(invoke_without_command=True)
def _cli_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        help="Show devtool version and exit.",
        is_eager=True,
        callback=_version_option_callback,
    ),
) -> None:
    """Run `update` when no sub-command is given."""
    _ = version
    if ctx.invoked_subcommand is None:
        _run_update(UpdateOptions())


@cli.command()
def update(
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would run without running it."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Echo command output and debug logs."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output."),
    keep_logs: bool = typer.Option(False, "--keep-logs", help="Keep command logs under the cache dir."),
    jobs: int | None = typer.Option(
        None,
        "--jobs",
        "-j",
        min=0,
        help="Maximum concurrent updates (0 = unlimited; default from config, 3).",
    ),
    sequential: bool = typer.Option(False, "--sequential", help="Run one update at a time."),
    no_banner: bool = typer.Option(False, "--no-banner", help="Do not print the start banner."),
    compact: bool = typer.Option(False, "--compact", help="Compact output for non-interactive use."),
    config: Path | None = typer.Option(None, "--config", help="Path to a config.yaml file."),
) -> None:
    """Update every installed tool."""
    _run_update(
        UpdateOptions(
            dry_run=dry_run,
            verbose=verbose,
            no_color=no_color,
            keep_logs=keep_logs,
            jobs=jobs,
            sequential=sequential,
            no_banner=no_banner,
            compact=compact,
            config=config,
        )
    )


def _load_settings_or_exit(options: UpdateOptions) -> Settings:
    try:
        settings = load_settings(options.config)
        return settings.with_overrides(
            jobs=1 if options.sequential else options.jobs,
            keep_logs=True if options.keep_logs else None,
        )
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(2) from exc


@contextmanager
def _log_workdir(keep_logs: bool) -> Iterator[Path]:
    if keep_logs:
        yield ensure_cache_dir()
        return
    with tempfile.TemporaryDirectory(prefix="devtool-") as tmp:
        yield Path(tmp)


def _run_update(options: UpdateOptions) -> None:
    console = configure_console(no_color=options.no_color)
    configure_logging(verbose=options.verbose, no_color=options.no_color)
    settings = _load_settings_or_exit(options)

    started_at = datetime.now()
    started = time.monotonic()
    if should_show_banner(sys.argv, no_banner=options.no_banner, compact=options.compact):
        render_banner(started_at)

    available, skipped = detect_available_tools()
    if not available:
        names = ", ".join(tool.display_name for tool in skipped)
        print_warning(f"{icon('warning')} No executable steps detected. Skipped: {names}")
        return

    print_info(f"{icon('clipboard')} {len(available)} step(s) to run:")
    for index, tool in enumerate(available, start=1):
        console.print(f"  {index}) {tool.description}")
    if skipped and options.verbose:
        print_warning(f"Skipped (not installed): {', '.join(t.display_name for t in skipped)}")
    if options.verbose:
        limit = settings.jobs or "unlimited"
        print_info(f"{icon('rocket')} Parallel mode (max concurrent: {limit})")
    if options.dry_run:
        print_info("Dry run: no commands will be executed.")

    status_path = get_cache_dir() / STATUS_FILENAME
    with _log_workdir(settings.keep_logs) as workdir:
        manager = ProgressBarManager(console, status_path=status_path)
        outcomes = asyncio.run(
            run_updates(
                available,
                settings=settings,
                manager=manager,
                workdir=workdir,
                dry_run=options.dry_run,
                verbose=options.verbose,
            )
        )

    summary = summarize(outcomes)
    _print_summary(summary, elapsed=time.monotonic() - started, compact=options.compact)
    if settings.keep_logs:
        console.print(f"Logs kept in {get_cache_dir()}")
    if not summary.ok:
        raise typer.Exit(1)


def _print_summary(summary: UpdateSummary, *, elapsed: float, compact: bool) -> None:
    console = get_console()
    finished_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    console.print()
    print_success(f"Update complete {finished_at} (time taken: {format_duration(elapsed)})")

    if summary.updated:
        print_success(f"{icon('success')} Updated: {', '.join(t.display_name for t in summary.updated)}")
    else:
        print_info(f"{icon('info')} No updates")
    if summary.unchanged:
        names = ", ".join(t.display_name for t in summary.unchanged)
        print_warning(f"{icon('warning')} Already latest: {names}")

    if not compact:
        for tool, details in summary.details.items():
            print_info(f"{icon(DETAIL_ICONS[tool])} {tool.display_name} upgrade details:")
            for detail in details:
                console.print(f"   {detail}", markup=False)

    if summary.failed:
        names = ", ".join(outcome.id.display_name for outcome in summary.failed)
        print_error(f"{icon('failure')} Failed: {names}")
        for outcome in summary.failed:
            console.print(f"   {outcome.message}", markup=False)


@cli.command(name="tools")
def tools_cmd(
    config: Path | None = typer.Option(None, "--config", help="Path to a config.yaml file."),
) -> None:
    """List supported tools, whether they are installed, and their dependencies."""
    console = configure_console()
    settings = _load_settings_or_exit(UpdateOptions(config=config))
    available, _ = detect_available_tools()
    for tool in DEFAULT_TOOLS:
        mark = icon("success") if tool in available else icon("failure")
        deps = settings.dependencies.get(tool, ())
        after = f" (after {', '.join(dep.display_name for dep in deps)})" if deps else ""
        console.print(f"{mark} {tool.display_name:<9} {tool.description}{after}", markup=False)


@cli.command(name="progress-status")
def progress_status() -> None:
    """Show the progress status written by the last run."""
    status_file = get_cache_dir() / STATUS_FILENAME
    if not status_file.exists():
        typer.echo(f"No progress.status file: {status_file}")
        return
    try:
        status = read_progress_status(status_file)
    except ValueError as exc:
        raw = status_file.read_bytes().decode("utf-8", errors="replace")
        typer.echo(f"Raw content: {raw}")
        typer.echo(f"Error: {exc}", err=True)
        return
    if status is None:
        typer.echo(f"No progress.status file: {status_file}")
        return

    typer.echo(f"state: {status.state}")
    for key in ("percent", "done", "total", "desc", "ts"):
        value = getattr(status, key)
        if value is not None:
            typer.echo(f"{key}: {value}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
