"""Async shell command runner used by the tool update steps."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

SUPPRESS_OUTPUT_ENV = "DEVTOOL_SUPPRESS_OUTPUT"
TAIL_LINES = 40


@dataclass(frozen=True)
class CommandResult:
    """Result envelope for one shell command."""

    command: str
    returncode: int
    output: str
    logfile: Path

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(RuntimeError):
    """Raised when a command cannot be started at all."""

    def __init__(self, command: str, detail: str):
        super().__init__(f"failed to spawn command: {command}\n{detail}")
        self.command = command


class Runner(Protocol):
    async def __call__(self, command: str, *, logfile: Path, verbose: bool = False) -> CommandResult: ...


def output_suppressed() -> bool:
    return os.getenv(SUPPRESS_OUTPUT_ENV, "").strip().lower() in ("1", "true")


def enable_output_suppression() -> None:
    os.environ[SUPPRESS_OUTPUT_ENV] = "1"


def disable_output_suppression() -> None:
    os.environ.pop(SUPPRESS_OUTPUT_ENV, None)


async def run_command(command: str, *, logfile: Path, verbose: bool = False) -> CommandResult:
    """Run ``command`` through the shell, appending stdout and stderr to ``logfile``.

    The returned output holds the last ``TAIL_LINES`` lines. Output is echoed
    to the terminal only in verbose mode and when suppression is off.

    Raises:
        CommandError: If the shell process cannot be spawned.
    """
    logfile.parent.mkdir(parents=True, exist_ok=True)
    echo = verbose and not output_suppressed()
    logger.debug("Running: %s", command)

    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            stdin=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        raise CommandError(command, str(exc)) from exc

    tail: deque[str] = deque(maxlen=TAIL_LINES)
    assert process.stdout is not None
    with logfile.open("a", encoding="utf-8") as handle:
        if verbose:
            handle.write(f"Running: {command}\n")
        async for raw in process.stdout:
            line = raw.decode("utf-8", errors="replace")
            handle.write(line)
            handle.flush()
            tail.append(line.rstrip("\n"))
            if echo:
                sys.stdout.write(line)
                sys.stdout.flush()

    returncode = await process.wait()
    logger.debug("Exit %s: %s", returncode, command)
    return CommandResult(
        command=command,
        returncode=returncode,
        output="\n".join(tail),
        logfile=logfile,
    )
