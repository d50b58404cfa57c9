"""Scripted stand-in for devtool.runner.run_command."""

from __future__ import annotations

from pathlib import Path

from devtool.runner import CommandResult


class StubRunner:
    """Answers commands from a table of ``substring -> (returncode, output)``.

    The first matching substring wins; later entries for the same substring
    are served in order when the value is a list.
    """

    def __init__(self, script: dict[str, tuple[int, str] | list[tuple[int, str]]]):
        self.script = {key: list(value) if isinstance(value, list) else [value] for key, value in script.items()}
        self.calls: list[str] = []

    async def __call__(self, command: str, *, logfile: Path, verbose: bool = False) -> CommandResult:
        self.calls.append(command)
        for needle, answers in self.script.items():
            if needle in command:
                returncode, output = answers.pop(0) if len(answers) > 1 else answers[0]
                return CommandResult(command=command, returncode=returncode, output=output, logfile=logfile)
        return CommandResult(command=command, returncode=0, output="", logfile=logfile)
