"""Domain types for parallel tool updates."""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from enum import Enum


class Tool(str, Enum):
    """Update targets known to devtool."""

    HOMEBREW = "homebrew"
    RUSTUP = "rustup"
    MISE = "mise"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def binary(self) -> str:
        return _BINARIES[self]

    @classmethod
    def parse(cls, value: str) -> Tool:
        """Resolve a tool from its value or display name (case-insensitive)."""
        normalized = value.strip().lower()
        for tool in cls:
            if normalized in (tool.value, tool.display_name.lower(), tool.binary):
                return tool
        valid = ", ".join(tool.value for tool in cls)
        raise ValueError(f"Unknown tool: {value!r}. Valid tools: {valid}")


_DISPLAY_NAMES: dict[Tool, str] = {
    Tool.HOMEBREW: "Homebrew",
    Tool.RUSTUP: "Rustup",
    Tool.MISE: "Mise",
}

_DESCRIPTIONS: dict[Tool, str] = {
    Tool.HOMEBREW: "Homebrew update & upgrade & cleanup",
    Tool.RUSTUP: "Rustup all toolchains update",
    Tool.MISE: "Mise tools update",
}

_BINARIES: dict[Tool, str] = {
    Tool.HOMEBREW: "brew",
    Tool.RUSTUP: "rustup",
    Tool.MISE: "mise",
}

DEFAULT_TOOLS: tuple[Tool, ...] = (Tool.HOMEBREW, Tool.RUSTUP, Tool.MISE)


def display_name_of(task_id: Hashable) -> str:
    """Human label for any task id; tools use their display name."""
    name = getattr(task_id, "display_name", None)
    if isinstance(name, str):
        return name
    return str(task_id)


@dataclass(frozen=True)
class TaskOutcome:
    """Result of one finished task."""

    id: Hashable
    success: bool
    message: str
    changed: bool = False
    details: tuple[str, ...] = ()

    @classmethod
    def failure(cls, task_id: Hashable, message: str) -> TaskOutcome:
        return cls(id=task_id, success=False, message=message)
