from __future__ import annotations

import os
from collections.abc import Sequence
from datetime import datetime
from itertools import cycle

from rich.console import Console
from rich.text import Text

BANNER_LINES: list[str] = [
    "█▀▄ █▀▀ █ █ ▀█▀ █▀█ █▀█ █  ",
    "█ █ █▀▀ ▀▄▀  █  █ █ █ █ █  ",
    "▀▀  ▀▀▀  ▀   ▀  ▀▀▀ ▀▀▀ ▀▀▀",
]

BANNER_PALETTE: list[str] = [
    "bright_magenta",
    "magenta",
    "bright_cyan",
    "cyan",
    "bright_blue",
    "blue",
]

ICONS: dict[str, tuple[str, str]] = {
    "success": ("✅", "[OK]"),
    "failure": ("❌", "[FAIL]"),
    "warning": ("⚠️", "[!]"),
    "info": ("ℹ️", "[i]"),
    "clipboard": ("📋", "[*]"),
    "rocket": ("🚀", "[>]"),
    "package": ("📦", "[pkg]"),
    "rust": ("🦀", "[rs]"),
    "wrench": ("🔧", "[mise]"),
    "tools": ("🛠️", "[tools]"),
    "paused": ("⏸️", "[--]"),
}

_console = Console(highlight=False)


def color_enabled() -> bool:
    return not (os.getenv("NO_COLOR") or os.getenv("DEVTOOL_NO_COLOR", "0") == "1")


def icons_enabled() -> bool:
    return os.getenv("DEVTOOL_NO_ICONS", "0") != "1"


def icon(name: str) -> str:
    fancy, plain = ICONS[name]
    return fancy if icons_enabled() else plain


def get_console() -> Console:
    return _console


def configure_console(*, no_color: bool = False) -> Console:
    """Rebuild the shared console honouring --no-color and the env toggles."""
    global _console
    _console = Console(highlight=False, no_color=no_color or not color_enabled())
    return _console


def should_show_banner(argv: Sequence[str], *, no_banner: bool = False, compact: bool = False) -> bool:
    if no_banner or compact:
        return False
    if any(a in ("--help", "-h", "--version") for a in argv[1:]):
        return False
    return True


def render_banner(started_at: datetime) -> None:
    console = get_console()
    colors = cycle(BANNER_PALETTE)
    for line in BANNER_LINES:
        t = Text()
        for ch in line:
            t.append(ch, style=f"bold {next(colors)}")
        console.print(t)
    console.print(
        Text(
            f"Developer tool updater · started {started_at.strftime('%Y-%m-%d %H:%M:%S')}",
            style="bold magenta",
        )
    )
    console.print()


def print_success(msg: str) -> None:
    get_console().print(Text(msg, style="bold green"))


def print_info(msg: str) -> None:
    get_console().print(Text(msg, style="blue"))


def print_warning(msg: str) -> None:
    get_console().print(Text(msg, style="yellow"))


def print_error(msg: str) -> None:
    get_console().print(Text(msg, style="bold red"))


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"
