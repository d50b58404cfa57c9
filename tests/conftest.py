"""Shared fixtures for devtool tests."""
from pathlib import Path

import pytest

from devtool.runner import SUPPRESS_OUTPUT_ENV

_DEVTOOL_ENV = ("DEVTOOL_CONFIG", "DEVTOOL_JOBS", "DEVTOOL_NO_COLOR", "DEVTOOL_NO_ICONS", SUPPRESS_OUTPUT_ENV)


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point config and cache lookups at a per-test directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    for name in _DEVTOOL_ENV:
        monkeypatch.delenv(name, raising=False)
    return tmp_path
