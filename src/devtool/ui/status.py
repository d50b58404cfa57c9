"""Single-file progress status shared between a run and `devtool progress-status`."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

STATUS_FILENAME = "progress.status"


@dataclass(frozen=True)
class ProgressStatus:
    """Aggregate progress of the current (or last) run."""

    state: str
    percent: int | None = None
    done: int | None = None
    total: int | None = None
    desc: str | None = None
    ts: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> ProgressStatus:
        if not isinstance(data, dict):
            raise ValueError("progress status must be a JSON object")
        state = data.get("state")
        if not isinstance(state, str) or not state:
            raise ValueError("progress status is missing 'state'")
        for key in ("percent", "done", "total"):
            value = data.get(key)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
                raise ValueError(f"progress status field '{key}' must be an integer")
        for key in ("desc", "ts"):
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"progress status field '{key}' must be a string")
        return cls(
            state=state,
            percent=data.get("percent"),
            done=data.get("done"),
            total=data.get("total"),
            desc=data.get("desc"),
            ts=data.get("ts"),
        )


def status_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def canonical_dumps(obj: Any) -> str:
    """Serialize with stable key order so successive writes diff cleanly."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def write_progress_status(path: Path, status: ProgressStatus) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_text(canonical_dumps(status.to_dict()), encoding="utf-8")
    tmp_path.replace(path)


def read_progress_status(path: Path) -> ProgressStatus | None:
    """Load the status file; ``None`` when absent.

    Raises:
        ValueError: If the file exists but is not a valid status document.
    """
    if not path.exists():
        return None
    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError(f"status file is not valid UTF-8: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"failed to parse JSON: {exc}") from exc
    return ProgressStatus.from_dict(data)
