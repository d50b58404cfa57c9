"""Terminal presentation for devtool runs."""

from devtool.ui.progress import (
    ProgressAnimator,
    ProgressBarManager,
    ProgressState,
    display_message,
    is_valid_transition,
    progress_percentage,
)
from devtool.ui.status import ProgressStatus, read_progress_status, write_progress_status

__all__ = [
    "ProgressAnimator",
    "ProgressBarManager",
    "ProgressState",
    "ProgressStatus",
    "display_message",
    "is_valid_transition",
    "progress_percentage",
    "read_progress_status",
    "write_progress_status",
]
