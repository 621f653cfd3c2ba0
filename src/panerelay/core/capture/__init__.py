"""Capture subsystem — pane snapshot diffing and terminal output filtering."""

from panerelay.core.capture.differ import OutputDiffer, diff_snapshots
from panerelay.core.capture.filter import FilteredOutput, filter_output, strip_ansi

__all__ = [
    "FilteredOutput",
    "OutputDiffer",
    "diff_snapshots",
    "filter_output",
    "strip_ansi",
]
