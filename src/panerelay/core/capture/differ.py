"""
OutputDiffer — "what's new" between two successive full-pane captures.

The diff is line-count based, not content aware: the lines of the current
capture from index ``len(previous lines)`` onwards are the new region. It
is only correct while the pane buffer grows monotonically. Once the
multiplexer scrolls or truncates the window the suffix is wrong; that
case is detected by :meth:`OutputDiffer.is_monotonic` and, with
``fail_soft=True``, the whole current capture is reported as new instead.

Trailing blank rows are not counted: tmux pads a capture out to the pane
height, and those rows fill up with content as output arrives. Blank rows
at the start of the new region are dropped for the same reason: they are
the padding (or final newline) of the previous capture, not new content.
"""

from __future__ import annotations

import structlog

logger = structlog.get_logger()


def _content_lines(text: str) -> list[str]:
    lines = text.splitlines()
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


class OutputDiffer:
    """
    Line-count differ for monotonically growing captures.

    Usage::

        differ = OutputDiffer()
        new_region = differ.diff(last_snapshot, current_snapshot)
    """

    def __init__(self, *, fail_soft: bool = False) -> None:
        self._fail_soft = fail_soft

    @property
    def fail_soft(self) -> bool:
        return self._fail_soft

    @staticmethod
    def is_monotonic(previous: str, current: str) -> bool:
        """Return True if *current* keeps the lines of *previous* as its prefix."""
        prev_lines = _content_lines(previous)
        cur_lines = _content_lines(current)
        if len(cur_lines) < len(prev_lines):
            return False
        # The last previous line may still have been growing when captured
        head = prev_lines[:-1]
        return cur_lines[: len(head)] == head

    def diff(self, previous: str, current: str) -> str:
        """Return the new-content candidate of *current* relative to *previous*."""
        if current == previous:
            return ""

        prev_lines = _content_lines(previous)
        cur_lines = _content_lines(current)

        if prev_lines and not self.is_monotonic(previous, current):
            logger.debug(
                "capture_diff_non_monotonic",
                previous_lines=len(prev_lines),
                current_lines=len(cur_lines),
                fail_soft=self._fail_soft,
            )
            if self._fail_soft:
                return "\n".join(cur_lines)

        region = cur_lines[len(prev_lines) :]
        while region and not region[0].strip():
            region.pop(0)
        return "\n".join(region)


def diff_snapshots(previous: str, current: str) -> str:
    """Module-level shortcut for the default (strict line-count) differ."""
    return OutputDiffer().diff(previous, current)
