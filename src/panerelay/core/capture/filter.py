"""
Terminal capture filtering.

Turns a raw pane capture of the assistant's TUI into presentable content
plus the "context left until auto-compact" percentage, when shown.

Single line-oriented pass, order matters:
  1. The auto-compact marker line yields the percentage and ends the
     message: the marker line and every line after it are discarded.
  2. Blank lines, box-drawing frames and short noise are dropped; prompt
     lines (``> ...``) are relabelled as the human's turn.
  3. Kept lines are joined as paragraphs.

Pure functions only — no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# CSI / OSC / charset / other ESC sequences, plus bare carriage returns.
_ANSI_RE = re.compile(
    r"\x1b\[[0-9;?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07]*(?:\x07|\x1b\\)"
    r"|\x1b[()][A-Z0-9]"
    r"|\x1b[ -/]*[@-~]"
    r"|\r"
)

CONTEXT_MARKER = "auto-compact:"
_CONTEXT_PERCENT_RE = re.compile(r"auto-compact:\s*(\d+)%")

# Lines that are nothing but frame drawing
_BOX_ONLY_RE = re.compile(r"^[╭╮╰╯│─┌┐└┘├┤┬┴┼━┃┏┓┗┛┣┫┳┻╋]+$")
# Lines framed on both ends (e.g. "│ > try this │")
_BOX_FRAMED_RE = re.compile(r"^[╭╮╰╯│─]+.*[╭╮╰╯│─]+$")

HUMAN_PREFIX = "**You:**"
MIN_LINE_CHARS = 3
PARAGRAPH_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class FilteredOutput:
    """Cleaned capture content and the optional context-left signal."""

    content: str
    context_percent: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.content

    def to_dict(self) -> dict[str, object]:
        return {"content": self.content, "contextPercent": self.context_percent}


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes and carriage returns from terminal text."""
    return _ANSI_RE.sub("", text)


def extract_context_percent(line: str) -> int | None:
    """Return the auto-compact percentage on *line*, or None."""
    match = _CONTEXT_PERCENT_RE.search(line)
    if match is None:
        return None
    return int(match.group(1))


def _clean_line(trimmed: str) -> str | None:
    """Return the presentable form of one trimmed line, or None to drop it."""
    if not trimmed:
        return None
    if _BOX_ONLY_RE.match(trimmed) or _BOX_FRAMED_RE.match(trimmed):
        return None
    if trimmed.startswith(">"):
        said = trimmed[1:].strip()
        return f"{HUMAN_PREFIX} {said}" if said else None
    if len(trimmed) < MIN_LINE_CHARS:
        return None
    return trimmed


def filter_output(raw: str) -> FilteredOutput:
    """Filter one raw capture (or captured region) into a FilteredOutput."""
    kept: list[str] = []
    context_percent: int | None = None

    for line in strip_ansi(raw).split("\n"):
        trimmed = line.strip()
        if CONTEXT_MARKER in trimmed:
            percent = extract_context_percent(trimmed)
            if percent is not None:
                context_percent = percent
            # End of message: nothing after the marker is kept
            break
        cleaned = _clean_line(trimmed)
        if cleaned is not None:
            kept.append(cleaned)

    return FilteredOutput(
        content=PARAGRAPH_SEPARATOR.join(kept).strip(),
        context_percent=context_percent,
    )
