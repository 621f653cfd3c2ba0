"""panerelay constants: filesystem layout, timings, and limits."""

from __future__ import annotations

import os
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Platform-specific config directory
# ---------------------------------------------------------------------------


def _default_data_dir() -> Path:
    """
    Return the platform-appropriate panerelay data directory.

    macOS : ~/Library/Application Support/panerelay
    Linux : ~/.config/panerelay
    Other : ~/.panerelay
    """
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "panerelay"
    if sys.platform.startswith("linux"):
        xdg = Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config")))
        return xdg / "panerelay"
    return Path.home() / ".panerelay"


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

CONFIG_FILENAME = "config.toml"

# ---------------------------------------------------------------------------
# External process
# ---------------------------------------------------------------------------

DEFAULT_COMMAND: tuple[str, ...] = ("claude", "--continue")
SESSION_NAME_PREFIX = "panerelay-"

# ---------------------------------------------------------------------------
# Timings and limits
# ---------------------------------------------------------------------------

CAPTURE_DELAY_SECONDS = 3.0  # startup banner render time / post-send settle time
LIVENESS_INTERVAL_SECONDS = 5.0
SCROLLBACK_LINES = 3000  # history lines pulled by full captures

MAX_COMPLETED_TOOLS = 10
MAX_COMPLETED_AGENTS = 5
AGENT_DESCRIPTION_PROMPT_CHARS = 50
