"""Tool and agent execution tracking."""

from panerelay.core.tracking.tools import ToolExecution, ToolStatus, ToolTracker

__all__ = ["ToolExecution", "ToolStatus", "ToolTracker"]
