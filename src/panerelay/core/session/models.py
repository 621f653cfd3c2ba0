"""
Session domain models.

An Instance is one logical assistant instance known to the coordinator:
an optional TerminalSession (absent until started, or for instances that
are only replayed from history) plus the EventReconciler holding its
conversation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from panerelay.core.conversation.reconciler import EventReconciler
    from panerelay.core.session.terminal import TerminalSession


@dataclass(frozen=True)
class SessionStatus:
    """
    Running state of one TerminalSession.

    ``pid`` is a presence indicator only (1 while running, None otherwise):
    the multiplexer does not hand back the assistant's real process id.
    """

    is_running: bool
    pid: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"isRunning": self.is_running, "pid": self.pid}


@dataclass
class Instance:
    """One assistant instance tracked by the SessionCoordinator."""

    instance_id: str
    reconciler: EventReconciler
    terminal: TerminalSession | None = None
    cwd: str = ""
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def is_running(self) -> bool:
        return self.terminal is not None and self.terminal.is_running

    def status(self) -> SessionStatus:
        if self.terminal is None:
            return SessionStatus(is_running=False)
        return self.terminal.get_status()

    def short_id(self) -> str:
        """First 8 chars of instance_id for display."""
        return self.instance_id[:8]
