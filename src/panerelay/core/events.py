"""
Outbound events handed to the broadcast collaborator.

Each event is a frozen dataclass with a stable ``event_type`` string and a
``to_dict()`` wire rendering (camelCase keys, as viewers expect).

  output-filtered  — new cleaned terminal content (or the startup history)
  context-updated  — auto-compact context percentage changed
  status-changed   — the external session started or stopped
  command-sent     — text was typed into the session
  messages-changed — the reconciled conversation changed
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from panerelay.core.conversation.messages import CanonicalMessage


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class OutputFiltered:
    session_id: str
    content: str
    context_percent: int | None = None
    timestamp: int = field(default_factory=now_ms)
    history: bool = False  # True for the one-off startup capture

    event_type = "output-filtered"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "sessionId": self.session_id,
            "content": self.content,
            "contextPercent": self.context_percent,
            "timestamp": self.timestamp,
            "history": self.history,
        }


@dataclass(frozen=True)
class ContextUpdated:
    session_id: str
    context_percent: int
    timestamp: int = field(default_factory=now_ms)

    event_type = "context-updated"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "sessionId": self.session_id,
            "contextPercent": self.context_percent,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class StatusChanged:
    session_id: str
    is_running: bool
    reason: str = ""

    event_type = "status-changed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "sessionId": self.session_id,
            "isRunning": self.is_running,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class CommandSent:
    session_id: str
    content: str
    timestamp: int = field(default_factory=now_ms)

    event_type = "command-sent"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "sessionId": self.session_id,
            "content": self.content,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class MessagesChanged:
    """Full message list after a change, copied at emit time so it stays fixed."""

    session_id: str
    messages: tuple[CanonicalMessage, ...]

    event_type = "messages-changed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "sessionId": self.session_id,
            "messages": [m.to_dict() for m in self.messages],
        }


RelayEvent = OutputFiltered | ContextUpdated | StatusChanged | CommandSent | MessagesChanged
EventListener = Callable[[RelayEvent], None]
