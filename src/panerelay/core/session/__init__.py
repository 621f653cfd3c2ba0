"""Session subsystem — external process lifecycle and instance registry."""

from panerelay.core.session.models import Instance, SessionStatus
from panerelay.core.session.registry import SessionRegistry
from panerelay.core.session.terminal import TerminalSession

__all__ = ["Instance", "SessionRegistry", "SessionStatus", "TerminalSession"]
