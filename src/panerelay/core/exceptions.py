"""panerelay exception hierarchy."""

from __future__ import annotations


class PaneRelayError(Exception):
    """Base exception for all panerelay errors."""


class ConfigError(PaneRelayError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when the configuration file does not exist."""


class MultiplexerError(PaneRelayError):
    """Raised when a terminal multiplexer command cannot be run or exits non-zero."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        returncode: int | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command or []
        self.returncode = returncode


class SessionError(PaneRelayError):
    """Raised when session management fails."""


class SessionNotFoundError(SessionError):
    """Raised when an instance id is not in the registry."""
