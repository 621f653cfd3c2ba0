"""
Abstract terminal multiplexer control surface.

The external assistant process runs inside a named, detached multiplexer
session. panerelay never talks to the process directly; it only uses the
five operations below.

Concrete implementations:
  TmuxMultiplexer — tmux, via asyncio subprocesses

Contract:
  Every operation except has_session() raises MultiplexerError when the
  underlying command cannot be run or reports failure. has_session()
  answers False for an absent session and only raises when the
  multiplexer itself cannot be executed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence


class BaseMultiplexer(ABC):
    """Abstract multiplexer backend (one instance can drive many sessions)."""

    #: Short identifier shown in logs (e.g. "tmux")
    backend_name: str = ""

    @abstractmethod
    async def create_detached_session(self, name: str, cwd: str, command: Sequence[str]) -> None:
        """Create session *name* in *cwd* running *command*, without attaching."""

    @abstractmethod
    async def kill_session(self, name: str) -> None:
        """Terminate session *name* and the process running inside it."""

    @abstractmethod
    async def has_session(self, name: str) -> bool:
        """Return True if session *name* exists."""

    @abstractmethod
    async def send_keys(
        self,
        name: str,
        keys: str,
        *,
        literal: bool = True,
        enter: bool = False,
    ) -> None:
        """
        Type *keys* into session *name*.

        Args:
            literal: Send *keys* as literal text. When False, *keys* is a key
                     name understood by the backend (e.g. "C-c", "Enter").
            enter:   Press Enter after the keys.
        """

    @abstractmethod
    async def capture_pane(self, name: str, scrollback: int | None = None) -> str:
        """
        Return the text of the session's pane.

        Args:
            scrollback: Number of history lines above the visible area to
                        include. None captures only the visible pane.
        """
