"""Shared fixtures: an in-memory multiplexer and an async polling helper."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

import pytest
import structlog

from panerelay.core.exceptions import MultiplexerError
from panerelay.os.multiplexer.base import BaseMultiplexer

WELCOME_SCREEN = (
    "╭───────────────────────────────────────╮\n"
    "│ ✻ Welcome to the assistant!           │\n"
    "╰───────────────────────────────────────╯\n"
)


def prompt_box(text: str) -> str:
    width = max(len(text) + 4, 20)
    return (
        "╭" + "─" * width + "╮\n"
        "│ > " + text.ljust(width - 3) + "│\n"
        "╰" + "─" * width + "╯\n"
    )


class FakeMultiplexer(BaseMultiplexer):
    """
    tmux stand-in keeping one growing pane buffer per session.

    ``send_keys`` echoes the typed text inside a prompt box and, on Enter,
    appends the scripted reply from ``responses``.
    """

    backend_name = "fake"

    def __init__(self) -> None:
        self.panes: dict[str, str] = {}
        self.calls: list[tuple[str, ...]] = []
        self.responses: dict[str, str] = {}
        self.fail_ops: set[str] = set()
        self.commands: dict[str, list[str]] = {}
        self.cwds: dict[str, str] = {}
        self.scrollbacks: list[int | None] = []

    def _maybe_fail(self, op: str, name: str) -> None:
        self.calls.append((op, name))
        if op in self.fail_ops:
            raise MultiplexerError(f"fake {op} failed", command=[op, name], returncode=1)

    def _require(self, name: str) -> None:
        if name not in self.panes:
            raise MultiplexerError(f"can't find session: {name}", returncode=1)

    async def create_detached_session(self, name: str, cwd: str, command: Sequence[str]) -> None:
        self._maybe_fail("create", name)
        if name in self.panes:
            raise MultiplexerError(f"duplicate session: {name}", returncode=1)
        self.panes[name] = WELCOME_SCREEN
        self.commands[name] = list(command)
        self.cwds[name] = cwd

    async def kill_session(self, name: str) -> None:
        self._maybe_fail("kill", name)
        self._require(name)
        del self.panes[name]

    async def has_session(self, name: str) -> bool:
        self._maybe_fail("has", name)
        return name in self.panes

    async def send_keys(
        self, name: str, keys: str, *, literal: bool = True, enter: bool = False
    ) -> None:
        self._maybe_fail("send", name)
        self._require(name)
        self.calls.append(("keys", keys, "literal" if literal else "key", "enter" if enter else ""))
        if literal and enter:
            self.panes[name] += prompt_box(keys) + self.responses.get(keys, "")

    async def capture_pane(self, name: str, scrollback: int | None = None) -> str:
        self._maybe_fail("capture", name)
        self._require(name)
        self.scrollbacks.append(scrollback)
        # tmux pads the capture with the empty rows below the cursor
        return self.panes[name] + "\n\n\n"

    def kill_externally(self, name: str) -> None:
        """Simulate the assistant exiting on its own."""
        self.panes.pop(name, None)


@pytest.fixture
def fake_mux() -> FakeMultiplexer:
    return FakeMultiplexer()


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[bool]]:
    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() > deadline:
                return False
            await asyncio.sleep(0.005)
        return True

    return _wait


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any ``configure_logging()`` a test performed (incl. logger caching)."""
    yield
    structlog.reset_defaults()
