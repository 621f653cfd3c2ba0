"""
tmux backend for the multiplexer control surface.

Every operation is one ``tmux`` invocation through
``asyncio.create_subprocess_exec`` (argv, never a shell string, so message
text needs no quoting). Non-zero exits and a missing ``tmux`` binary are
raised as MultiplexerError; callers decide whether that is fatal.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Sequence

import structlog

from panerelay.core.exceptions import MultiplexerError
from panerelay.os.multiplexer.base import BaseMultiplexer

logger = structlog.get_logger()

DEFAULT_COMMAND_TIMEOUT_S = 10.0


async def _reap(proc: asyncio.subprocess.Process) -> None:
    """Kill *proc* and wait for it so no zombie or open transport is left behind."""
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await proc.wait()


class TmuxMultiplexer(BaseMultiplexer):
    """
    Drive tmux sessions with one subprocess per command.

    Usage::

        mux = TmuxMultiplexer()
        await mux.create_detached_session("panerelay-web", "/src/web", ["claude"])
        await mux.send_keys("panerelay-web", "ls", enter=True)
        text = await mux.capture_pane("panerelay-web", scrollback=3000)
    """

    backend_name = "tmux"

    def __init__(
        self,
        binary: str = "tmux",
        command_timeout_s: float = DEFAULT_COMMAND_TIMEOUT_S,
    ) -> None:
        self._binary = binary
        self._timeout = command_timeout_s

    async def _run(self, *args: str) -> tuple[int, str, str]:
        """Run one tmux command; return (returncode, stdout, stderr)."""
        argv = [self._binary, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise MultiplexerError(f"{self._binary} not found on PATH", command=argv) from exc
        except OSError as exc:
            raise MultiplexerError(f"Cannot execute {self._binary}: {exc}", command=argv) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError as exc:
            await _reap(proc)
            raise MultiplexerError(
                f"{self._binary} {args[0]} timed out after {self._timeout}s", command=argv
            ) from exc
        except asyncio.CancelledError:
            await _reap(proc)
            raise

        returncode = proc.returncode if proc.returncode is not None else -1
        return (
            returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def _check(self, *args: str) -> str:
        returncode, stdout, stderr = await self._run(*args)
        if returncode != 0:
            raise MultiplexerError(
                f"{self._binary} {args[0]} failed: {stderr.strip() or f'exit {returncode}'}",
                command=[self._binary, *args],
                returncode=returncode,
            )
        return stdout

    async def create_detached_session(self, name: str, cwd: str, command: Sequence[str]) -> None:
        args = ["new-session", "-d", "-s", name]
        if cwd:
            args += ["-c", cwd]
        await self._check(*args, *command)
        logger.debug("tmux_session_created", session=name, cwd=cwd, command=" ".join(command))

    async def kill_session(self, name: str) -> None:
        await self._check("kill-session", "-t", name)

    async def has_session(self, name: str) -> bool:
        returncode, _, _ = await self._run("has-session", "-t", name)
        return returncode == 0

    async def send_keys(
        self,
        name: str,
        keys: str,
        *,
        literal: bool = True,
        enter: bool = False,
    ) -> None:
        if keys:
            if literal:
                await self._check("send-keys", "-t", name, "-l", "--", keys)
            else:
                await self._check("send-keys", "-t", name, keys)
        if enter:
            await self._check("send-keys", "-t", name, "Enter")

    async def capture_pane(self, name: str, scrollback: int | None = None) -> str:
        args = ["capture-pane", "-p", "-t", name]
        if scrollback:
            args += ["-S", f"-{scrollback}"]
        return await self._check(*args)
