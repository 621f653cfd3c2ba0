"""
TerminalSession — one externally running assistant process, driven through
a terminal multiplexer session.

Lifecycle::

    stopped --start()--> running --(stop() | liveness check fails)--> stopped

While running:
  - a liveness task checks ``has_session`` every ``liveness_interval_s``;
    the first negative answer stops the session (no retry) and reports
    ``StatusChanged(is_running=False)``.
  - ``start()`` and ``send()`` schedule one delayed capture each
    (``capture_delay_s``). The start capture seeds the history; the send
    capture diffs against the last snapshot and emits only new content.

Concurrency:
  All multiplexer I/O for one session goes through ``self._lock``. The
  capture → diff → snapshot update runs under the lock, so two captures can
  never interleave on ``_last_snapshot``. Delayed captures are never
  cancelled; each remembers the generation it was scheduled in and emits
  nothing once the session has been stopped or restarted since.

Failure semantics:
  MultiplexerError never escapes this class. It is logged and turned into
  a False / "" return.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

import structlog

from panerelay.core.capture.differ import OutputDiffer
from panerelay.core.capture.filter import FilteredOutput, filter_output
from panerelay.core.constants import (
    CAPTURE_DELAY_SECONDS,
    DEFAULT_COMMAND,
    LIVENESS_INTERVAL_SECONDS,
    SCROLLBACK_LINES,
)
from panerelay.core.events import (
    CommandSent,
    ContextUpdated,
    EventListener,
    OutputFiltered,
    RelayEvent,
    StatusChanged,
)
from panerelay.core.exceptions import MultiplexerError
from panerelay.core.session.models import SessionStatus
from panerelay.os.multiplexer.base import BaseMultiplexer

logger = structlog.get_logger()

INTERRUPT_KEY = "C-c"


class TerminalSession:
    """
    Owns one named multiplexer session and the assistant running in it.

    Usage::

        session = TerminalSession("panerelay-web", TmuxMultiplexer())
        session.register_listener(print)
        await session.start("/src/web")
        await session.send("run the tests")
        ...
        await session.stop()
    """

    def __init__(
        self,
        session_id: str,
        multiplexer: BaseMultiplexer,
        *,
        command: Sequence[str] = DEFAULT_COMMAND,
        capture_delay_s: float = CAPTURE_DELAY_SECONDS,
        liveness_interval_s: float = LIVENESS_INTERVAL_SECONDS,
        scrollback_lines: int = SCROLLBACK_LINES,
        differ: OutputDiffer | None = None,
        output_filter: Callable[[str], FilteredOutput] = filter_output,
    ) -> None:
        self.session_id = session_id
        self._mux = multiplexer
        self._command = list(command)
        self._capture_delay = capture_delay_s
        self._liveness_interval = liveness_interval_s
        self._scrollback = scrollback_lines
        self._differ = differ or OutputDiffer()
        self._filter = output_filter

        self.cwd = ""
        self._running = False
        self._last_snapshot = ""
        self._generation = 0
        self._lock = asyncio.Lock()
        self._liveness_task: asyncio.Task[None] | None = None
        self._capture_tasks: set[asyncio.Task[None]] = set()
        self._listeners: list[EventListener] = []
        self._log = logger.bind(session_id=session_id)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_snapshot(self) -> str:
        return self._last_snapshot

    @property
    def generation(self) -> int:
        return self._generation

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def register_listener(self, cb: EventListener) -> None:
        """Register a callback to receive every outbound event."""
        self._listeners.append(cb)

    def _emit(self, event: RelayEvent) -> None:
        for cb in self._listeners:
            try:
                cb(event)
            except Exception as exc:  # noqa: BLE001
                self._log.warning("listener_failed", event_type=event.event_type, error=str(exc))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, cwd: str = "") -> bool:
        """Spawn the assistant in a fresh session. False if already running or on failure."""
        if self._running:
            self._log.debug("start_ignored_already_running")
            return False

        async with self._lock:
            if self._running:
                return False
            if await self._session_exists():
                try:
                    await self._mux.kill_session(self.session_id)
                    self._log.debug("stale_session_killed")
                except MultiplexerError as exc:
                    self._log.warning("stale_session_kill_failed", error=str(exc))

            try:
                await self._mux.create_detached_session(self.session_id, cwd, self._command)
            except MultiplexerError as exc:
                self._log.warning("session_start_failed", cwd=cwd, error=str(exc))
                return False

            self.cwd = cwd
            self._running = True
            self._last_snapshot = ""
            self._generation += 1
            generation = self._generation

        self._log.info("session_started", cwd=cwd, command=" ".join(self._command))
        self._liveness_task = asyncio.create_task(
            self._liveness_loop(generation), name=f"liveness:{self.session_id}"
        )
        self._schedule_capture(generation, history=True)
        self._emit(StatusChanged(self.session_id, is_running=True, reason="started"))
        return True

    async def stop(self) -> bool:
        """Kill the session. False if not running or the kill command failed."""
        if not self._running:
            return False

        self._cancel_liveness()
        async with self._lock:
            self._running = False
            self._generation += 1
            try:
                await self._mux.kill_session(self.session_id)
                killed = True
            except MultiplexerError as exc:
                self._log.warning("session_stop_failed", error=str(exc))
                killed = False

        self._log.info("session_stopped", killed=killed)
        self._emit(StatusChanged(self.session_id, is_running=False, reason="stopped"))
        return killed

    async def _session_exists(self) -> bool:
        try:
            return await self._mux.has_session(self.session_id)
        except MultiplexerError:
            return False

    def _cancel_liveness(self) -> None:
        task = self._liveness_task
        self._liveness_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    async def send(self, text: str) -> bool:
        """Type *text* followed by Enter, then capture the reply after a delay."""
        if not self._running:
            return False

        async with self._lock:
            try:
                await self._mux.send_keys(self.session_id, text, literal=True, enter=True)
            except MultiplexerError as exc:
                self._log.warning("send_failed", error=str(exc))
                return False
            generation = self._generation

        self._log.debug("message_sent", chars=len(text))
        self._emit(CommandSent(self.session_id, text))
        self._schedule_capture(generation, history=False)
        return True

    async def interrupt(self) -> bool:
        """Send Ctrl-C to the assistant. Does not change the running flag."""
        if not self._running:
            return False

        async with self._lock:
            try:
                await self._mux.send_keys(self.session_id, INTERRUPT_KEY, literal=False)
            except MultiplexerError as exc:
                self._log.warning("interrupt_failed", error=str(exc))
                return False
        self._log.info("session_interrupted")
        return True

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    async def get_raw_output(self) -> str:
        """Return the full pane text including scrollback, or "" if not running."""
        if not self._running:
            return ""
        async with self._lock:
            try:
                return await self._mux.capture_pane(self.session_id, self._scrollback)
            except MultiplexerError as exc:
                self._log.warning("capture_failed", error=str(exc))
                return ""

    def get_status(self) -> SessionStatus:
        return SessionStatus(is_running=self._running, pid=1 if self._running else None)

    def _schedule_capture(self, generation: int, *, history: bool) -> None:
        task = asyncio.create_task(
            self._delayed_capture(generation, history=history),
            name=f"capture:{self.session_id}",
        )
        # Hold a reference until done; these tasks are never cancelled
        self._capture_tasks.add(task)
        task.add_done_callback(self._capture_tasks.discard)

    async def _delayed_capture(self, generation: int, *, history: bool) -> None:
        await asyncio.sleep(self._capture_delay)
        await self.capture_now(generation=generation, history=history)

    async def capture_now(self, *, generation: int | None = None, history: bool = False) -> bool:
        """
        Capture the pane, diff it against the last snapshot and emit events.

        With *history* the whole capture is filtered (startup seeding);
        otherwise only the region that is new since the last snapshot.
        Returns True if an OutputFiltered event was emitted.
        """
        expected = self._generation if generation is None else generation

        async with self._lock:
            if not self._running or expected != self._generation:
                self._log.debug("stale_capture_skipped", generation=expected)
                return False
            try:
                current = await self._mux.capture_pane(self.session_id, self._scrollback)
            except MultiplexerError as exc:
                self._log.warning("capture_failed", error=str(exc))
                return False

            region = current if history else self._differ.diff(self._last_snapshot, current)
            self._last_snapshot = current

        if not region.strip():
            return False

        filtered = self._filter(region)
        emitted = False
        if filtered.content:
            self._emit(
                OutputFiltered(
                    self.session_id,
                    filtered.content,
                    context_percent=filtered.context_percent,
                    history=history,
                )
            )
            emitted = True
            self._log.debug(
                "capture_emitted",
                chars=len(filtered.content),
                history=history,
                context_percent=filtered.context_percent,
            )
        if filtered.context_percent is not None:
            self._emit(ContextUpdated(self.session_id, filtered.context_percent))
        return emitted

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def _liveness_loop(self, generation: int) -> None:
        while True:
            await asyncio.sleep(self._liveness_interval)
            if not self._running or generation != self._generation:
                return
            async with self._lock:
                try:
                    alive = await self._mux.has_session(self.session_id)
                except MultiplexerError as exc:
                    self._log.warning("liveness_check_failed", error=str(exc))
                    alive = False
            if alive:
                continue
            if generation != self._generation:
                return
            self._running = False
            self._generation += 1
            self._liveness_task = None
            self._log.warning("session_died")
            self._emit(StatusChanged(self.session_id, is_running=False, reason="session_died"))
            return
