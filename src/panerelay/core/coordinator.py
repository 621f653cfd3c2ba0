"""
SessionCoordinator — composition root for one panerelay process.

Wires, per instance id:

  TerminalSession ──events──▶ sink
  EventReconciler ──MessagesChanged──▶ sink
        └── ToolTracker

The coordinator owns an explicit SessionRegistry. Every event it forwards
carries the multiplexer session name (``name_prefix + instance_id``) as its
``session_id``.

Usage::

    coordinator = SessionCoordinator(load_config(missing_ok=True), sink=broadcast)
    await coordinator.create_instance("web", "/src/web")
    await coordinator.send("web", "run the tests")
    coordinator.ingest_deltas("web", deltas)
    await coordinator.shutdown()
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from panerelay.core.capture.differ import OutputDiffer
from panerelay.core.config import PaneRelayConfig
from panerelay.core.conversation.messages import CanonicalMessage
from panerelay.core.conversation.reconciler import EventReconciler
from panerelay.core.events import EventListener, MessagesChanged, RelayEvent
from panerelay.core.session.models import Instance, SessionStatus
from panerelay.core.session.registry import SessionRegistry
from panerelay.core.session.terminal import TerminalSession
from panerelay.core.tracking.tools import ToolTracker
from panerelay.os.multiplexer.base import BaseMultiplexer
from panerelay.os.multiplexer.tmux import TmuxMultiplexer

logger = structlog.get_logger()


class SessionCoordinator:
    """Creates, drives and tears down assistant instances."""

    def __init__(
        self,
        config: PaneRelayConfig | None = None,
        multiplexer: BaseMultiplexer | None = None,
        sink: EventListener | None = None,
    ) -> None:
        self._config = config or PaneRelayConfig()
        self._mux = multiplexer or TmuxMultiplexer()
        self._sink = sink
        self.registry = SessionRegistry()

    @property
    def config(self) -> PaneRelayConfig:
        return self._config

    def session_name(self, instance_id: str) -> str:
        return f"{self._config.session.name_prefix}{instance_id}"

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _publish(self, event: RelayEvent) -> None:
        if self._sink is not None:
            self._sink(event)

    def _new_reconciler(self, instance_id: str) -> EventReconciler:
        tracker = ToolTracker(
            max_completed_tools=self._config.tracker.max_completed_tools,
            max_completed_agents=self._config.tracker.max_completed_agents,
        )
        reconciler = EventReconciler(tracker)
        session_name = self.session_name(instance_id)
        reconciler.register_listener(
            lambda messages: self._publish(
                MessagesChanged(session_name, tuple(m.snapshot() for m in messages))
            )
        )
        return reconciler

    def _new_terminal(self, instance_id: str) -> TerminalSession:
        cfg = self._config
        terminal = TerminalSession(
            self.session_name(instance_id),
            self._mux,
            command=cfg.session.command,
            capture_delay_s=cfg.session.capture_delay_s,
            liveness_interval_s=cfg.session.liveness_interval_s,
            scrollback_lines=cfg.session.scrollback_lines,
            differ=OutputDiffer(fail_soft=cfg.capture.fail_soft_diff),
        )
        terminal.register_listener(self._publish)
        return terminal

    def _ensure_instance(self, instance_id: str, cwd: str = "") -> Instance:
        instance = self.registry.get_or_none(instance_id)
        if instance is None:
            instance = Instance(
                instance_id=instance_id,
                reconciler=self._new_reconciler(instance_id),
                cwd=cwd,
            )
            self.registry.register(instance)
        return instance

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    async def create_instance(self, instance_id: str, cwd: str = "") -> bool:
        """Start the assistant for *instance_id* in *cwd*. False if already running."""
        instance = self._ensure_instance(instance_id, cwd)
        if instance.is_running:
            logger.info("instance_already_running", instance_id=instance_id)
            return False

        if instance.terminal is None:
            instance.terminal = self._new_terminal(instance_id)
        instance.cwd = cwd
        started = await instance.terminal.start(cwd)
        logger.info("instance_created", instance_id=instance_id, cwd=cwd, started=started)
        return started

    async def send(self, instance_id: str, text: str) -> bool:
        terminal = self._terminal(instance_id)
        return await terminal.send(text) if terminal is not None else False

    async def interrupt(self, instance_id: str) -> bool:
        terminal = self._terminal(instance_id)
        return await terminal.interrupt() if terminal is not None else False

    async def stop_instance(self, instance_id: str) -> bool:
        """Stop the instance's session. The conversation is kept for viewers."""
        terminal = self._terminal(instance_id)
        if terminal is None:
            return False
        return await terminal.stop()

    async def remove_instance(self, instance_id: str) -> bool:
        """Stop (if running) and forget *instance_id*. False if unknown."""
        if instance_id not in self.registry:
            return False
        await self.stop_instance(instance_id)
        self.registry.remove(instance_id)
        return True

    async def raw_output(self, instance_id: str) -> str:
        terminal = self._terminal(instance_id)
        return await terminal.get_raw_output() if terminal is not None else ""

    async def shutdown(self) -> None:
        """Stop every running instance."""
        running = self.registry.running()
        for instance in running:
            if instance.terminal is not None:
                await instance.terminal.stop()
        logger.info("coordinator_shutdown", stopped=len(running))

    def _terminal(self, instance_id: str) -> TerminalSession | None:
        instance = self.registry.get_or_none(instance_id)
        if instance is None:
            logger.debug("unknown_instance", instance_id=instance_id)
            return None
        return instance.terminal

    # ------------------------------------------------------------------
    # Conversation feeds
    # ------------------------------------------------------------------

    def ingest_history(self, instance_id: str, records: Iterable[Any]) -> list[CanonicalMessage]:
        """Replace the instance's conversation with *records* (instance created on demand)."""
        return self._ensure_instance(instance_id).reconciler.reconcile_history(records)

    def ingest_deltas(self, instance_id: str, deltas: Iterable[Any]) -> list[CanonicalMessage]:
        return self._ensure_instance(instance_id).reconciler.reconcile_delta(deltas)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, instance_id: str) -> SessionStatus:
        instance = self.registry.get_or_none(instance_id)
        return instance.status() if instance is not None else SessionStatus(is_running=False)

    def tool_summary(self, instance_id: str) -> dict[str, Any]:
        """Tracker snapshot for *instance_id*; raises SessionNotFoundError if unknown."""
        return self.registry.get(instance_id).reconciler.tracker.snapshot()

    def messages(self, instance_id: str, *, displayable: bool = True) -> list[CanonicalMessage]:
        reconciler = self.registry.get(instance_id).reconciler
        return reconciler.displayable_messages() if displayable else reconciler.messages

    def instances(self) -> list[str]:
        return self.registry.ids()
