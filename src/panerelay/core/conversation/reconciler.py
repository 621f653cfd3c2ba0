"""
EventReconciler — one canonical, deduplicated message list per instance.

Both feeds go through the same incremental merge:

  - a tool_use whose id is already known is a duplicate and is dropped
  - a tool_use is appended loading and starts a tool on the ToolTracker
  - a tool_result with a tool_use_id completes that tool on the tracker;
    if the call is already in the list the result is merged into it in
    place, otherwise the result is appended on its own (an orphan)
  - when the call for an orphan shows up later, the orphan's result is
    attached to it and the tracker completes the tool again

``reconcile_history`` is a fresh ground truth: tracker and list are reset
first. ``reconcile_delta`` applies deltas strictly in arrival order, so a
call and its result in one batch collapse into a single entry.

Storage keeps orphan entries even after their call arrives; hiding them is
the job of ``displayable_messages``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import structlog

from panerelay.core.conversation.messages import (
    CanonicalMessage,
    MessageKind,
    ToolResult,
    ToolUse,
)
from panerelay.core.conversation.parsers import Rejected, parse_delta, parse_history_record
from panerelay.core.events import now_ms
from panerelay.core.tracking.tools import ToolTracker

logger = structlog.get_logger()

MessagesListener = Callable[[list[CanonicalMessage]], None]


def _tracker_payload(result: ToolResult) -> dict[str, Any]:
    payload: dict[str, Any] = {"content": result.content, "error": result.error}
    payload.update(result.stats)
    return payload


class EventReconciler:
    """
    Normalizes history records and live deltas into CanonicalMessages.

    Usage::

        reconciler = EventReconciler()
        reconciler.reconcile_history(records)
        reconciler.reconcile_delta([{"tool_use": {"id": "t1", "name": "Read"}}])
        reconciler.reconcile_delta([{"tool_result": {"tool_use_id": "t1", "content": "ok"}}])
        reconciler.displayable_messages()
    """

    def __init__(
        self,
        tracker: ToolTracker | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.tracker = tracker if tracker is not None else ToolTracker()
        self._clock = clock
        self._messages: list[CanonicalMessage] = []
        self._calls: dict[str, CanonicalMessage] = {}
        self._orphans: dict[str, CanonicalMessage] = {}
        self._listeners: list[MessagesListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def register_listener(self, cb: MessagesListener) -> None:
        """*cb* receives a copy of the message list after every change."""
        self._listeners.append(cb)

    def _notify(self) -> None:
        snapshot = self.messages
        for cb in self._listeners:
            try:
                cb(snapshot)
            except Exception as exc:  # noqa: BLE001
                logger.warning("messages_listener_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def reconcile_history(self, records: Iterable[Any]) -> list[CanonicalMessage]:
        """Replace everything with the conversation described by *records*."""
        self._clear()
        dropped = 0
        for record in records:
            result = parse_history_record(record, self._clock)
            if isinstance(result, Rejected):
                dropped += 1
                logger.debug("history_record_dropped", reason=result.reason)
                continue
            self.apply(result.message)
        logger.info("history_reconciled", messages=len(self._messages), dropped=dropped)
        self._notify()
        return self.messages

    def reconcile_delta(self, deltas: Iterable[Any]) -> list[CanonicalMessage]:
        """Apply live *deltas* in order on top of the current list."""
        changed = False
        for delta in deltas:
            result = parse_delta(delta, self._clock)
            if isinstance(result, Rejected):
                logger.debug("delta_dropped", reason=result.reason)
                continue
            changed = self.apply(result.message) or changed
        if changed:
            self._notify()
        return self.messages

    def reset(self) -> None:
        self._clear()
        self._notify()

    def _clear(self) -> None:
        self.tracker.reset()
        self._messages = []
        self._calls = {}
        self._orphans = {}

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def apply(self, message: CanonicalMessage) -> bool:
        """Merge one normalized message. Returns False if it was a dropped duplicate."""
        if message.tool_use is not None:
            return self._apply_tool_use(message, message.tool_use)
        if message.tool_result is not None:
            self._apply_tool_result(message, message.tool_result)
            return True
        self._messages.append(message)
        return True

    def _apply_tool_use(self, message: CanonicalMessage, tool_use: ToolUse) -> bool:
        if tool_use.id in self._calls:
            logger.debug("tool_use_duplicate", tool_id=tool_use.id)
            return False

        self._messages.append(message)
        self._calls[tool_use.id] = message
        self.tracker.start_tool(tool_use.id, tool_use.name, tool_use.input)

        orphan = self._orphans.pop(tool_use.id, None)
        if orphan is not None and orphan.tool_result is not None:
            message.attach_result(orphan.tool_result)
            self.tracker.complete_tool(
                tool_use.id,
                has_error=orphan.tool_result.is_error,
                result=_tracker_payload(orphan.tool_result),
            )
            logger.debug("orphan_result_matched", tool_id=tool_use.id)
        return True

    def _apply_tool_result(self, message: CanonicalMessage, result: ToolResult) -> None:
        tool_id = result.tool_use_id

        if tool_id:
            self.tracker.complete_tool(
                tool_id, has_error=result.is_error, result=_tracker_payload(result)
            )

        call = self._calls.get(tool_id) if tool_id else None
        if call is not None:
            call.attach_result(result)
            return

        self._messages.append(message)
        if tool_id:
            self._orphans[tool_id] = message
            logger.debug("tool_result_orphaned", tool_id=tool_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[CanonicalMessage]:
        return list(self._messages)

    @property
    def orphan_ids(self) -> list[str]:
        """Tool ids whose result arrived without a known call."""
        return list(self._orphans)

    def displayable_messages(self, collapse_agent_tools: bool = False) -> list[CanonicalMessage]:
        """
        The list as a viewer should render it.

        Standalone results whose call is known are hidden, so each tool call
        renders once. With *collapse_agent_tools*, tool entries attributed to
        a completed agent are hidden as well; the agent entry summarizes them.
        """
        collapsed: set[str] = set()
        if collapse_agent_tools:
            for agent in self.tracker.completed_agents:
                collapsed.update(self.tracker.agent_tool_ids_for(agent.id))

        visible: list[CanonicalMessage] = []
        for message in self._messages:
            tool_id = message.tool_id
            if message.kind is MessageKind.TOOL_RESULT and tool_id in self._calls:
                continue
            if tool_id and tool_id in collapsed:
                continue
            visible.append(message)
        return visible

    def __len__(self) -> int:
        return len(self._messages)
