"""
ToolTracker — in-memory ledger of tool and agent executions.

Built purely from a start/complete pair per tool id:

  start_tool(id, name, input, parent_id)
      running list += execution; total_tools_used += 1.
      A ``Task`` call carrying ``subagent_type`` is an *agent*: it joins the
      active agents with a zero tool count.
      Any other call made while agents are active is attributed to EVERY
      active agent (count + id list). The feed does not say which agent
      really issued a call, and the aggregate counts shown to viewers are
      built on this multi-attribution, so it is kept as is.
      An explicit parent_id additionally indexes the execution under that
      parent (independent of agent attribution).

  complete_tool(id, has_error, result)
      running → completed (most recent first, capped). Agents also move to
      completed agents (capped) and pick up their final stats: explicit
      numeric fields on the result first, then "<N> tool uses" /
      "<N>[k|m] tokens" parsed from the result content.
      Completing an unknown id builds a placeholder; it is not an error.

Single writer: call from the event-ingestion path only.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog

from panerelay.core.constants import (
    AGENT_DESCRIPTION_PROMPT_CHARS,
    MAX_COMPLETED_AGENTS,
    MAX_COMPLETED_TOOLS,
)
from panerelay.core.events import now_ms

logger = structlog.get_logger()

AGENT_TOOL_NAME = "Task"
UNKNOWN_TOOL_NAME = "Unknown"

_TOOL_USES_RE = re.compile(r"(\d+)\s+(?:more\s+)?tool\s+uses?", re.IGNORECASE)
_TOKENS_RE = re.compile(r"([\d.]+)([km])?\s+tokens?", re.IGNORECASE)
_TOKEN_UNITS = {"k": 1_000, "m": 1_000_000}


class ToolStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ToolExecution:
    """One tool (or agent) invocation."""

    id: str
    name: str
    timestamp: int  # epoch ms at start
    status: ToolStatus = ToolStatus.RUNNING
    duration: int | None = None  # ms, set on completion
    is_agent: bool = False
    agent_type: str | None = None
    description: str | None = None
    tool_count: int | None = None
    token_count: int | None = None
    parent_agent: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "timestamp": self.timestamp,
            "status": str(self.status),
            "duration": self.duration,
            "isAgent": self.is_agent,
            "agentType": self.agent_type,
            "description": self.description,
            "toolCount": self.tool_count,
            "tokenCount": self.token_count,
            "parentAgent": self.parent_agent,
        }


def _field(result: Any, name: str) -> Any:
    """Read *name* from a mapping or an attribute-style result object."""
    if result is None:
        return None
    if isinstance(result, Mapping):
        return result.get(name)
    return getattr(result, name, None)


def _as_number(value: Any) -> int | None:
    # bool is an int subclass; a flag is not a stat
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return int(value)


def parse_tool_use_count(content: str) -> int | None:
    """Extract N from text like "117 tool uses" / "3 more tool uses"."""
    match = _TOOL_USES_RE.search(content)
    return int(match.group(1)) if match else None


def parse_token_count(content: str) -> int | None:
    """Extract a token count from text like "100.9k tokens" (k/m expanded)."""
    match = _TOKENS_RE.search(content)
    if match is None:
        return None
    try:
        tokens = float(match.group(1))
    except ValueError:
        return None
    unit = (match.group(2) or "").lower()
    return round(tokens * _TOKEN_UNITS.get(unit, 1))


def detect_agent(
    name: str, tool_input: Mapping[str, Any] | None
) -> tuple[str, str | None] | None:
    """Return (agent_type, description) when the call launches a sub-agent, else None."""
    if name != AGENT_TOOL_NAME or not tool_input:
        return None
    agent_type = tool_input.get("subagent_type")
    if not agent_type:
        return None
    description = tool_input.get("description")
    if not description:
        prompt = tool_input.get("prompt")
        description = f"{str(prompt)[:AGENT_DESCRIPTION_PROMPT_CHARS]}..." if prompt else None
    return str(agent_type), description


class ToolTracker:
    """
    Ledger of running/completed tools and agents.

    Usage::

        tracker = ToolTracker()
        tracker.start_tool("toolu_1", "Task", {"subagent_type": "general-purpose"})
        tracker.start_tool("toolu_2", "Read", {"file_path": "app.py"})
        tracker.complete_tool("toolu_2")
        tracker.complete_tool("toolu_1", result={"totalTokens": 5000})
    """

    def __init__(
        self,
        *,
        max_completed_tools: int = MAX_COMPLETED_TOOLS,
        max_completed_agents: int = MAX_COMPLETED_AGENTS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._max_completed_tools = max_completed_tools
        self._max_completed_agents = max_completed_agents
        self._clock = clock
        self.reset()

    def reset(self) -> None:
        """Clear all state (used when a fresh history replaces the session)."""
        self._running: list[ToolExecution] = []
        self._completed: list[ToolExecution] = []
        self._total_tools_used = 0
        self._nested_by_parent: dict[str, list[ToolExecution]] = {}
        self._active_agents: list[ToolExecution] = []
        self._completed_agents: list[ToolExecution] = []
        self._agent_tool_counts: dict[str, int] = {}
        self._agent_tool_ids: dict[str, list[str]] = {}
        self._placeholders: set[str] = set()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def start_tool(
        self,
        tool_id: str,
        name: str,
        tool_input: Mapping[str, Any] | None = None,
        parent_id: str | None = None,
    ) -> ToolExecution:
        """Record the start of *tool_id*. A repeated id is ignored."""
        if tool_id in self._placeholders:
            # Result arrived before the call: replace the placeholder with the real start
            self._placeholders.discard(tool_id)
            self._completed = [t for t in self._completed if t.id != tool_id]

        existing = self._find(tool_id)
        if existing is not None:
            logger.debug("tool_start_duplicate", tool_id=tool_id, name=name)
            return existing

        agent = detect_agent(name, tool_input)
        execution = ToolExecution(id=tool_id, name=name, timestamp=self._clock())
        if agent is not None:
            execution.is_agent = True
            execution.agent_type, execution.description = agent
            execution.tool_count = 0

        self._running.append(execution)
        self._total_tools_used += 1

        if execution.is_agent:
            self._active_agents.append(execution)
            self._agent_tool_counts[tool_id] = 0
            self._agent_tool_ids[tool_id] = []
            logger.debug("agent_started", tool_id=tool_id, agent_type=execution.agent_type)
        elif self._active_agents:
            for active in self._active_agents:
                self._agent_tool_counts[active.id] = self._agent_tool_counts.get(active.id, 0) + 1
                self._agent_tool_ids.setdefault(active.id, []).append(tool_id)
                active.tool_count = (active.tool_count or 0) + 1
            execution.parent_agent = self._active_agents[-1].id

        if parent_id:
            self._nested_by_parent.setdefault(parent_id, []).append(execution)

        return execution

    def complete_tool(
        self,
        tool_id: str,
        has_error: bool = False,
        result: Any = None,
    ) -> ToolExecution:
        """Record the completion of *tool_id* (unknown ids get a placeholder)."""
        status = ToolStatus.ERROR if has_error else ToolStatus.COMPLETED
        now = self._clock()

        execution = self._pop_running(tool_id)
        if execution is None:
            execution = next((t for t in self._completed if t.id == tool_id), None)
        if execution is None:
            logger.debug("tool_complete_unknown", tool_id=tool_id)
            execution = ToolExecution(id=tool_id, name=UNKNOWN_TOOL_NAME, timestamp=now)
            self._placeholders.add(tool_id)

        execution.status = status
        execution.duration = max(0, now - execution.timestamp)

        if execution.is_agent:
            self._apply_agent_stats(execution, result)
            self._active_agents = [a for a in self._active_agents if a.id != tool_id]
            self._completed_agents = [a for a in self._completed_agents if a.id != tool_id]
            self._completed_agents.insert(0, execution)
            del self._completed_agents[self._max_completed_agents :]
            logger.debug(
                "agent_completed",
                tool_id=tool_id,
                tool_count=execution.tool_count,
                token_count=execution.token_count,
            )

        self._completed = [t for t in self._completed if t.id != tool_id]
        self._completed.insert(0, execution)
        del self._completed[self._max_completed_tools :]
        return execution

    @staticmethod
    def _apply_agent_stats(execution: ToolExecution, result: Any) -> None:
        if result is None:
            return

        tool_count = _as_number(_field(result, "totalToolUseCount"))
        token_count = _as_number(_field(result, "totalTokens"))
        duration = _as_number(_field(result, "totalDurationMs"))

        content = _field(result, "content")
        if content is not None and (tool_count is None or token_count is None):
            text = content if isinstance(content, str) else json.dumps(content, default=str)
            if tool_count is None:
                tool_count = parse_tool_use_count(text)
            if token_count is None:
                token_count = parse_token_count(text)

        if tool_count is not None:
            execution.tool_count = tool_count
        if token_count is not None:
            execution.token_count = token_count
        if duration is not None:
            execution.duration = duration

    def _find(self, tool_id: str) -> ToolExecution | None:
        for t in self._running:
            if t.id == tool_id:
                return t
        for t in self._completed:
            if t.id == tool_id:
                return t
        return None

    def _pop_running(self, tool_id: str) -> ToolExecution | None:
        for i, t in enumerate(self._running):
            if t.id == tool_id:
                return self._running.pop(i)
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def running_count(self) -> int:
        return len(self._running)

    def last_completed(self, n: int = 3) -> list[ToolExecution]:
        return self._completed[:n]

    def nested_tools(self, parent_id: str) -> list[ToolExecution]:
        return list(self._nested_by_parent.get(parent_id, []))

    def agent_tool_ids_for(self, agent_id: str) -> list[str]:
        return list(self._agent_tool_ids.get(agent_id, []))

    @property
    def total_tools_used(self) -> int:
        return self._total_tools_used

    @property
    def running_tools(self) -> list[ToolExecution]:
        return list(self._running)

    @property
    def completed_tools(self) -> list[ToolExecution]:
        return list(self._completed)

    @property
    def active_agents(self) -> list[ToolExecution]:
        return list(self._active_agents)

    @property
    def completed_agents(self) -> list[ToolExecution]:
        return list(self._completed_agents)

    @property
    def agent_tool_counts(self) -> dict[str, int]:
        return dict(self._agent_tool_counts)

    @property
    def agent_tool_ids(self) -> dict[str, list[str]]:
        return {k: list(v) for k, v in self._agent_tool_ids.items()}

    @property
    def nested_tools_by_parent(self) -> dict[str, list[ToolExecution]]:
        return {k: list(v) for k, v in self._nested_by_parent.items()}

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready summary for viewers."""
        return {
            "totalToolsUsed": self._total_tools_used,
            "runningCount": len(self._running),
            "runningTools": [t.to_dict() for t in self._running],
            "completedTools": [t.to_dict() for t in self._completed],
            "activeAgents": [a.to_dict() for a in self._active_agents],
            "completedAgents": [a.to_dict() for a in self._completed_agents],
            "agentToolCounts": dict(self._agent_tool_counts),
        }
