"""
Canonical conversation model.

Every inbound shape (history record or live delta) is normalized into a
CanonicalMessage: a tagged union with exactly one populated payload.

  kind         payload
  ----------   -----------------------------------------
  human        text
  assistant    text
  system       text
  tool_use     tool_use: ToolUse   (result merged in later)
  tool_result  tool_result: ToolResult  (standalone / orphan)
  context      context: ContextInfo
  session      session: SessionInfo

A tool result that finds its call is stored on ``ToolUse.result``; the
message stays a ``tool_use`` message, so the one-payload rule holds after
merging too.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class MessageKind(StrEnum):
    HUMAN = "human"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    CONTEXT = "context"
    SESSION = "session"


TEXT_KINDS = frozenset({MessageKind.HUMAN, MessageKind.ASSISTANT, MessageKind.SYSTEM})


@dataclass
class ToolResult:
    tool_use_id: str
    content: str = ""
    error: str | None = None
    # totalToolUseCount / totalTokens / totalDurationMs when the feed reports them
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return bool(self.error)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"content": self.content, "tool_use_id": self.tool_use_id}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ToolUse:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    result: ToolResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "input": self.input, "id": self.id}


@dataclass
class ContextInfo:
    usage: dict[str, Any] = field(default_factory=dict)
    content: str = ""
    type: str = "context"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "content": self.content, "usage": self.usage}


@dataclass
class SessionInfo:
    id: str
    cwd: str = ""
    created: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "cwd": self.cwd, "created": self.created}


_PAYLOAD_FOR_KIND = {
    MessageKind.TOOL_USE: "tool_use",
    MessageKind.TOOL_RESULT: "tool_result",
    MessageKind.CONTEXT: "context",
    MessageKind.SESSION: "session",
}


@dataclass
class CanonicalMessage:
    """One normalized conversation entry. Build it with the classmethods."""

    kind: MessageKind
    timestamp: int
    text: str | None = None
    tool_use: ToolUse | None = None
    tool_result: ToolResult | None = None
    context: ContextInfo | None = None
    session: SessionInfo | None = None
    is_loading: bool = False

    def __post_init__(self) -> None:
        populated = [
            name
            for name in ("text", "tool_use", "tool_result", "context", "session")
            if getattr(self, name) is not None
        ]
        expected = "text" if self.kind in TEXT_KINDS else _PAYLOAD_FOR_KIND[self.kind]
        if populated != [expected]:
            raise ValueError(
                f"{self.kind} message must carry exactly one {expected!r} payload, got {populated}"
            )

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def human(cls, text: str, timestamp: int) -> CanonicalMessage:
        return cls(MessageKind.HUMAN, timestamp, text=text)

    @classmethod
    def assistant(cls, text: str, timestamp: int) -> CanonicalMessage:
        return cls(MessageKind.ASSISTANT, timestamp, text=text)

    @classmethod
    def system(cls, text: str, timestamp: int) -> CanonicalMessage:
        return cls(MessageKind.SYSTEM, timestamp, text=text)

    @classmethod
    def from_tool_use(cls, tool_use: ToolUse, timestamp: int) -> CanonicalMessage:
        return cls(MessageKind.TOOL_USE, timestamp, tool_use=tool_use, is_loading=True)

    @classmethod
    def from_tool_result(cls, tool_result: ToolResult, timestamp: int) -> CanonicalMessage:
        return cls(MessageKind.TOOL_RESULT, timestamp, tool_result=tool_result)

    @classmethod
    def from_context(cls, context: ContextInfo, timestamp: int) -> CanonicalMessage:
        return cls(MessageKind.CONTEXT, timestamp, context=context)

    @classmethod
    def from_session(cls, session: SessionInfo, timestamp: int) -> CanonicalMessage:
        return cls(MessageKind.SESSION, timestamp, session=session)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def tool_id(self) -> str | None:
        """The tool call id this message is about, for tool messages."""
        if self.tool_use is not None:
            return self.tool_use.id
        if self.tool_result is not None:
            return self.tool_result.tool_use_id
        return None

    def attach_result(self, result: ToolResult) -> None:
        """Merge a matching tool result into this tool_use message."""
        if self.tool_use is None:
            raise ValueError(f"Cannot attach a tool result to a {self.kind} message")
        self.tool_use.result = result
        self.is_loading = False

    def snapshot(self) -> CanonicalMessage:
        """Detached copy; later merges into this message do not show through it."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Wire rendering: the payload under its kind name, plus timestamp."""
        data: dict[str, Any] = {"timestamp": self.timestamp}
        if self.kind in TEXT_KINDS:
            data[str(self.kind)] = self.text
        elif self.tool_use is not None:
            data["tool_use"] = self.tool_use.to_dict()
            if self.tool_use.result is not None:
                data["tool_result"] = self.tool_use.result.to_dict()
            data["isLoading"] = self.is_loading
        elif self.tool_result is not None:
            data["tool_result"] = self.tool_result.to_dict()
        elif self.context is not None:
            data["context"] = self.context.to_dict()
        elif self.session is not None:
            data["session"] = self.session.to_dict()
        return data
