"""
Inbound shape parsers.

The history feed and the live delta feed describe the same conversation in
different shapes. Each shape is recognized by a small *matcher*: a function
that returns ``Matched(message)`` when it understands the input and
``Rejected(reason)`` otherwise. ``first_match`` chains matchers with ordered
fallback, so supporting a new shape means writing one matcher and adding it
to a chain.

History record::

    {"type": "assistant", "timestamp": "2025-01-01T12:00:00Z",
     "message": {"content": [{"type": "tool_use", "id": "t1", "name": "Read", "input": {}}]}}

Delta (any of)::

    {"tool_use": {"id": "t1", "name": "Read", "input": {...}}}
    {"tool_result": {"tool_use_id": "t1", "content": "..."}}
    {"role": "assistant", "content": "..."}
    {"human": "..."}
    {"type": "user", "message": {"content": "..."}}
    {"context": {"usage": {...}}}
    {"session_id": "abc", "cwd": "/src/web"}
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from panerelay.core.conversation.messages import (
    CanonicalMessage,
    ContextInfo,
    SessionInfo,
    ToolResult,
    ToolUse,
)
from panerelay.core.events import now_ms

logger = structlog.get_logger()

STAT_KEYS = ("totalToolUseCount", "totalTokens", "totalDurationMs")


# ---------------------------------------------------------------------------
# Match results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Matched:
    message: CanonicalMessage


@dataclass(frozen=True)
class Rejected:
    reason: str


ParseResult = Matched | Rejected
Matcher = Callable[[Mapping[str, Any], int], ParseResult]


def first_match(*matchers: Matcher) -> Matcher:
    """Compose *matchers*: the first ``Matched`` wins, else all reasons are reported."""

    def composed(data: Mapping[str, Any], timestamp: int) -> ParseResult:
        reasons: list[str] = []
        for matcher in matchers:
            result = matcher(data, timestamp)
            if isinstance(result, Matched):
                return result
            reasons.append(result.reason)
        return Rejected("; ".join(reasons))

    return composed


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def ensure_string(value: Any) -> str:
    """Return *value* as text; non-strings are JSON-encoded."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def parse_timestamp(value: Any, clock: Callable[[], int] = now_ms) -> int:
    """Epoch ms from a number (already ms) or an ISO-8601 string; else *clock()*."""
    if isinstance(value, bool) or value is None:
        return clock()
    if isinstance(value, int | float):
        return int(value)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("timestamp_unparseable", value=value)
            return clock()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return int(parsed.timestamp() * 1000)
    return clock()


def _blocks(content: Any) -> list[Mapping[str, Any]]:
    if not isinstance(content, list):
        return []
    return [b for b in content if isinstance(b, Mapping)]


def _find_block(content: Any, block_type: str) -> Mapping[str, Any] | None:
    for block in _blocks(content):
        if block.get("type") == block_type:
            return block
    return None


def extract_text(content: Any) -> str:
    """Text of a message body: the string itself, or every text block joined by newlines."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, Mapping) and block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str) and text:
                parts.append(text)
    return "\n".join(parts)


def _message_content(data: Mapping[str, Any]) -> Any:
    message = data.get("message")
    if isinstance(message, Mapping):
        return message.get("content")
    if isinstance(message, str):
        return message
    return None


def _tool_use_from(block: Mapping[str, Any]) -> ToolUse | None:
    tool_id = block.get("id")
    if not tool_id:
        return None
    tool_input = block.get("input")
    return ToolUse(
        id=str(tool_id),
        name=str(block.get("name") or ""),
        input=dict(tool_input) if isinstance(tool_input, Mapping) else {},
    )


def _tool_result_from(
    block: Mapping[str, Any], extra_stats: Mapping[str, Any] | None = None
) -> ToolResult:
    content = ensure_string(block.get("content"))
    error = block.get("error")
    if error is None and block.get("is_error"):
        error = content or "error"
    stats = {k: block[k] for k in STAT_KEYS if k in block}
    if extra_stats:
        stats.update({k: extra_stats[k] for k in STAT_KEYS if k in extra_stats})
    return ToolResult(
        tool_use_id=str(block.get("tool_use_id") or ""),
        content=content,
        error=ensure_string(error) if error is not None else None,
        stats=stats,
    )


def _use_stats(data: Mapping[str, Any]) -> Mapping[str, Any] | None:
    stats = data.get("toolUseResult")
    return stats if isinstance(stats, Mapping) else None


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------


def match_tool_use(data: Mapping[str, Any], timestamp: int) -> ParseResult:
    block = data.get("tool_use")
    if not isinstance(block, Mapping):
        block = _find_block(_message_content(data), "tool_use")
    if block is None:
        return Rejected("no tool_use")
    tool_use = _tool_use_from(block)
    if tool_use is None:
        return Rejected("tool_use without id")
    return Matched(CanonicalMessage.from_tool_use(tool_use, timestamp))


def match_tool_result(data: Mapping[str, Any], timestamp: int) -> ParseResult:
    block = data.get("tool_result")
    if not isinstance(block, Mapping):
        block = _find_block(_message_content(data), "tool_result")
    if block is None:
        return Rejected("no tool_result")
    result = _tool_result_from(block, _use_stats(data))
    return Matched(CanonicalMessage.from_tool_result(result, timestamp))


def _text_matcher(
    label: str, role: str, factory: Callable[[str, int], CanonicalMessage]
) -> Matcher:
    """Matcher for a text message under ``label``, ``role`` + content, or a typed record."""

    def matcher(data: Mapping[str, Any], timestamp: int) -> ParseResult:
        if label in data:
            text = ensure_string(data[label])
        elif data.get("role") == role and "content" in data:
            text = extract_text(data["content"])
        elif data.get("type") == role and "message" in data:
            text = extract_text(_message_content(data))
        else:
            return Rejected(f"not {label}-shaped")
        if not text.strip():
            return Rejected(f"empty {label} text")
        return Matched(factory(text, timestamp))

    return matcher


match_assistant = _text_matcher("assistant", "assistant", CanonicalMessage.assistant)
match_human = _text_matcher("human", "user", CanonicalMessage.human)
match_system = _text_matcher("system", "system", CanonicalMessage.system)


def match_context(data: Mapping[str, Any], timestamp: int) -> ParseResult:
    context = data.get("context")
    if not isinstance(context, Mapping):
        return Rejected("no context")
    usage = context.get("usage")
    info = ContextInfo(
        usage=dict(usage) if isinstance(usage, Mapping) else {},
        content=ensure_string(context.get("content")),
        type=str(context.get("type") or "context"),
    )
    return Matched(CanonicalMessage.from_context(info, timestamp))


def match_session(data: Mapping[str, Any], timestamp: int) -> ParseResult:
    session = data.get("session")
    if isinstance(session, Mapping) and session.get("id"):
        session_id, cwd, created = session["id"], session.get("cwd"), session.get("created")
    elif data.get("session_id") and "cwd" in data:
        session_id, cwd, created = data["session_id"], data.get("cwd"), None
    else:
        return Rejected("no session")
    info = SessionInfo(
        id=str(session_id),
        cwd=str(cwd or ""),
        created=parse_timestamp(created, lambda: timestamp),
    )
    return Matched(CanonicalMessage.from_session(info, timestamp))


_HISTORY_LABELS: dict[str, Callable[[str, int], CanonicalMessage]] = {
    "user": CanonicalMessage.human,
    "assistant": CanonicalMessage.assistant,
    "system": CanonicalMessage.system,
}


def match_history_text(data: Mapping[str, Any], timestamp: int) -> ParseResult:
    factory = _HISTORY_LABELS.get(str(data.get("type")))
    if factory is None:
        return Rejected(f"unknown record type {data.get('type')!r}")
    text = extract_text(_message_content(data))
    if not text.strip():
        return Rejected("no text content")
    return Matched(factory(text, timestamp))


def _embedded_only(matcher: Matcher) -> Matcher:
    """Restrict a block matcher to ``message.content``; records carry no top-level variants."""

    def restricted(data: Mapping[str, Any], timestamp: int) -> ParseResult:
        embedded = {k: v for k, v in data.items() if k in ("message", "toolUseResult")}
        return matcher(embedded, timestamp)

    return restricted


_history_chain = first_match(
    _embedded_only(match_tool_use),
    _embedded_only(match_tool_result),
    match_history_text,
)

_delta_chain = first_match(
    match_tool_use,
    match_tool_result,
    match_assistant,
    match_human,
    match_system,
    match_context,
    match_session,
)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def parse_history_record(record: Any, clock: Callable[[], int] = now_ms) -> ParseResult:
    """Normalize one bulk-history record."""
    if not isinstance(record, Mapping):
        return Rejected(f"record is {type(record).__name__}, not a mapping")
    if not isinstance(record.get("message"), Mapping | str):
        return Rejected("record has no message")
    return _history_chain(record, parse_timestamp(record.get("timestamp"), clock))


def parse_delta(delta: Any, clock: Callable[[], int] = now_ms) -> ParseResult:
    """Normalize one live delta."""
    if not isinstance(delta, Mapping):
        return Rejected(f"delta is {type(delta).__name__}, not a mapping")
    return _delta_chain(delta, parse_timestamp(delta.get("timestamp"), clock))
