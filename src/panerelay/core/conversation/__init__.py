"""Conversation model and the reconciler that builds it from inbound feeds."""

from panerelay.core.conversation.messages import (
    CanonicalMessage,
    ContextInfo,
    MessageKind,
    SessionInfo,
    ToolResult,
    ToolUse,
)
from panerelay.core.conversation.parsers import (
    Matched,
    Rejected,
    first_match,
    parse_delta,
    parse_history_record,
)
from panerelay.core.conversation.reconciler import EventReconciler

__all__ = [
    "CanonicalMessage",
    "ContextInfo",
    "EventReconciler",
    "Matched",
    "MessageKind",
    "Rejected",
    "SessionInfo",
    "ToolResult",
    "ToolUse",
    "first_match",
    "parse_delta",
    "parse_history_record",
]
