"""Unit tests for panerelay.core.conversation — canonical messages and inbound shape matchers."""

from __future__ import annotations

import pytest

from panerelay.core.conversation.messages import (
    CanonicalMessage,
    MessageKind,
    ToolResult,
    ToolUse,
)
from panerelay.core.conversation.parsers import (
    Matched,
    Rejected,
    ensure_string,
    extract_text,
    first_match,
    parse_delta,
    parse_history_record,
    parse_timestamp,
)


def _clock() -> int:
    return 42


def _matched(result: Matched | Rejected) -> CanonicalMessage:
    assert isinstance(result, Matched), result
    return result.message


# ---------------------------------------------------------------------------
# CanonicalMessage
# ---------------------------------------------------------------------------


class TestCanonicalMessage:
    def test_text_message(self) -> None:
        msg = CanonicalMessage.human("hi", 1)
        assert msg.kind == MessageKind.HUMAN
        assert msg.to_dict() == {"human": "hi", "timestamp": 1}

    def test_tool_use_starts_loading(self) -> None:
        msg = CanonicalMessage.from_tool_use(ToolUse("t1", "Read", {"file_path": "a"}), 5)
        assert msg.is_loading
        assert msg.tool_id == "t1"
        assert msg.to_dict() == {
            "timestamp": 5,
            "tool_use": {"name": "Read", "input": {"file_path": "a"}, "id": "t1"},
            "isLoading": True,
        }

    def test_attach_result(self) -> None:
        msg = CanonicalMessage.from_tool_use(ToolUse("t1", "Read"), 5)
        msg.attach_result(ToolResult("t1", "file body"))
        assert not msg.is_loading
        assert msg.to_dict()["tool_result"] == {"content": "file body", "tool_use_id": "t1"}

    def test_attach_result_to_text_raises(self) -> None:
        with pytest.raises(ValueError):
            CanonicalMessage.assistant("hi", 1).attach_result(ToolResult("t1"))

    def test_no_payload_raises(self) -> None:
        with pytest.raises(ValueError):
            CanonicalMessage(MessageKind.HUMAN, 1)

    def test_two_payloads_raise(self) -> None:
        with pytest.raises(ValueError):
            CanonicalMessage(MessageKind.TOOL_USE, 1, text="x", tool_use=ToolUse("t1", "Read"))

    def test_mismatched_payload_raises(self) -> None:
        with pytest.raises(ValueError):
            CanonicalMessage(MessageKind.TOOL_RESULT, 1, tool_use=ToolUse("t1", "Read"))

    def test_error_result_rendered(self) -> None:
        msg = CanonicalMessage.from_tool_result(ToolResult("t1", "boom", error="boom"), 1)
        assert msg.to_dict()["tool_result"]["error"] == "boom"
        assert msg.tool_result is not None and msg.tool_result.is_error


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_ensure_string(self) -> None:
        assert ensure_string("x") == "x"
        assert ensure_string(None) == ""
        assert ensure_string([{"type": "text", "text": "a"}]) == '[{"type": "text", "text": "a"}]'

    def test_extract_text_joins_blocks(self) -> None:
        content = [
            {"type": "text", "text": "one"},
            {"type": "tool_use", "id": "t1"},
            {"type": "text", "text": "two"},
        ]
        assert extract_text(content) == "one\ntwo"
        assert extract_text("plain") == "plain"
        assert extract_text(None) == ""

    def test_parse_timestamp(self) -> None:
        assert parse_timestamp(1_700_000_000_123, _clock) == 1_700_000_000_123
        assert parse_timestamp("1970-01-01T00:00:01Z", _clock) == 1000
        assert parse_timestamp("1970-01-01T00:00:01.500+00:00", _clock) == 1500
        assert parse_timestamp(None, _clock) == 42
        assert parse_timestamp("not a date", _clock) == 42
        assert parse_timestamp(True, _clock) == 42

    def test_first_match_collects_reasons(self) -> None:
        def no(data, ts):
            return Rejected("no")

        def yes(data, ts):
            return Matched(CanonicalMessage.system("ok", ts))

        assert isinstance(first_match(no, yes)({}, 1), Matched)
        result = first_match(no, no)({}, 1)
        assert isinstance(result, Rejected)
        assert result.reason == "no; no"


# ---------------------------------------------------------------------------
# History records
# ---------------------------------------------------------------------------


class TestHistoryRecords:
    def test_user_string(self) -> None:
        msg = _matched(
            parse_history_record({"type": "user", "message": {"content": "fix it"}}, _clock)
        )
        assert msg.kind == MessageKind.HUMAN
        assert msg.text == "fix it"
        assert msg.timestamp == 42

    def test_assistant_text_blocks(self) -> None:
        record = {
            "type": "assistant",
            "timestamp": "1970-01-01T00:00:02Z",
            "message": {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]},
        }
        msg = _matched(parse_history_record(record, _clock))
        assert msg.kind == MessageKind.ASSISTANT
        assert msg.text == "a\nb"
        assert msg.timestamp == 2000

    def test_tool_use_block_preferred_over_text(self) -> None:
        record = {
            "type": "assistant",
            "message": {
                "content": [
                    {"type": "text", "text": "Let me look."},
                    {"type": "tool_use", "id": "t1", "name": "Read", "input": {"file_path": "a"}},
                ]
            },
        }
        msg = _matched(parse_history_record(record, _clock))
        assert msg.kind == MessageKind.TOOL_USE
        assert msg.tool_use is not None
        assert msg.tool_use.name == "Read"

    def test_tool_result_block(self) -> None:
        record = {
            "type": "user",
            "message": {
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": "t1",
                        "content": [{"type": "text", "text": "out"}],
                        "is_error": True,
                    }
                ]
            },
            "toolUseResult": {"totalTokens": 900, "unrelated": 1},
        }
        msg = _matched(parse_history_record(record, _clock))
        result = msg.tool_result
        assert result is not None
        assert result.tool_use_id == "t1"
        assert result.content == '[{"type": "text", "text": "out"}]'
        assert result.error == result.content
        assert result.stats == {"totalTokens": 900}

    def test_system_record(self) -> None:
        msg = _matched(
            parse_history_record({"type": "system", "message": {"content": "note"}}, _clock)
        )
        assert msg.kind == MessageKind.SYSTEM

    @pytest.mark.parametrize(
        "record",
        [
            {"type": "user", "message": {"content": ""}},
            {"type": "user", "message": {"content": [{"type": "image"}]}},
            {"type": "summary", "message": {"content": "x"}},
            {"type": "user"},
            "not a record",
        ],
    )
    def test_rejected(self, record) -> None:
        assert isinstance(parse_history_record(record, _clock), Rejected)

    def test_top_level_variant_ignored_for_history(self) -> None:
        record = {"type": "user", "tool_use": {"id": "t1"}, "message": {"content": "hello"}}
        msg = _matched(parse_history_record(record, _clock))
        assert msg.kind == MessageKind.HUMAN


# ---------------------------------------------------------------------------
# Deltas
# ---------------------------------------------------------------------------


class TestDeltas:
    def test_direct_tool_use(self) -> None:
        msg = _matched(parse_delta({"tool_use": {"id": "t1", "name": "Bash"}}, _clock))
        assert msg.kind == MessageKind.TOOL_USE
        assert msg.tool_use is not None and msg.tool_use.input == {}

    def test_embedded_tool_use(self) -> None:
        delta = {
            "type": "assistant",
            "message": {"content": [{"type": "tool_use", "id": "t2", "name": "Grep"}]},
        }
        assert _matched(parse_delta(delta, _clock)).tool_id == "t2"

    def test_tool_use_without_id_rejected(self) -> None:
        assert isinstance(parse_delta({"tool_use": {"name": "Bash"}}, _clock), Rejected)

    def test_direct_tool_result(self) -> None:
        delta = {"tool_result": {"tool_use_id": "t1", "content": "ok", "error": None}}
        msg = _matched(parse_delta(delta, _clock))
        assert msg.kind == MessageKind.TOOL_RESULT
        assert msg.tool_result is not None and msg.tool_result.error is None

    def test_assistant_shapes(self) -> None:
        for delta in (
            {"assistant": "hello"},
            {"role": "assistant", "content": "hello"},
            {"type": "assistant", "message": {"content": [{"type": "text", "text": "hello"}]}},
        ):
            msg = _matched(parse_delta(delta, _clock))
            assert msg.kind == MessageKind.ASSISTANT
            assert msg.text == "hello"

    def test_human_shapes(self) -> None:
        for delta in (
            {"human": "hi"},
            {"role": "user", "content": "hi"},
            {"type": "user", "message": {"content": "hi"}},
            {"type": "user", "message": "hi"},
        ):
            msg = _matched(parse_delta(delta, _clock))
            assert msg.kind == MessageKind.HUMAN
            assert msg.text == "hi"

    def test_system_shape(self) -> None:
        assert _matched(parse_delta({"role": "system", "content": "x"}, _clock)).kind == "system"

    def test_context_shape(self) -> None:
        msg = _matched(parse_delta({"context": {"usage": {"input_tokens": 10}}}, _clock))
        assert msg.context is not None
        assert msg.context.usage == {"input_tokens": 10}

    def test_session_shapes(self) -> None:
        msg = _matched(parse_delta({"session": {"id": "s1", "cwd": "/src", "created": 7}}, _clock))
        assert msg.session is not None
        assert (msg.session.id, msg.session.cwd, msg.session.created) == ("s1", "/src", 7)

        msg = _matched(parse_delta({"session_id": "s2", "cwd": "/w"}, _clock))
        assert msg.session is not None and msg.session.id == "s2"

    def test_tool_use_wins_over_text(self) -> None:
        delta = {"assistant": "ignored", "tool_use": {"id": "t1", "name": "Read"}}
        assert _matched(parse_delta(delta, _clock)).kind == MessageKind.TOOL_USE

    def test_numeric_timestamp(self) -> None:
        assert _matched(parse_delta({"human": "hi", "timestamp": 99}, _clock)).timestamp == 99

    @pytest.mark.parametrize(
        "delta",
        [{}, {"role": "tool", "content": "x"}, {"assistant": "   "}, {"foo": "bar"}, 17, None],
    )
    def test_unmatched_rejected(self, delta) -> None:
        assert isinstance(parse_delta(delta, _clock), Rejected)
