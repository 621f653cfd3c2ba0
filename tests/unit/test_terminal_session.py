"""Unit tests for TerminalSession — lifecycle, delayed captures, liveness and failure handling."""

from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from panerelay.core.events import (
    CommandSent,
    ContextUpdated,
    OutputFiltered,
    RelayEvent,
    StatusChanged,
)
from panerelay.core.session.terminal import TerminalSession

NAME = "panerelay-test"


def _session(mux, **overrides) -> tuple[TerminalSession, list[RelayEvent]]:
    options = {"capture_delay_s": 0.01, "liveness_interval_s": 0.02, **overrides}
    session = TerminalSession(NAME, mux, **options)
    events: list[RelayEvent] = []
    session.register_listener(events.append)
    return session, events


def _of_type(events: list[RelayEvent], cls: type) -> list:
    return [e for e in events if isinstance(e, cls)]


async def _started(mux, wait_until, **overrides) -> tuple[TerminalSession, list[RelayEvent]]:
    """Start a session and wait for its startup history capture to land."""
    session, events = _session(mux, **overrides)
    assert await session.start("/work")
    assert await wait_until(lambda: session.last_snapshot != "")
    return session, events


# ---------------------------------------------------------------------------
# start / stop
# ---------------------------------------------------------------------------


class TestStart:
    @pytest.mark.asyncio
    async def test_start_creates_session(self, fake_mux) -> None:
        session, events = _session(fake_mux, command=["claude", "--continue"])
        assert await session.start("/work") is True
        assert session.is_running
        assert session.cwd == "/work"
        assert fake_mux.commands[NAME] == ["claude", "--continue"]
        assert fake_mux.cwds[NAME] == "/work"
        assert _of_type(events, StatusChanged) == [StatusChanged(NAME, True, "started")]
        await session.stop()

    @pytest.mark.asyncio
    async def test_start_when_running_returns_false(self, fake_mux) -> None:
        session, _ = _session(fake_mux)
        await session.start()
        assert await session.start() is False
        await session.stop()

    @pytest.mark.asyncio
    async def test_stale_session_killed_first(self, fake_mux) -> None:
        fake_mux.panes[NAME] = "leftover"
        session, _ = _session(fake_mux)
        assert await session.start() is True
        ops = [c[0] for c in fake_mux.calls if c[0] in ("kill", "create")]
        assert ops == ["kill", "create"]
        await session.stop()

    @pytest.mark.asyncio
    async def test_stale_kill_failure_logged_as_warning(self, fake_mux) -> None:
        fake_mux.panes[NAME] = "leftover"
        fake_mux.fail_ops.add("kill")
        with capture_logs() as logs:
            session, _ = _session(fake_mux)
            # the leftover session still holds the name, so create fails too
            assert await session.start() is False
        failures = [e for e in logs if e["event"] == "stale_session_kill_failed"]
        assert failures[0]["log_level"] == "warning"

    @pytest.mark.asyncio
    async def test_create_failure_returns_false(self, fake_mux) -> None:
        fake_mux.fail_ops.add("create")
        session, events = _session(fake_mux)
        assert await session.start() is False
        assert not session.is_running
        assert events == []

    @pytest.mark.asyncio
    async def test_history_capture_emitted(self, fake_mux, wait_until) -> None:
        session, events = _session(fake_mux)
        await session.start()
        fake_mux.panes[NAME] += "Earlier answer from the assistant\n"
        assert await wait_until(lambda: bool(_of_type(events, OutputFiltered)))
        emitted = _of_type(events, OutputFiltered)[0]
        assert emitted.history is True
        assert emitted.content == "Earlier answer from the assistant"
        await session.stop()

    @pytest.mark.asyncio
    async def test_generation_bumped_on_start_and_stop(self, fake_mux) -> None:
        session, _ = _session(fake_mux)
        await session.start()
        assert session.generation == 1
        await session.stop()
        assert session.generation == 2


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_kills_session(self, fake_mux) -> None:
        session, events = _session(fake_mux)
        await session.start()
        assert await session.stop() is True
        assert not session.is_running
        assert NAME not in fake_mux.panes
        assert events[-1] == StatusChanged(NAME, False, "stopped")

    @pytest.mark.asyncio
    async def test_stop_when_stopped_returns_false(self, fake_mux) -> None:
        session, _ = _session(fake_mux)
        assert await session.stop() is False

    @pytest.mark.asyncio
    async def test_kill_failure_returns_false_but_stops(self, fake_mux) -> None:
        session, _ = _session(fake_mux)
        await session.start()
        fake_mux.fail_ops.add("kill")
        assert await session.stop() is False
        assert not session.is_running


# ---------------------------------------------------------------------------
# send / interrupt
# ---------------------------------------------------------------------------


class TestSend:
    @pytest.mark.asyncio
    async def test_send_types_text_with_enter(self, fake_mux, wait_until) -> None:
        session, events = await _started(fake_mux, wait_until)
        assert await session.send("run the tests") is True
        assert ("keys", "run the tests", "literal", "enter") in fake_mux.calls
        assert _of_type(events, CommandSent)[0].content == "run the tests"
        await session.stop()

    @pytest.mark.asyncio
    async def test_send_emits_only_new_content(self, fake_mux, wait_until) -> None:
        fake_mux.responses["ls"] = "README.md\nsrc\npyproject.toml\n"
        session, events = await _started(fake_mux, wait_until)
        await session.send("ls")
        assert await wait_until(lambda: bool(_of_type(events, OutputFiltered)))
        content = _of_type(events, OutputFiltered)[0].content
        assert content == "README.md\n\nsrc\n\npyproject.toml"
        await session.stop()

    @pytest.mark.asyncio
    async def test_send_when_stopped_returns_false(self, fake_mux) -> None:
        session, _ = _session(fake_mux)
        assert await session.send("hello") is False
        assert fake_mux.calls == []

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self, fake_mux, wait_until) -> None:
        session, events = await _started(fake_mux, wait_until)
        fake_mux.fail_ops.add("send")
        assert await session.send("hello") is False
        assert _of_type(events, CommandSent) == []
        assert session.is_running
        fake_mux.fail_ops.clear()
        await session.stop()

    @pytest.mark.asyncio
    async def test_context_percent_reported(self, fake_mux, wait_until) -> None:
        fake_mux.responses["status"] = (
            "All good here\nContext left until auto-compact: 23%\ntrailing noise line\n"
        )
        session, events = await _started(fake_mux, wait_until)
        await session.send("status")
        assert await wait_until(lambda: bool(_of_type(events, ContextUpdated)))
        assert _of_type(events, ContextUpdated)[0].context_percent == 23
        output = _of_type(events, OutputFiltered)[0]
        assert output.content == "All good here"
        assert output.context_percent == 23
        await session.stop()


class TestInterrupt:
    @pytest.mark.asyncio
    async def test_interrupt_sends_ctrl_c(self, fake_mux) -> None:
        session, _ = _session(fake_mux)
        await session.start()
        assert await session.interrupt() is True
        assert ("keys", "C-c", "key", "") in fake_mux.calls
        assert session.is_running
        await session.stop()

    @pytest.mark.asyncio
    async def test_interrupt_when_stopped_returns_false(self, fake_mux) -> None:
        session, _ = _session(fake_mux)
        assert await session.interrupt() is False


# ---------------------------------------------------------------------------
# Captures
# ---------------------------------------------------------------------------


class TestCaptures:
    @pytest.mark.asyncio
    async def test_capture_scheduled_before_stop_emits_nothing(
        self, fake_mux, wait_until
    ) -> None:
        fake_mux.responses["ls"] = "README.md\n"
        session, events = await _started(fake_mux, wait_until, capture_delay_s=0.05)
        await session.send("ls")
        await session.stop()
        await asyncio.sleep(0.1)
        assert _of_type(events, OutputFiltered) == []

    @pytest.mark.asyncio
    async def test_capture_now_with_stale_generation(self, fake_mux, wait_until) -> None:
        session, _ = await _started(fake_mux, wait_until)
        assert await session.capture_now(generation=session.generation - 1) is False
        await session.stop()

    @pytest.mark.asyncio
    async def test_capture_now_diffs_against_snapshot(self, fake_mux, wait_until) -> None:
        session, events = await _started(fake_mux, wait_until)
        fake_mux.panes[NAME] += "fresh output line\n"
        assert await session.capture_now() is True
        assert _of_type(events, OutputFiltered)[-1].content == "fresh output line"
        # nothing new the second time
        assert await session.capture_now() is False
        await session.stop()

    @pytest.mark.asyncio
    async def test_capture_failure_is_swallowed(self, fake_mux, wait_until) -> None:
        session, _ = await _started(fake_mux, wait_until)
        fake_mux.fail_ops.add("capture")
        assert await session.capture_now() is False
        assert await session.get_raw_output() == ""
        fake_mux.fail_ops.clear()
        await session.stop()

    @pytest.mark.asyncio
    async def test_raw_output(self, fake_mux) -> None:
        session, _ = _session(fake_mux, scrollback_lines=250)
        assert await session.get_raw_output() == ""
        await session.start()
        assert "Welcome" in await session.get_raw_output()
        assert fake_mux.scrollbacks[-1] == 250
        await session.stop()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, fake_mux) -> None:
        session, events = _session(fake_mux)

        def broken(event: RelayEvent) -> None:
            raise RuntimeError("boom")

        session._listeners.insert(0, broken)
        assert await session.start() is True
        assert _of_type(events, StatusChanged)
        await session.stop()


# ---------------------------------------------------------------------------
# Liveness / status
# ---------------------------------------------------------------------------


class TestLiveness:
    @pytest.mark.asyncio
    async def test_dead_session_reported_once(self, fake_mux, wait_until) -> None:
        session, events = _session(fake_mux)
        await session.start()
        fake_mux.kill_externally(NAME)
        assert await wait_until(lambda: not session.is_running)
        await asyncio.sleep(0.08)
        died = [e for e in _of_type(events, StatusChanged) if not e.is_running]
        assert died == [StatusChanged(NAME, False, "session_died")]
        assert session._liveness_task is None

    @pytest.mark.asyncio
    async def test_check_error_counts_as_dead(self, fake_mux, wait_until) -> None:
        session, events = _session(fake_mux)
        await session.start()
        fake_mux.fail_ops.add("has")
        assert await wait_until(lambda: not session.is_running)
        assert events[-1] == StatusChanged(NAME, False, "session_died")

    @pytest.mark.asyncio
    async def test_live_session_keeps_running(self, fake_mux) -> None:
        session, events = _session(fake_mux)
        await session.start()
        await asyncio.sleep(0.1)
        assert session.is_running
        assert [e.is_running for e in _of_type(events, StatusChanged)] == [True]
        await session.stop()


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_tracks_running(self, fake_mux) -> None:
        session, _ = _session(fake_mux)
        assert session.get_status().to_dict() == {"isRunning": False, "pid": None}
        await session.start()
        assert session.get_status().to_dict() == {"isRunning": True, "pid": 1}
        await session.stop()
        assert not session.get_status().is_running
