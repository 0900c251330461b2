"""Tests for FrameLoop, CooperativePump and the ToolServerClient facade."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import FakeClock, FakeSupervisor, make_config

from toolwire.client import ToolServerClient
from toolwire.errors import SpawnError
from toolwire.pump import CooperativePump, FrameLoop, HostLoop
from toolwire.session.protocol import ProtocolSession
from toolwire.session.state import SessionState


def _loop(clock: FakeClock) -> FrameLoop:
    return FrameLoop(frame_interval=0.25, clock=clock, sleep=clock.advance)


class TestFrameLoop:
    def test_is_a_host_loop(self, clock: FakeClock) -> None:
        assert isinstance(_loop(clock), HostLoop)

    def test_tick_runs_callbacks_once(self, clock: FakeClock) -> None:
        loop = _loop(clock)
        hits: list[str] = []
        loop.add_tick_callback(lambda: hits.append("a"))
        loop.tick()
        loop.tick()
        assert hits == ["a", "a"]
        assert loop.frame_count == 2

    def test_raising_callback_does_not_stop_frame(self, clock: FakeClock) -> None:
        loop = _loop(clock)
        hits: list[str] = []

        def _boom() -> None:
            raise RuntimeError("bad callback")

        loop.add_tick_callback(_boom)
        loop.add_tick_callback(lambda: hits.append("after"))
        loop.tick()
        assert hits == ["after"]

    def test_run_until_times_out(self, clock: FakeClock) -> None:
        loop = _loop(clock)
        assert loop.run_until(lambda: False, timeout=1.0) is False
        assert clock.now == pytest.approx(101.0)

    def test_run_until_predicate(self, clock: FakeClock) -> None:
        loop = _loop(clock)
        assert loop.run_until(lambda: loop.frame_count >= 3, timeout=10) is True
        assert loop.frame_count == 3


class TestCooperativePump:
    def test_attach_and_detach(self, session: ProtocolSession, clock: FakeClock) -> None:
        loop = _loop(clock)
        pump = CooperativePump(session, loop, clock=clock)
        pump.attach()
        pump.attach()
        assert loop.callback_count == 1
        pump.detach()
        assert loop.callback_count == 0
        assert not pump.attached

    def test_attach_registers_tick_with_host(self, session: ProtocolSession) -> None:
        host = MagicMock(spec=FrameLoop)
        pump = CooperativePump(session, host)
        pump.attach()
        host.add_tick_callback.assert_called_once_with(pump.tick)
        pump.detach()
        host.remove_tick_callback.assert_called_once_with(pump.tick)

    def test_attach_without_host(self, session: ProtocolSession) -> None:
        with pytest.raises(ValueError, match="no host loop"):
            CooperativePump(session).attach()

    def test_tick_polls_session(
        self,
        ready_session: ProtocolSession,
        supervisor: FakeSupervisor,
        clock: FakeClock,
    ) -> None:
        loop = _loop(clock)
        CooperativePump(ready_session, loop, clock=clock).attach()
        results: list[object] = []
        rid = ready_session.send_request(
            "tools/call", {}, timeout=5, on_complete=lambda r, e: results.append(r)
        )
        supervisor.respond(rid, "done")
        loop.tick()
        assert results == ["done"]

    def test_poll_exception_fails_session(
        self,
        ready_session: ProtocolSession,
        supervisor: FakeSupervisor,
        clock: FakeClock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def _broken() -> bool:
            raise RuntimeError("liveness check exploded")

        monkeypatch.setattr(supervisor, "is_alive", _broken)
        pump = CooperativePump(ready_session, _loop(clock), clock=clock)
        pump.tick()
        assert ready_session.state is SessionState.FAILED
        assert "liveness check exploded" in str(ready_session.failure)

    def test_detaches_when_session_ends(
        self, ready_session: ProtocolSession, supervisor: FakeSupervisor, clock: FakeClock
    ) -> None:
        loop = _loop(clock)
        pump = CooperativePump(ready_session, loop, clock=clock)
        pump.attach()
        supervisor.crash()
        loop.tick()
        assert ready_session.state is SessionState.FAILED
        assert not pump.attached
        assert loop.callback_count == 0

    def test_wait_for_resolves_true(
        self, session: ProtocolSession, supervisor: FakeSupervisor, clock: FakeClock
    ) -> None:
        pump = CooperativePump(session, _loop(clock), clock=clock)
        session.connect()
        waiter = pump.wait_for(lambda: session.state is SessionState.READY, timeout=5)
        pump.tick()
        assert not waiter.done()

        supervisor.respond(1, {"protocolVersion": "2024-11-05"})
        pump.tick()
        supervisor.respond(supervisor.last_sent["id"], {"tools": []})
        pump.tick()
        assert waiter.result() is True

    def test_wait_for_resolves_false_on_timeout(
        self, ready_session: ProtocolSession, clock: FakeClock
    ) -> None:
        pump = CooperativePump(ready_session, _loop(clock), clock=clock)
        waiter = pump.wait_for(lambda: False, timeout=2)
        clock.advance(1)
        pump.tick()
        assert not waiter.done()
        clock.advance(1)
        pump.tick()
        assert waiter.result() is False

    def test_wait_for_already_true(self, session: ProtocolSession, clock: FakeClock) -> None:
        pump = CooperativePump(session, clock=clock)
        assert pump.wait_for(lambda: True, timeout=1).result() is True


class TestToolServerClient:
    def test_connect_settles_ready(self, supervisor: FakeSupervisor, clock: FakeClock) -> None:
        loop = _loop(clock)
        client = ToolServerClient(make_config(), loop, supervisor=supervisor, clock=clock)  # type: ignore[arg-type]
        states: list[SessionState] = []
        client.add_state_listener(lambda old, new: states.append(new))
        client.connect()
        assert client.pump.attached
        settled = client.wait_until_settled(timeout=5)

        supervisor.respond(1, {"protocolVersion": "2024-11-05"})
        loop.tick()
        supervisor.respond(supervisor.last_sent["id"], {"tools": [{"name": "move_object"}]})
        loop.tick()

        assert settled.result() is True
        assert client.state is SessionState.READY
        assert [t.name for t in client.list_tools()] == ["move_object"]
        assert states[-1] is SessionState.READY

        client.disconnect()
        assert client.state is SessionState.STOPPED
        assert loop.callback_count == 0
        assert client.transcript_path is None

    def test_spawn_failure_settles_failed(self, clock: FakeClock) -> None:
        supervisor = FakeSupervisor(start_error=SpawnError("Tool server command not found: npx"))
        loop = _loop(clock)
        client = ToolServerClient(make_config(), loop, supervisor=supervisor, clock=clock)  # type: ignore[arg-type]
        client.connect()
        settled = client.wait_until_settled(timeout=5)
        assert settled.result() is True
        assert client.state is SessionState.FAILED
        assert isinstance(client.failure, SpawnError)

    def test_transcript_enabled_creates_file(
        self, tmp_path: Path, supervisor: FakeSupervisor, clock: FakeClock
    ) -> None:
        config = make_config(transcript={"enabled": True, "directory": str(tmp_path)})
        client = ToolServerClient(config, _loop(clock), supervisor=supervisor, clock=clock)  # type: ignore[arg-type]
        assert client.transcript_path is not None
        assert client.transcript_path.parent == tmp_path
        client.disconnect()
        assert client.transcript_path.read_text(encoding="utf-8").count("\n") >= 2
