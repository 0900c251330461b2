"""Shared fixtures: a scripted in-memory supervisor and a manual clock."""

from __future__ import annotations

import json
import queue
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from toolwire.config.models import ToolwireConfig
from toolwire.errors import SpawnError, TransportClosedError
from toolwire.process.reader import END_OF_STREAM
from toolwire.session.protocol import ProtocolSession
from toolwire.session.state import SessionState

FAKE_SERVER = Path(__file__).parent / "fake_server.py"

DEFAULT_TOOLS: list[dict[str, Any]] = [
    {
        "name": "move_object",
        "description": "Move a scene object",
        "inputSchema": {
            "type": "object",
            "properties": {"name": {"type": "string"}, "x": {"type": "number"}},
        },
    },
    {
        "name": "delete_object",
        "description": "Delete a scene object",
        "inputSchema": {"type": "object"},
    },
]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSupervisor:
    """Stands in for ProcessSupervisor without spawning anything.

    Lines the session writes are kept in ``written``; tests push decoded
    peer messages onto ``incoming`` with :meth:`push`.
    """

    def __init__(self, start_error: SpawnError | None = None) -> None:
        self.incoming: queue.Queue[Any] = queue.Queue()
        self.written: list[str] = []
        self.alive = False
        self.exit_code: int | None = None
        self.stderr = ""
        self.start_error = start_error
        self.fail_writes = False
        self.start_calls: list[tuple[str, list[str]]] = []
        self.stop_calls: list[float | None] = []
        self.stop_nowait_calls = 0

    # -- ProcessSupervisor surface ------------------------------------

    def start(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self.start_calls.append((command, list(args)))
        if self.start_error is not None:
            raise self.start_error
        self.alive = True

    def stop(self, grace: float | None = None) -> None:
        self.stop_calls.append(grace)
        if self.alive:
            self.alive = False
            if self.exit_code is None:
                self.exit_code = 0

    def stop_nowait(self) -> None:
        self.stop_nowait_calls += 1
        if self.alive:
            self.alive = False
            if self.exit_code is None:
                self.exit_code = 0

    def write_line(self, line: str) -> None:
        if self.fail_writes or not self.alive:
            msg = "Failed to write to tool server 'fake': Broken pipe"
            raise TransportClosedError(msg)
        self.written.append(line)

    def is_alive(self) -> bool:
        return self.alive

    def stderr_tail(self) -> str:
        return self.stderr

    @property
    def started(self) -> bool:
        return bool(self.start_calls)

    # -- Test helpers ---------------------------------------------------

    @property
    def sent(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.written]

    @property
    def last_sent(self) -> dict[str, Any]:
        return json.loads(self.written[-1])

    def push(self, message: Any) -> None:
        self.incoming.put(message)

    def respond(self, request_id: int, result: Any) -> None:
        self.push({"jsonrpc": "2.0", "id": request_id, "result": result})

    def respond_error(self, request_id: int, code: int, message: str) -> None:
        self.push(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {"code": code, "message": message},
            }
        )

    def crash(
        self, exit_code: int = 1, stderr: str = "", *, close_output: bool = True
    ) -> None:
        """Mark the peer dead; by default its reader also reports EOF."""
        self.alive = False
        self.exit_code = exit_code
        self.stderr = stderr
        if close_output:
            self.close_output()

    def close_output(self) -> None:
        self.push(END_OF_STREAM)


def make_config(**overrides: Any) -> ToolwireConfig:
    """A valid config for a server named 'unity'; *overrides* merge per section."""
    raw: dict[str, Any] = {
        "server": {"name": "unity", "command": "npx", "args": ["-y", "unity-mcp"]},
    }
    for section, values in overrides.items():
        if isinstance(values, dict):
            raw.setdefault(section, {}).update(values)
        else:
            raw[section] = values
    return ToolwireConfig.model_validate(raw)


def fake_server_config(mode: str = "normal", **overrides: Any) -> ToolwireConfig:
    """Config that launches tests/fake_server.py with the current interpreter."""
    base: dict[str, Any] = {
        "server": {
            "name": f"fake-{mode}",
            "command": sys.executable,
            "args": [str(FAKE_SERVER), mode],
        },
        "timeouts": {"startup_grace": 0.2, "handshake": 10, "stop_grace": 2},
    }
    for section, values in overrides.items():
        base.setdefault(section, {}).update(values)
    return ToolwireConfig.model_validate(base)


def complete_handshake(
    session: ProtocolSession,
    supervisor: FakeSupervisor,
    tools: list[dict[str, Any]] | None = None,
) -> None:
    """Drive a connected session through initialize + tools/list to READY."""
    init = supervisor.last_sent
    assert init["method"] == "initialize"
    supervisor.respond(
        init["id"],
        {
            "protocolVersion": "2024-11-05",
            "capabilities": {"tools": {}},
            "serverInfo": {"name": "unity-mcp", "version": "1.2.0"},
        },
    )
    session.poll()
    listing = supervisor.last_sent
    assert listing["method"] == "tools/list"
    supervisor.respond(
        listing["id"], {"tools": DEFAULT_TOOLS if tools is None else tools}
    )
    session.poll()
    assert session.state is SessionState.READY


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def session(supervisor: FakeSupervisor, clock: FakeClock) -> ProtocolSession:
    """A session wired to the fake supervisor, not yet connected."""
    return ProtocolSession(make_config(), supervisor=supervisor, clock=clock)  # type: ignore[arg-type]


@pytest.fixture
def ready_session(
    session: ProtocolSession,
    supervisor: FakeSupervisor,
) -> ProtocolSession:
    session.connect()
    complete_handshake(session, supervisor)
    return session
