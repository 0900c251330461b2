"""BlockingClient: a synchronous wrapper for scripts and the CLI.

It owns a private :class:`FrameLoop` and ticks it until each operation
resolves, so it must never be used from inside a cooperative host.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import TracebackType
from typing import Any

from toolwire.client import ToolServerClient
from toolwire.config.models import ToolwireConfig
from toolwire.errors import HandshakeError, ToolwireError
from toolwire.protocol.models import ToolDescriptor
from toolwire.pump import FrameLoop
from toolwire.session.state import SessionState


class BlockingClient:
    """Connect, list and call tools with ordinary blocking calls."""

    def __init__(
        self,
        config: ToolwireConfig,
        *,
        frame_interval: float = 0.01,
    ) -> None:
        self._loop = FrameLoop(frame_interval=frame_interval)
        self._client = ToolServerClient(config, self._loop)

    @property
    def client(self) -> ToolServerClient:
        return self._client

    @property
    def state(self) -> SessionState:
        return self._client.state

    def connect(self, timeout: float | None = None) -> list[ToolDescriptor]:
        """Block until the session is ``READY`` and return the catalog.

        Raises:
            SpawnError, HandshakeError, TransportClosedError: Whatever
                failed the session.
        """
        self._client.connect()
        settled = self._loop.run_until(
            lambda: self.state is SessionState.READY or self.state.is_terminal,
            timeout,
        )
        if not settled:
            self._client.disconnect()
            msg = f"Tool server did not become ready within {timeout}s"
            raise HandshakeError(msg, stage="connect")
        if self.state is not SessionState.READY:
            failure = self._client.failure
            if failure is None:
                failure = ToolwireError(f"Session ended in state {self.state}")
            raise failure
        return self._client.list_tools()

    def list_tools(self) -> list[ToolDescriptor]:
        return self._client.list_tools()

    def refresh_tools(self) -> list[ToolDescriptor]:
        outcome: dict[str, Any] = {}

        def _done(result: Any, error: ToolwireError | None) -> None:
            outcome["error"] = error

        self._client.refresh_tools(_done)
        self._loop.run_until(lambda: bool(outcome))
        if outcome["error"] is not None:
            raise outcome["error"]
        return self._client.list_tools()

    def call_tool(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> str:
        """Call *name* and return its text.

        Raises:
            ToolError: On timeout, remote error, empty result, or a closed
                transport.
        """
        future = self._client.call_tool(name, arguments, timeout)
        # Every pending call carries a deadline, so this terminates.
        self._loop.run_until(future.done)
        return future.result()

    def close(self) -> None:
        self._client.disconnect()

    def __enter__(self) -> BlockingClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
