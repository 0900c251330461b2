"""ToolServerClient: the object collaborators hold for one tool server.

Bundles a :class:`ProtocolSession`, the :class:`CooperativePump` that
ticks it, and a :class:`ToolInvoker`.  Whoever calls :meth:`connect` owns
the lifecycle and must call :meth:`disconnect`.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from concurrent.futures import Future
from pathlib import Path
from typing import Any

from toolwire.config.models import ToolwireConfig
from toolwire.errors import ToolwireError
from toolwire.invoker import CallCallback, ToolInvoker
from toolwire.process.supervisor import ProcessSupervisor
from toolwire.protocol.models import ServerInfo, ToolDescriptor
from toolwire.pump import CooperativePump, HostLoop
from toolwire.session.pending import Completion
from toolwire.session.protocol import ProtocolSession, StateListener
from toolwire.session.state import SessionState
from toolwire.transcript.recorder import WireRecorder


class ToolServerClient:
    """Connect / list / call / disconnect against one tool server."""

    def __init__(
        self,
        config: ToolwireConfig,
        host: HostLoop,
        *,
        supervisor: ProcessSupervisor | None = None,
        clock: Callable[[], float] = time.monotonic,
        recorder: WireRecorder | None = None,
    ) -> None:
        if recorder is None and config.transcript.enabled:
            recorder = WireRecorder(
                config.server.name,
                [config.server.command, *config.server.args],
                directory=Path(config.transcript.directory),
            )
        self.session = ProtocolSession(
            config,
            supervisor=supervisor,
            clock=clock,
            recorder=recorder,
        )
        self.pump = CooperativePump(self.session, host, clock=clock)
        self.invoker = ToolInvoker(self.session)
        self._recorder = recorder

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def failure(self) -> ToolwireError | None:
        return self.session.failure

    @property
    def server_info(self) -> ServerInfo | None:
        return self.session.server_info

    @property
    def transcript_path(self) -> Path | None:
        return self._recorder.path if self._recorder is not None else None

    def add_state_listener(self, listener: StateListener) -> None:
        self.session.add_state_listener(listener)

    # ------------------------------------------------------------------ #
    # Collaborator interface
    # ------------------------------------------------------------------ #

    def connect(self) -> None:
        """Start the server; watch :attr:`state` for ``READY``/``FAILED``."""
        self.pump.attach()
        self.session.connect()

    def list_tools(self) -> list[ToolDescriptor]:
        return self.invoker.list_tools()

    def call_tool(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        on_complete: CallCallback | None = None,
    ) -> Future[str]:
        return self.invoker.call_tool(name, arguments, timeout, on_complete)

    def refresh_tools(self, on_complete: Completion | None = None) -> None:
        self.session.refresh_tools(on_complete)

    def wait_until_settled(self, timeout: float) -> Future[bool]:
        """Resolves ``True`` once the session is ``READY`` or finished."""
        return self.pump.wait_for(
            lambda: self.state is SessionState.READY or self.state.is_terminal,
            timeout,
        )

    def disconnect(self) -> None:
        self.session.disconnect()
        self.pump.detach()
