"""ProtocolSession — handshake, catalog and request correlation for one peer.

Everything here runs on the host thread.  The only state shared with the
reader thread is the supervisor's queue; :meth:`ProtocolSession.poll`
drains it without blocking, resolves matching pending requests, sweeps
expired deadlines and checks that the peer is still alive.
"""

from __future__ import annotations

import logging
import queue
import time
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from toolwire.config.models import ToolwireConfig
from toolwire.constants import EXIT_SETTLE_GRACE, INTERNAL_ERROR, METHOD_NOT_FOUND
from toolwire.errors import (
    DecodeError,
    EncodeError,
    HandshakeError,
    InvalidTransition,
    RemoteError,
    SpawnError,
    ToolError,
    ToolErrorKind,
    ToolwireError,
    TransportClosedError,
)
from toolwire.process.helpers import format_stderr_preview
from toolwire.process.reader import END_OF_STREAM
from toolwire.process.supervisor import ProcessSupervisor
from toolwire.protocol import codec
from toolwire.protocol.models import (
    RpcErrorObject,
    ServerInfo,
    ToolCatalog,
    ToolDescriptor,
)
from toolwire.session.pending import Completion, PendingRequest, PendingTable
from toolwire.session.state import SessionState, check_transition
from toolwire.transcript.recorder import WireRecorder

logger = logging.getLogger(__name__)

#: ``listener(old, new)``: called after every state change.
StateListener = Callable[[SessionState, SessionState], None]


class ProtocolSession:
    """One connection to one tool server, from spawn to shutdown.

    Sessions are single-use: after ``FAILED`` or ``STOPPED`` a new
    session is needed.  Spawn, handshake and transport failures are never
    raised from :meth:`connect` or :meth:`poll`; they move the session to
    ``FAILED`` and are kept in :attr:`failure`.
    """

    def __init__(
        self,
        config: ToolwireConfig,
        *,
        supervisor: ProcessSupervisor | None = None,
        clock: Callable[[], float] = time.monotonic,
        recorder: WireRecorder | None = None,
    ) -> None:
        self._config = config
        self.name = config.server.name
        if supervisor is None:
            supervisor = ProcessSupervisor(
                name=config.server.name,
                startup_grace=config.timeouts.startup_grace,
                stop_grace=config.timeouts.stop_grace,
                queue_size=config.limits.queue_size,
                max_line_bytes=config.limits.max_line_bytes,
            )
        self._supervisor = supervisor
        self._clock = clock
        self._recorder = recorder

        self._state = SessionState.NOT_STARTED
        self._pending = PendingTable()
        self._next_id = 1
        self._tools: tuple[ToolDescriptor, ...] = ()
        self._server_info: ServerInfo | None = None
        self._failure: ToolwireError | None = None
        self._exited_at: float | None = None
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------ #
    # Public properties
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> ToolwireConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def failure(self) -> ToolwireError | None:
        """Why the session is ``FAILED``, or ``None``."""
        return self._failure

    @property
    def server_info(self) -> ServerInfo | None:
        return self._server_info

    @property
    def tools(self) -> tuple[ToolDescriptor, ...]:
        """The last catalog received, in the order the peer listed it."""
        return self._tools

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: int) -> bool:
        return request_id in self._pending

    def in_flight(self, method: str) -> int:
        """Number of pending requests for *method*."""
        return self._pending.count(method)

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def connect(self) -> None:
        """Spawn the peer and send ``initialize``.

        Returns once the request is written (or the spawn failed); the
        handshake completes over later :meth:`poll` calls.

        Raises:
            InvalidTransition: If this session was already connected.
        """
        if self._state is not SessionState.NOT_STARTED:
            raise InvalidTransition(self._state, SessionState.STARTING)

        self._set_state(SessionState.STARTING)
        server = self._config.server
        try:
            self._supervisor.start(
                server.command,
                server.args,
                cwd=server.cwd,
                env=server.env or None,
            )
        except SpawnError as exc:
            self._fail(exc, context="spawn")
            return

        self._set_state(SessionState.AWAITING_HANDSHAKE)
        client = self._config.client
        params = {
            "protocolVersion": client.protocol_version,
            "capabilities": {"tools": {}},
            "clientInfo": {"name": client.name, "version": client.version},
        }
        self.send_request(
            "initialize",
            params,
            timeout=self._config.timeouts.handshake,
            on_complete=self._on_initialize,
        )

    def disconnect(self) -> None:
        """Stop the peer and move to ``STOPPED``.  Idempotent.

        Requests still pending resolve with ``NOT_CONNECTED``.
        """
        if self._state.is_terminal:
            return

        self._set_state(SessionState.STOPPED)
        pending = self._pending.drain()
        self._supervisor.stop()
        error = ToolError(
            ToolErrorKind.NOT_CONNECTED,
            f"Session with '{self.name}' was disconnected",
        )
        for entry in pending:
            self._complete(entry, None, error)
        self._end_transcript()

    def fail(self, error: ToolwireError, context: str = "internal") -> None:
        """Force the session into ``FAILED`` with *error*."""
        if self._state is SessionState.NOT_STARTED:
            # Nothing was launched; there is no legal NOT_STARTED -> FAILED.
            self._failure = error
            return
        self._fail(error, context=context)

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def send_request(
        self,
        method: str,
        params: Any = None,
        *,
        timeout: float,
        on_complete: Completion,
    ) -> int:
        """Register a pending request, then write it to the peer.

        The entry exists before the line is written, so a response can
        never arrive ahead of its registration.  If the write fails the
        session fails and *on_complete* receives the transport error.

        Returns:
            The request id.

        Raises:
            ToolError: ``NOT_CONNECTED`` if the peer is not running.
            EncodeError: If *params* cannot be serialized.
        """
        if self._state in (SessionState.NOT_STARTED, SessionState.STARTING) or (
            self._state.is_terminal
        ):
            msg = f"Session with '{self.name}' is {self._state}, cannot send {method}"
            raise ToolError(ToolErrorKind.NOT_CONNECTED, msg)

        request_id = self._next_id
        self._next_id += 1
        message = codec.request(request_id, method, params)
        line = codec.encode(message)

        now = self._clock()
        self._pending.add(
            PendingRequest(
                id=request_id,
                method=method,
                issued_at=now,
                deadline=now + timeout,
                on_complete=on_complete,
            )
        )

        try:
            self._supervisor.write_line(line)
        except TransportClosedError as exc:
            entry = self._pending.pop(request_id)
            self._fail(exc, context="transport")
            if entry is not None:
                self._complete(entry, None, exc)
            return request_id

        if self._recorder is not None:
            self._recorder.outgoing(message)
        logger.debug("%s: -> %s id=%d", self.name, method, request_id)
        return request_id

    def refresh_tools(self, on_complete: Completion | None = None) -> None:
        """Re-fetch the catalog; it is replaced wholesale when it arrives.

        Failures go to *on_complete* and the log only; the session stays
        ``READY``.
        """
        if self._state is not SessionState.READY:
            if on_complete is not None:
                error = ToolError(
                    ToolErrorKind.NOT_CONNECTED,
                    f"Session with '{self.name}' is {self._state}",
                )
                on_complete(None, error)
            return

        def _done(result: Any, error: ToolwireError | None) -> None:
            if error is None:
                catalog = _parse_catalog(result)
                if catalog is None:
                    error = HandshakeError(
                        "Malformed tools/list result", stage="tools/list"
                    )
                elif self._state is SessionState.READY:
                    self._tools = tuple(catalog.tools)
                    logger.info(
                        "%s: catalog refreshed (%d tools)", self.name, len(self._tools)
                    )
            if error is not None:
                logger.warning("%s: tool refresh failed: %s", self.name, error)
            if on_complete is not None:
                on_complete(None if error else self._tools, error)

        self.send_request(
            "tools/list",
            timeout=self._config.timeouts.handshake,
            on_complete=_done,
        )

    # ------------------------------------------------------------------ #
    # Poll tick
    # ------------------------------------------------------------------ #

    def poll(self) -> None:
        """Run one non-blocking tick: drain, sweep deadlines, check liveness."""
        if self._state is SessionState.NOT_STARTED or self._state.is_terminal:
            return

        self._drain_incoming()
        if self._state.is_terminal:
            return

        self._sweep_deadlines()
        if self._state.is_terminal:
            return

        if self._supervisor.is_alive():
            return
        # The reader may still hold the peer's last lines; EOF normally
        # arrives first and fails the session from _drain_incoming.
        now = self._clock()
        if self._exited_at is None:
            self._exited_at = now
        elif now - self._exited_at >= EXIT_SETTLE_GRACE:
            self._fail(self._transport_closed("exited unexpectedly"), context="transport")

    def _drain_incoming(self) -> None:
        incoming = self._supervisor.incoming
        # Only what is queued now, so a chatty peer cannot pin the tick.
        for _ in range(incoming.qsize()):
            try:
                item = incoming.get_nowait()
            except queue.Empty:
                return

            if item is END_OF_STREAM:
                self._fail(self._transport_closed("closed its output"), context="transport")
                return

            if isinstance(item, DecodeError):
                logger.warning(
                    "%s: %s; skipping line: %s", self.name, item, item.preview
                )
                if self._recorder is not None:
                    self._recorder.error(f"{item}: {item.preview}", context="decode")
                continue

            if self._recorder is not None:
                self._recorder.incoming(item)
            self._dispatch(item)
            if self._state.is_terminal:
                return

    def _dispatch(self, message: Any) -> None:
        """Route one decoded message from the peer."""
        if not isinstance(message, dict):
            logger.warning(
                "%s: ignoring non-object message: %s", self.name, str(message)[:200]
            )
            return

        method = message.get("method")
        if method is not None:
            if message.get("id") is not None:
                self._answer_peer_request(message)
            else:
                logger.debug("%s: ignoring notification %s", self.name, method)
            return

        request_id = message.get("id")
        if not _is_request_id(request_id):
            logger.warning(
                "%s: response without a usable id: %s", self.name, str(message)[:200]
            )
            return

        entry = self._pending.pop(request_id)
        if entry is None:
            logger.debug(
                "%s: discarding response for unknown or expired id %s",
                self.name,
                request_id,
            )
            return

        logger.debug("%s: <- %s id=%d", self.name, entry.method, entry.id)
        error_obj = message.get("error")
        if error_obj is not None:
            self._complete(entry, None, _remote_error(error_obj))
        else:
            self._complete(entry, message.get("result"), None)

    def _sweep_deadlines(self) -> None:
        for entry in self._pending.pop_expired(self._clock()):
            waited = entry.deadline - entry.issued_at
            error = ToolError(
                ToolErrorKind.TIMEOUT,
                f"{entry.method} (id {entry.id}) timed out after {waited:g}s",
            )
            logger.warning("%s: %s", self.name, error)
            self._complete(entry, None, error)

    def _answer_peer_request(self, message: dict[str, Any]) -> None:
        """Reply to a request the peer sent us; only ``ping`` is supported."""
        method = message.get("method")
        if method == "ping":
            response: dict[str, Any] = {
                "jsonrpc": "2.0",
                "id": message["id"],
                "result": {},
            }
        else:
            logger.info("%s: rejecting peer request %s", self.name, method)
            response = codec.error_response(
                message["id"],
                METHOD_NOT_FOUND,
                f"Method not supported by client: {method}",
            )
        try:
            self._supervisor.write_line(codec.encode(response))
        except EncodeError as exc:
            logger.warning("%s: cannot answer peer request: %s", self.name, exc)
            return
        except TransportClosedError as exc:
            self._fail(exc, context="transport")
            return
        if self._recorder is not None:
            self._recorder.outgoing(response)

    # ------------------------------------------------------------------ #
    # Handshake
    # ------------------------------------------------------------------ #

    def _on_initialize(self, result: Any, error: ToolwireError | None) -> None:
        if self._state is not SessionState.AWAITING_HANDSHAKE:
            return
        if error is not None:
            self._fail(
                HandshakeError(f"initialize failed: {error}", stage="initialize"),
                context="handshake",
            )
            return
        if not isinstance(result, dict):
            self._fail(
                HandshakeError(
                    "initialize returned a non-object result", stage="initialize"
                ),
                context="handshake",
            )
            return

        self._server_info = ServerInfo.from_result(result)
        logger.info(
            "%s: handshake complete (server %s %s)",
            self.name,
            self._server_info.server_name or "?",
            self._server_info.server_version or "?",
        )
        self._set_state(SessionState.LISTING_TOOLS)

        if self._config.client.send_initialized:
            self._notify("notifications/initialized")
            if self._state.is_terminal:
                return

        self.send_request(
            "tools/list",
            timeout=self._config.timeouts.handshake,
            on_complete=self._on_initial_catalog,
        )

    def _on_initial_catalog(self, result: Any, error: ToolwireError | None) -> None:
        if self._state is not SessionState.LISTING_TOOLS:
            return
        if error is not None:
            self._fail(
                HandshakeError(f"tools/list failed: {error}", stage="tools/list"),
                context="handshake",
            )
            return

        catalog = _parse_catalog(result)
        if catalog is None:
            self._fail(
                HandshakeError("Malformed tools/list result", stage="tools/list"),
                context="handshake",
            )
            return

        self._tools = tuple(catalog.tools)
        self._set_state(SessionState.READY)
        logger.info("%s: ready with %d tools", self.name, len(self._tools))

    def _notify(self, method: str, params: Any = None) -> None:
        message = codec.notification(method, params)
        try:
            self._supervisor.write_line(codec.encode(message))
        except TransportClosedError as exc:
            self._fail(exc, context="transport")
            return
        if self._recorder is not None:
            self._recorder.outgoing(message)

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _set_state(self, new: SessionState) -> None:
        old = self._state
        check_transition(old, new)
        if old is new:
            return
        self._state = new
        logger.info("%s: %s -> %s", self.name, old, new)
        if self._recorder is not None:
            self._recorder.state(str(old), str(new))
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception:
                logger.exception("%s: state listener raised", self.name)

    def _fail(self, error: ToolwireError, context: str) -> None:
        """Move to ``FAILED``, stop the peer and fail every pending request."""
        if self._state.is_terminal:
            return

        self._failure = error
        logger.error("%s: %s", self.name, error)
        if self._recorder is not None:
            self._recorder.error(str(error), context=context)

        self._set_state(SessionState.FAILED)
        pending = self._pending.drain()
        self._supervisor.stop_nowait()

        if isinstance(error, TransportClosedError):
            closed = error
        else:
            closed = TransportClosedError(
                f"Session with '{self.name}' failed: {error}"
            )
        for entry in pending:
            self._complete(entry, None, closed)
        self._end_transcript()

    def _complete(
        self,
        entry: PendingRequest,
        result: Any,
        error: ToolwireError | None,
    ) -> None:
        try:
            entry.on_complete(result, error)
        except Exception:
            logger.exception(
                "%s: completion callback for %s id=%d raised",
                self.name,
                entry.method,
                entry.id,
            )

    def _transport_closed(self, what: str) -> TransportClosedError:
        exit_code = self._supervisor.exit_code
        stderr_text = self._supervisor.stderr_tail()
        msg = f"Tool server '{self.name}' {what}"
        if exit_code is not None:
            msg += f" (exit code {exit_code})"
        preview = format_stderr_preview(stderr_text)
        if preview:
            msg += f". Stderr:\n  {preview}"
        return TransportClosedError(msg, exit_code=exit_code, stderr=stderr_text)

    def _end_transcript(self) -> None:
        if self._recorder is not None:
            self._recorder.end(str(self._state))


def _is_request_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _remote_error(error_obj: Any) -> RemoteError:
    if isinstance(error_obj, dict):
        try:
            parsed = RpcErrorObject.model_validate(error_obj)
        except ValidationError:
            return RemoteError(INTERNAL_ERROR, str(error_obj)[:200])
        return RemoteError(parsed.code, parsed.message, parsed.data)
    return RemoteError(INTERNAL_ERROR, str(error_obj)[:200])


def _parse_catalog(result: Any) -> ToolCatalog | None:
    if not isinstance(result, dict):
        return None
    try:
        return ToolCatalog.model_validate(result)
    except ValidationError:
        return None
