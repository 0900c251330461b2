"""Exception hierarchy for the toolwire client.

Transport faults (``SpawnError``, ``TransportClosedError``,
``HandshakeError``) end a session.  ``DecodeError`` is recovered locally.
``ToolError`` belongs to a single call and never touches session state on
its own.
"""

from __future__ import annotations

import enum
from typing import Any


class ToolwireError(Exception):
    """Base exception for all toolwire errors."""


class SpawnError(ToolwireError):
    """The peer process could not be launched or died during startup."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class EncodeError(ToolwireError):
    """A request could not be serialized to a JSON line."""


class DecodeError(ToolwireError):
    """A line from the peer was not valid JSON."""

    def __init__(self, message: str, preview: str = "") -> None:
        self.preview = preview
        super().__init__(message)


class HandshakeError(ToolwireError):
    """The initialize handshake or initial catalog fetch failed."""

    def __init__(self, message: str, stage: str) -> None:
        self.stage = stage
        super().__init__(message)


class InvalidTransition(ToolwireError):
    """A session state change that the state machine does not allow."""

    def __init__(self, old: object, new: object) -> None:
        self.old = old
        self.new = new
        super().__init__(f"Invalid session transition: {old} -> {new}")


class ToolErrorKind(enum.Enum):
    """Why a single request did not produce a result."""

    TIMEOUT = "timeout"
    REMOTE_ERROR = "remote_error"
    EMPTY_RESULT = "empty_result"
    NOT_CONNECTED = "not_connected"
    TRANSPORT_CLOSED = "transport_closed"
    BUSY = "busy"


class ToolError(ToolwireError):
    """A request failed; ``kind`` says how."""

    def __init__(
        self,
        kind: ToolErrorKind,
        message: str,
        code: int | None = None,
        data: Any = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.code = code
        self.data = data
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}, {self.message!r})"


class RemoteError(ToolError):
    """The peer answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(ToolErrorKind.REMOTE_ERROR, message, code=code, data=data)


class TransportClosedError(ToolError):
    """The peer's stdio is gone (process exited, pipe broken, stream closed)."""

    def __init__(
        self,
        message: str = "Tool server transport is closed",
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(ToolErrorKind.TRANSPORT_CLOSED, message)
