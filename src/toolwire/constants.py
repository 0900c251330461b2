"""Shared constants for the toolwire client."""

from __future__ import annotations

#: JSON-RPC version string carried on every message.
JSONRPC_VERSION = "2.0"

#: MCP protocol revision sent in the ``initialize`` request.
DEFAULT_PROTOCOL_VERSION = "2024-11-05"

#: Client identity advertised during the handshake.
DEFAULT_CLIENT_NAME = "toolwire"

#: Seconds to wait after spawn before treating the peer as started.
DEFAULT_STARTUP_GRACE = 0.5

#: Default deadline (seconds) for the handshake and for tool calls.
DEFAULT_REQUEST_TIMEOUT = 10.0

#: Seconds to wait for the peer to exit after stdin is closed.
DEFAULT_STOP_GRACE = 2.0

#: Maximum tool calls in flight at once on one session.
DEFAULT_MAX_PENDING = 32

#: Capacity of the reader -> host queue.
DEFAULT_QUEUE_SIZE = 1000

#: Maximum bytes per JSONL line from the peer's stdout (1 MB).
MAX_LINE_BYTES = 1_048_576

#: Lines of peer stderr kept for failure messages.
STDERR_TAIL_LINES = 20

#: JSON-RPC error code for an unknown method.
METHOD_NOT_FOUND = -32601

#: JSON-RPC error code used when the peer sends an error without a code.
INTERNAL_ERROR = -32603

#: Seconds a dead peer's output may keep draining before the session fails.
EXIT_SETTLE_GRACE = 0.5
