"""LineCodec: one JSON-RPC message per newline-free line."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from toolwire.constants import JSONRPC_VERSION
from toolwire.errors import DecodeError, EncodeError

#: Characters of an undecodable line kept for log messages.
_PREVIEW_CHARS = 200


def encode(message: Mapping[str, Any]) -> str:
    """Serialize *message* to a single JSON line without the trailing newline.

    Raises:
        EncodeError: If the message holds values JSON cannot represent
            (NaN, infinities, arbitrary objects).
    """
    try:
        line = json.dumps(
            message,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
    except (TypeError, ValueError) as exc:
        msg = f"Cannot encode JSON-RPC message: {exc}"
        raise EncodeError(msg) from exc
    # json.dumps escapes control characters inside strings, so a raw
    # newline can only appear through a misbehaving custom encoder.
    if "\n" in line or "\r" in line:
        msg = "Encoded JSON-RPC message contains a line break"
        raise EncodeError(msg)
    return line


def decode(line: str | bytes) -> Any | None:
    """Parse one line from the peer.

    Returns ``None`` for blank lines.  Integers stay ``int`` and numbers
    with a fraction or exponent become ``float``.

    Raises:
        DecodeError: If the line is not valid UTF-8 or not valid JSON.
    """
    if isinstance(line, bytes):
        try:
            text = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            preview = line[:_PREVIEW_CHARS].decode("utf-8", errors="replace")
            raise DecodeError(f"Invalid UTF-8 from peer: {exc}", preview) from exc
    else:
        text = line

    text = text.strip()
    if not text:
        return None

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        preview = text[:_PREVIEW_CHARS]
        raise DecodeError(f"Non-JSON output from peer: {exc.msg}", preview) from exc


def request(request_id: int, method: str, params: Any = None) -> dict[str, Any]:
    """Build a JSON-RPC request envelope."""
    message: dict[str, Any] = {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "method": method,
    }
    if params is not None:
        message["params"] = params
    return message


def notification(method: str, params: Any = None) -> dict[str, Any]:
    """Build a JSON-RPC notification envelope (no id, no response)."""
    message: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        message["params"] = params
    return message


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    """Build a JSON-RPC error response to a request the peer sent us."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }
