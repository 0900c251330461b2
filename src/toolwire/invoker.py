"""ToolInvoker: the call surface collaborators use once a session is ready."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import Future
from typing import Any

from toolwire.errors import ToolError, ToolErrorKind, ToolwireError
from toolwire.protocol.models import ToolDescriptor
from toolwire.session.protocol import ProtocolSession
from toolwire.session.state import SessionState

logger = logging.getLogger(__name__)

#: ``on_complete(text, error)``: ``text`` is ``None`` when ``error`` is set.
CallCallback = Callable[[str | None, BaseException | None], None]


class ToolInvoker:
    """Lists and calls tools on a :class:`ProtocolSession`.

    Nothing here blocks.  :meth:`call_tool` returns a
    :class:`concurrent.futures.Future` that the session resolves on a later
    poll tick; check ``future.done()`` from the host loop or pass
    ``on_complete``.
    """

    def __init__(self, session: ProtocolSession) -> None:
        self._session = session

    def list_tools(self) -> list[ToolDescriptor]:
        """The catalog while ``READY``, otherwise an empty list."""
        if self._session.state is not SessionState.READY:
            return []
        return list(self._session.tools)

    def get_tool(self, name: str) -> ToolDescriptor | None:
        for tool in self.list_tools():
            if tool.name == name:
                return tool
        return None

    def call_tool(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        on_complete: CallCallback | None = None,
    ) -> Future[str]:
        """Invoke tool *name* and resolve with the first text block it returns.

        The future fails with :class:`ToolError`: ``NOT_CONNECTED``
        (immediately, when the session is not ``READY``), ``BUSY``
        (immediately, too many calls in flight), ``TIMEOUT``,
        ``REMOTE_ERROR``, ``EMPTY_RESULT`` or ``TRANSPORT_CLOSED``.

        Raises:
            EncodeError: If *arguments* cannot be serialized to JSON.
        """
        future: Future[str] = Future()
        if on_complete is not None:
            future.add_done_callback(lambda f: _deliver(f, on_complete))

        session = self._session
        if session.state is not SessionState.READY:
            future.set_exception(
                ToolError(
                    ToolErrorKind.NOT_CONNECTED,
                    f"Tool server '{session.name}' is not ready ({session.state})",
                )
            )
            return future

        limit = session.config.limits.max_pending
        if session.in_flight("tools/call") >= limit:
            future.set_exception(
                ToolError(
                    ToolErrorKind.BUSY,
                    f"{limit} tool calls already in flight on '{session.name}'",
                )
            )
            return future

        def _done(result: Any, error: ToolwireError | None) -> None:
            if error is not None:
                logger.info("%s: tool %s failed: %s", session.name, name, error)
                future.set_exception(error)
                return
            try:
                text = extract_text(result)
            except ToolError as exc:
                logger.info("%s: tool %s failed: %s", session.name, name, exc)
                future.set_exception(exc)
            else:
                future.set_result(text)

        params = {"name": name, "arguments": dict(arguments) if arguments else {}}
        deadline = session.config.timeouts.call if timeout is None else timeout
        try:
            session.send_request(
                "tools/call",
                params,
                timeout=deadline,
                on_complete=_done,
            )
        except ToolError as exc:
            future.set_exception(exc)
        return future


def extract_text(result: Any) -> str:
    """Return the first text content block of a ``tools/call`` result.

    Raises:
        ToolError: ``REMOTE_ERROR`` when the result is flagged ``isError``,
            ``EMPTY_RESULT`` when there is no text block.
    """
    blocks: list[Any] = []
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        blocks = result["content"]

    text = next(
        (
            block["text"]
            for block in blocks
            if isinstance(block, dict) and isinstance(block.get("text"), str)
        ),
        None,
    )

    if isinstance(result, dict) and result.get("isError") is True:
        raise ToolError(ToolErrorKind.REMOTE_ERROR, text or "Tool reported an error")
    if text is None:
        raise ToolError(ToolErrorKind.EMPTY_RESULT, "Tool returned no text content")
    return text


def _deliver(future: Future[str], on_complete: CallCallback) -> None:
    error = future.exception()
    on_complete(None if error else future.result(), error)
