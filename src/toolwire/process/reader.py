"""Reader threads: the only code that blocks on the peer's streams.

``BackgroundReader`` turns stdout lines into decoded values on a bounded
queue that the host thread drains without blocking.  ``StderrDrain`` logs
the peer's diagnostics and remembers the last few lines for failure
messages.
"""

from __future__ import annotations

import collections
import contextlib
import logging
import queue
import threading
from typing import IO, Any

from toolwire.constants import MAX_LINE_BYTES, STDERR_TAIL_LINES
from toolwire.errors import DecodeError
from toolwire.protocol import codec

logger = logging.getLogger(__name__)

#: Seconds between stop-flag checks while waiting on a full queue.
_PUT_POLL = 0.1


class _EndOfStream:
    """Marker queued once when the peer's stdout reaches EOF."""

    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = _EndOfStream()


class BackgroundReader(threading.Thread):
    """Reads JSONL from *stream* and pushes each decoded line onto *sink*.

    Items placed on the queue are one of: a decoded JSON value, a
    :class:`DecodeError` for a malformed line, or :data:`END_OF_STREAM`
    (exactly once, last).  Blank lines are skipped.

    The thread closes *stream* when it exits, so a reader abandoned
    during shutdown still releases its pipe once the peer's last
    writer goes away.  ``ValueError``/``OSError`` from the stream is
    treated as EOF.
    """

    def __init__(
        self,
        stream: IO[bytes],
        sink: queue.Queue[Any],
        *,
        name: str = "peer",
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        super().__init__(name=f"toolwire-stdout-{name}", daemon=True)
        self._stream = stream
        self._sink = sink
        self._peer_name = name
        self._max_line_bytes = max_line_bytes
        self._stop_event = threading.Event()

    def stop(self) -> None:
        """Ask the thread to exit at the next opportunity."""
        self._stop_event.set()

    def run(self) -> None:
        try:
            while not self._stop_event.is_set():
                line = self._stream.readline(self._max_line_bytes + 1)
                if not line:
                    break

                if len(line) > self._max_line_bytes:
                    self._discard_rest_of_line()
                    logger.warning(
                        "%s: peer line exceeds %d bytes, skipping",
                        self._peer_name,
                        self._max_line_bytes,
                    )
                    self._put(
                        DecodeError(
                            f"Line exceeds {self._max_line_bytes} bytes",
                            line[:200].decode("utf-8", errors="replace"),
                        )
                    )
                    continue

                try:
                    value = codec.decode(line)
                except DecodeError as exc:
                    self._put(exc)
                    continue

                if value is not None:
                    self._put(value)
        except (OSError, ValueError) as exc:
            # Stream closed underneath us during shutdown.
            logger.debug("%s: stdout reader stopped: %s", self._peer_name, exc)
        finally:
            _close_quietly(self._stream)
            self._put(END_OF_STREAM)

    def _discard_rest_of_line(self) -> None:
        while True:
            chunk = self._stream.readline(self._max_line_bytes)
            if not chunk or chunk.endswith(b"\n"):
                return

    def _put(self, item: Any) -> None:
        while True:
            try:
                self._sink.put(item, timeout=_PUT_POLL)
                return
            except queue.Full:
                if self._stop_event.is_set():
                    return


class StderrDrain(threading.Thread):
    """Logs every stderr line of the peer and keeps a short tail."""

    def __init__(
        self,
        stream: IO[bytes],
        *,
        name: str = "peer",
        tail_lines: int = STDERR_TAIL_LINES,
    ) -> None:
        super().__init__(name=f"toolwire-stderr-{name}", daemon=True)
        self._stream = stream
        self._peer_name = name
        self._lock = threading.Lock()
        self._tail: collections.deque[str] = collections.deque(maxlen=tail_lines)
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def tail(self) -> str:
        """The most recent stderr lines, newline-joined."""
        with self._lock:
            return "\n".join(self._tail)

    def run(self) -> None:
        try:
            while not self._stop_event.is_set():
                raw = self._stream.readline()
                if not raw:
                    break
                text = raw.decode("utf-8", errors="replace").rstrip()
                if not text:
                    continue
                logger.warning("%s stderr: %s", self._peer_name, text)
                with self._lock:
                    self._tail.append(text)
        except (OSError, ValueError) as exc:
            logger.debug("%s: stderr drain stopped: %s", self._peer_name, exc)
        finally:
            _close_quietly(self._stream)


def _close_quietly(stream: IO[bytes]) -> None:
    with contextlib.suppress(OSError, ValueError):
        stream.close()
