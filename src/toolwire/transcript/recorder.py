"""WireRecorder: append-only JSONL transcript of one tool-server session."""

from __future__ import annotations

import re
import threading
import time
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Any

from toolwire.transcript.models import (
    ErrorEvent,
    IncomingEvent,
    OutgoingEvent,
    StateEvent,
    TranscriptEndEvent,
    TranscriptEvent,
    TranscriptStartEvent,
)

#: Characters allowed in the server-name part of the file name.
_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9_-]+")


class WireRecorder:
    """Records wire traffic and state changes to a JSONL file.

    Thread-safe: all writes are serialized through a ``threading.Lock``.
    Crash-safe: the file is flushed after every event.
    """

    def __init__(
        self,
        server: str,
        command: Sequence[str],
        directory: Path | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._seq = 0
        self._closed = False
        self._start_ns = time.monotonic_ns()
        self._transcript_id = uuid.uuid4().hex[:12]

        if directory is None:
            directory = Path("transcripts")
        directory.mkdir(parents=True, exist_ok=True)

        safe_server = _UNSAFE_CHARS_RE.sub("-", server).strip("-") or "server"
        date_str = datetime.now(tz=UTC).strftime("%Y-%m-%d")
        self._path = directory / f"{date_str}_{safe_server}_{self._transcript_id}.jsonl"

        self._fh: IO[str] | None = None
        try:
            self._fh = self._path.open("a", encoding="utf-8")
            self.record(
                TranscriptStartEvent(
                    ts="",  # record() overwrites
                    seq=0,  # record() overwrites
                    transcript_id=self._transcript_id,
                    server=server,
                    command=list(command),
                )
            )
        except Exception:
            self._close_handle()
            raise

    @property
    def transcript_id(self) -> str:
        return self._transcript_id

    @property
    def path(self) -> Path:
        """Path to the JSONL file."""
        return self._path

    @property
    def event_count(self) -> int:
        return self._seq

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, event: TranscriptEvent) -> None:
        """Stamp ``ts``/``seq`` on *event* and append it.

        Silently drops events after the recorder has been closed.
        """
        with self._lock:
            if self._closed or self._fh is None:
                return
            event.seq = self._seq
            event.ts = _iso_now()
            self._seq += 1
            self._fh.write(event.model_dump_json() + "\n")
            self._fh.flush()

    def outgoing(self, message: dict[str, Any]) -> None:
        self.record(OutgoingEvent(ts="", seq=0, message=message))

    def incoming(self, message: Any) -> None:
        self.record(IncomingEvent(ts="", seq=0, message=message))

    def state(self, old: str, new: str) -> None:
        self.record(StateEvent(ts="", seq=0, old=old, new=new))

    def error(self, error: str, context: str | None = None) -> None:
        self.record(ErrorEvent(ts="", seq=0, error=error, context=context))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def end(self, reason: str) -> None:
        """Write a ``transcript_end`` event and close the file.  Idempotent."""
        if self._closed:
            return
        duration_ms = int((time.monotonic_ns() - self._start_ns) / 1_000_000)
        self.record(TranscriptEndEvent(ts="", seq=0, reason=reason, duration_ms=duration_ms))
        self.close()

    def close(self) -> None:
        """Close the file **without** writing a ``transcript_end`` event."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close_handle()

    def _close_handle(self) -> None:
        if self._fh is not None and not self._fh.closed:
            self._fh.close()


def _iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
