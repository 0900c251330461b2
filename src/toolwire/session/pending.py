"""The correlation table: in-flight request id -> completion callback."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from toolwire.errors import ToolwireError

#: ``on_complete(result, error)``: exactly one of the two is meaningful.
Completion = Callable[[Any, ToolwireError | None], None]


@dataclass(slots=True)
class PendingRequest:
    """One request awaiting its response or its deadline."""

    id: int
    method: str
    issued_at: float
    deadline: float
    on_complete: Completion


class PendingTable:
    """Request ids in flight, each resolved at most once.

    Every removal path (``pop``, ``pop_expired``, ``drain``) hands the
    entry to exactly one caller, so a response racing its own deadline
    cannot complete twice.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[int, PendingRequest] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._entries

    def add(self, entry: PendingRequest) -> None:
        with self._lock:
            if entry.id in self._entries:
                msg = f"Request id {entry.id} is already pending"
                raise ValueError(msg)
            self._entries[entry.id] = entry

    def pop(self, request_id: Any) -> PendingRequest | None:
        with self._lock:
            return self._entries.pop(request_id, None)

    def pop_expired(self, now: float) -> list[PendingRequest]:
        """Remove and return entries whose deadline is at or before *now*."""
        with self._lock:
            expired = [e for e in self._entries.values() if e.deadline <= now]
            for entry in expired:
                del self._entries[entry.id]
        expired.sort(key=lambda e: e.id)
        return expired

    def drain(self) -> list[PendingRequest]:
        """Remove and return every entry, oldest id first."""
        with self._lock:
            entries = sorted(self._entries.values(), key=lambda e: e.id)
            self._entries.clear()
        return entries

    def count(self, method: str) -> int:
        with self._lock:
            return sum(1 for e in self._entries.values() if e.method == method)
