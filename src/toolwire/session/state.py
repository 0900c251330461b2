"""SessionState and the transitions a ProtocolSession may take."""

from __future__ import annotations

import enum

from toolwire.errors import InvalidTransition


class SessionState(enum.Enum):
    """Lifecycle of one ProtocolSession (and its one peer process)."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    LISTING_TOOLS = "listing_tools"
    READY = "ready"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    def __str__(self) -> str:
        return self.value


_TERMINAL = frozenset({SessionState.FAILED, SessionState.STOPPED})

#: Every legal (old -> new) pair.  FAILED/STOPPED have no way out.
_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.NOT_STARTED: frozenset(
        {SessionState.STARTING, SessionState.STOPPED}
    ),
    SessionState.STARTING: frozenset(
        {SessionState.AWAITING_HANDSHAKE, SessionState.FAILED, SessionState.STOPPED}
    ),
    SessionState.AWAITING_HANDSHAKE: frozenset(
        {SessionState.LISTING_TOOLS, SessionState.FAILED, SessionState.STOPPED}
    ),
    SessionState.LISTING_TOOLS: frozenset(
        {SessionState.READY, SessionState.FAILED, SessionState.STOPPED}
    ),
    SessionState.READY: frozenset(
        {SessionState.READY, SessionState.FAILED, SessionState.STOPPED}
    ),
    SessionState.FAILED: frozenset(),
    SessionState.STOPPED: frozenset(),
}


def can_transition(old: SessionState, new: SessionState) -> bool:
    return new in _TRANSITIONS[old]


def check_transition(old: SessionState, new: SessionState) -> None:
    """Raise :class:`InvalidTransition` unless *old* -> *new* is allowed."""
    if not can_transition(old, new):
        raise InvalidTransition(old, new)
