"""Protocol session: state machine, correlation table and handshake."""

from toolwire.session.pending import Completion, PendingRequest, PendingTable
from toolwire.session.protocol import ProtocolSession, StateListener
from toolwire.session.state import SessionState

__all__ = [
    "Completion",
    "PendingRequest",
    "PendingTable",
    "ProtocolSession",
    "SessionState",
    "StateListener",
]
