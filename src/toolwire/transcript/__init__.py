"""Wire transcripts: event models and JSONL recorder."""

from toolwire.transcript.models import (
    ErrorEvent,
    IncomingEvent,
    OutgoingEvent,
    StateEvent,
    TranscriptEndEvent,
    TranscriptEvent,
    TranscriptStartEvent,
)
from toolwire.transcript.recorder import WireRecorder

__all__ = [
    "ErrorEvent",
    "IncomingEvent",
    "OutgoingEvent",
    "StateEvent",
    "TranscriptEndEvent",
    "TranscriptEvent",
    "TranscriptStartEvent",
    "WireRecorder",
]
