"""Pydantic v2 models for wire transcript events."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _EventBase(BaseModel):
    """Common envelope fields shared by every transcript event."""

    model_config = ConfigDict(extra="forbid")

    ts: str = Field(description="ISO 8601 timestamp with milliseconds")
    seq: int = Field(ge=0, description="Monotonic sequence number")


class TranscriptStartEvent(_EventBase):
    """Emitted once when the transcript file is opened."""

    type: Literal["transcript_start"] = "transcript_start"
    transcript_id: str = Field(description="Unique transcript identifier")
    server: str = Field(description="Configured server name")
    command: list[str] = Field(description="Command line used to launch the peer")


class TranscriptEndEvent(_EventBase):
    """Emitted once when the transcript is closed."""

    type: Literal["transcript_end"] = "transcript_end"
    reason: str = Field(description="Final session state")
    duration_ms: int = Field(description="Time since the transcript opened")


class OutgoingEvent(_EventBase):
    """A message written to the peer's stdin."""

    type: Literal["outgoing"] = "outgoing"
    message: dict[str, Any] = Field(description="The JSON-RPC message as sent")


class IncomingEvent(_EventBase):
    """A decoded line read from the peer's stdout."""

    type: Literal["incoming"] = "incoming"
    message: Any = Field(description="The decoded JSON value")


class StateEvent(_EventBase):
    """A session state transition."""

    type: Literal["state"] = "state"
    old: str = Field(description="State before the transition")
    new: str = Field(description="State after the transition")


class ErrorEvent(_EventBase):
    """A fault observed by the session."""

    type: Literal["error"] = "error"
    error: str = Field(description="Error description")
    context: str | None = Field(
        default=None,
        description="Where it happened: spawn, decode, handshake, transport, call",
    )


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


TranscriptEvent = Annotated[
    Annotated[TranscriptStartEvent, Tag("transcript_start")]
    | Annotated[TranscriptEndEvent, Tag("transcript_end")]
    | Annotated[OutgoingEvent, Tag("outgoing")]
    | Annotated[IncomingEvent, Tag("incoming")]
    | Annotated[StateEvent, Tag("state")]
    | Annotated[ErrorEvent, Tag("error")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all transcript event types."""
