"""Pydantic v2 models for toolwire.yaml configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from toolwire import __version__
from toolwire.constants import (
    DEFAULT_CLIENT_NAME,
    DEFAULT_MAX_PENDING,
    DEFAULT_PROTOCOL_VERSION,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_STARTUP_GRACE,
    DEFAULT_STOP_GRACE,
    MAX_LINE_BYTES,
)


class ServerConfig(BaseModel):
    """How to launch the tool server."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(
        default="tool-server",
        description="Display name used in logs, errors and transcript files",
    )
    command: str = Field(description="Executable to run, e.g. 'npx'")
    args: list[str] = Field(
        default_factory=list,
        description="Argument vector passed verbatim (no shell)",
    )
    cwd: str | None = Field(
        default=None,
        description="Working directory (defaults to the current directory)",
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables layered over os.environ",
    )

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "Server 'command' must not be empty"
            raise ValueError(msg)
        return value


class ClientConfig(BaseModel):
    """Identity and protocol options sent in the handshake."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default=DEFAULT_CLIENT_NAME, description="clientInfo.name")
    version: str = Field(default=__version__, description="clientInfo.version")
    protocol_version: str = Field(
        default=DEFAULT_PROTOCOL_VERSION,
        description="protocolVersion sent in initialize",
    )
    send_initialized: bool = Field(
        default=True,
        description="Send notifications/initialized after the handshake",
    )


class TimeoutConfig(BaseModel):
    """Deadlines, in seconds."""

    model_config = ConfigDict(extra="forbid")

    startup_grace: float = Field(
        default=DEFAULT_STARTUP_GRACE,
        ge=0,
        description="Wait after spawn to detect a crash on launch (0 to skip)",
    )
    handshake: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0,
        description="Deadline for initialize and the initial tools/list",
    )
    call: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0,
        description="Default deadline for tools/call",
    )
    stop_grace: float = Field(
        default=DEFAULT_STOP_GRACE,
        ge=0,
        description="Wait after closing stdin before terminating the peer",
    )


class LimitsConfig(BaseModel):
    """Resource bounds."""

    model_config = ConfigDict(extra="forbid")

    max_pending: int = Field(
        default=DEFAULT_MAX_PENDING,
        ge=1,
        description="Maximum tool calls in flight at once",
    )
    queue_size: int = Field(
        default=DEFAULT_QUEUE_SIZE,
        ge=1,
        description="Capacity of the reader queue",
    )
    max_line_bytes: int = Field(
        default=MAX_LINE_BYTES,
        ge=1024,
        description="Longest accepted stdout line",
    )


class TranscriptConfig(BaseModel):
    """Optional JSONL recording of the wire traffic."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=False, description="Write a transcript file")
    directory: str = Field(
        default="transcripts",
        description="Directory for transcript files",
    )


class ToolwireConfig(BaseModel):
    """Top-level toolwire.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1", description="Config schema version")
    server: ServerConfig = Field(description="Tool server launch settings")
    client: ClientConfig = Field(default_factory=ClientConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    transcript: TranscriptConfig = Field(default_factory=TranscriptConfig)
