"""Pydantic v2 models for the payloads exchanged with a tool server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ToolDescriptor(BaseModel):
    """One entry of the tool catalog returned by ``tools/list``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(description="Tool name used in tools/call")
    description: str = Field(default="", description="Human-readable summary")
    input_schema: Any = Field(
        default=None,
        alias="inputSchema",
        description="JSON Schema for the tool arguments (kept opaque)",
    )

    @field_validator("description", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ToolCatalog(BaseModel):
    """The ``result`` of a ``tools/list`` response."""

    model_config = ConfigDict(extra="ignore")

    tools: list[ToolDescriptor] = Field(description="Advertised tools, in order")


class ServerInfo(BaseModel):
    """What the peer reported about itself in the ``initialize`` result."""

    model_config = ConfigDict(frozen=True)

    protocol_version: str | None = None
    server_name: str | None = None
    server_version: str | None = None
    capabilities: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: dict[str, Any]) -> ServerInfo:
        info = result.get("serverInfo")
        if not isinstance(info, dict):
            info = {}
        capabilities = result.get("capabilities")
        return cls(
            protocol_version=_opt_str(result.get("protocolVersion")),
            server_name=_opt_str(info.get("name")),
            server_version=_opt_str(info.get("version")),
            capabilities=capabilities if isinstance(capabilities, dict) else {},
        )


class RpcErrorObject(BaseModel):
    """The ``error`` member of a JSON-RPC response."""

    model_config = ConfigDict(extra="ignore")

    code: int = Field(default=-32603)
    message: str = Field(default="Error")
    data: Any = None


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)
