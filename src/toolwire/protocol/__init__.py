"""Wire format: line codec and payload models."""

from toolwire.protocol.codec import decode, encode, notification, request
from toolwire.protocol.models import (
    RpcErrorObject,
    ServerInfo,
    ToolCatalog,
    ToolDescriptor,
)

__all__ = [
    "RpcErrorObject",
    "ServerInfo",
    "ToolCatalog",
    "ToolDescriptor",
    "decode",
    "encode",
    "notification",
    "request",
]
