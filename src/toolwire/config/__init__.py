"""Configuration models and parser for toolwire.yaml."""

from toolwire.config.models import (
    ClientConfig,
    LimitsConfig,
    ServerConfig,
    TimeoutConfig,
    ToolwireConfig,
    TranscriptConfig,
)
from toolwire.config.parser import ConfigError, load_config

__all__ = [
    "ClientConfig",
    "ConfigError",
    "LimitsConfig",
    "ServerConfig",
    "TimeoutConfig",
    "ToolwireConfig",
    "TranscriptConfig",
    "load_config",
]
