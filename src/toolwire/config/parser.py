"""Load, validate, and resolve toolwire.yaml configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from toolwire.config.models import ToolwireConfig

DEFAULT_CONFIG_NAME = "toolwire.yaml"


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> ToolwireConfig:
    """Load and validate a toolwire.yaml file.

    Args:
        path: Explicit config file path. If None, looks for
              toolwire.yaml in the current directory.

    Returns:
        A validated ToolwireConfig instance.

    Raises:
        ConfigError: On missing file, bad YAML, or validation failure.
    """
    config_path = _resolve_path(path)
    raw = _read_yaml(config_path)
    _load_env(config_path.parent)
    _expand_env_references(raw)
    _resolve_server_cwd(raw, config_path.parent)
    return _validate(raw)


def _resolve_path(path: Path | None) -> Path:
    if path is not None:
        resolved = Path(path)
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise ConfigError(msg)
        return resolved

    default = Path.cwd() / DEFAULT_CONFIG_NAME
    if not default.is_file():
        msg = (
            f"No {DEFAULT_CONFIG_NAME} found in {Path.cwd()}. "
            "Run `toolwire init` to create one."
        )
        raise ConfigError(msg)
    return default


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        detail = ""
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            detail = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{detail}"
        raise ConfigError(msg) from exc

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)

    return data


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _expand_env_references(raw: dict[str, Any]) -> None:
    """Expand ``${VAR}`` in server args and env values."""
    server = raw.get("server")
    if not isinstance(server, dict):
        return

    args = server.get("args")
    if isinstance(args, list):
        server["args"] = [
            os.path.expandvars(a) if isinstance(a, str) else a for a in args
        ]

    env = server.get("env")
    if isinstance(env, dict):
        server["env"] = {
            k: os.path.expandvars(v) if isinstance(v, str) else v
            for k, v in env.items()
        }


def _resolve_server_cwd(raw: dict[str, Any], base_dir: Path) -> None:
    server = raw.get("server")
    if not isinstance(server, dict):
        return
    cwd = server.get("cwd")
    if isinstance(cwd, str) and cwd and not Path(cwd).is_absolute():
        server["cwd"] = str((base_dir / cwd).resolve())


def _validate(raw: dict[str, Any]) -> ToolwireConfig:
    try:
        return ToolwireConfig.model_validate(raw)
    except ValidationError as exc:
        errors = exc.errors()
        parts: list[str] = []
        for err in errors:
            loc = " → ".join(str(s) for s in err["loc"])
            msg = err["msg"]
            # Make certain error messages more user-friendly
            if "field required" in msg.lower():
                msg = "This field is required"
            elif "input should be" in msg.lower():
                msg = f"Invalid value: {msg}"
            parts.append(f"  {loc}: {msg}")
        joined = "\n".join(parts)
        msg = f"Config validation failed:\n{joined}"
        raise ConfigError(msg) from exc
