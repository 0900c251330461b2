"""Shared helpers for peer process handling."""

from __future__ import annotations

import os
import shutil


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def resolve_executable(
    command: str,
    cwd: str | None = None,
    path: str | None = None,
) -> str | None:
    """Return the full path of *command*, or ``None`` if it cannot be found.

    Bare names are looked up on *path* (default: the ``PATH`` of this
    process), honouring ``PATHEXT`` on Windows so ``npx`` finds
    ``npx.cmd``.  Paths containing a separator are resolved against *cwd*.
    """
    if os.sep in command or (os.altsep and os.altsep in command):
        candidate = command
        if cwd is not None and not os.path.isabs(candidate):
            candidate = os.path.join(cwd, candidate)
        return shutil.which(candidate)
    return shutil.which(command, path=path)
