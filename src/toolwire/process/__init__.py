"""Peer process supervision and the stdio reader threads."""

from toolwire.process.reader import END_OF_STREAM, BackgroundReader, StderrDrain
from toolwire.process.supervisor import ProcessSupervisor

__all__ = [
    "END_OF_STREAM",
    "BackgroundReader",
    "ProcessSupervisor",
    "StderrDrain",
]
