"""Titan Sender - GRBL G-code streaming engine.

Character-counting job streaming with live status, pause / resume / stop
and real-time overrides over serial, Bluetooth, TCP or WebSocket links.
"""

__version__ = "1.0"

from .stream_session import StreamSession
from .types import ConnectionState, JobProgress, JobState, MachineState, MachineStatus
from .utils import Settings

__all__ = [
    "ConnectionState",
    "JobProgress",
    "JobState",
    "MachineState",
    "MachineStatus",
    "Settings",
    "StreamSession",
]
