#!/usr/bin/env python3
# Titan Sender (GRBL G-code streaming engine)
# Copyright (C) 2026 Titan Sender contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
# SPDX-License-Identifier: GPL-3.0-or-later

from __future__ import annotations

import asyncio
import queue
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias, Union


# ============================================================================
# MACHINE STATE
# ============================================================================

class MachineState(str, Enum):
    IDLE = "Idle"
    RUN = "Run"
    HOLD = "Hold"
    JOG = "Jog"
    ALARM = "Alarm"
    CHECK = "Check"
    DOOR = "Door"
    SLEEP = "Sleep"
    HOME = "Home"
    UNKNOWN = "Unknown"

    @classmethod
    def from_report(cls, name: str) -> "MachineState":
        """Map a status report state token (``Hold:0``, ``Door:1``...) to the enum."""
        base = (name or "").split(":", 1)[0].strip()
        for member in cls:
            if member.value == base:
                return member
        return cls.UNKNOWN


@dataclass(frozen=True)
class Position4:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    a: float = 0.0

    @classmethod
    def from_values(cls, values: list[float]) -> "Position4":
        padded = list(values[:4]) + [0.0] * (4 - min(len(values), 4))
        return cls(*padded)

    def __add__(self, other: "Position4") -> "Position4":
        return Position4(self.x + other.x, self.y + other.y, self.z + other.z, self.a + other.a)

    def __sub__(self, other: "Position4") -> "Position4":
        return Position4(self.x - other.x, self.y - other.y, self.z - other.z, self.a - other.a)


@dataclass(frozen=True)
class PinState:
    """Input pins reported in the ``Pn:`` field of a status report."""

    limit_x: bool = False
    limit_y: bool = False
    limit_z: bool = False
    limit_a: bool = False
    probe: bool = False
    door: bool = False
    hold: bool = False
    soft_reset: bool = False
    cycle_start: bool = False

    @classmethod
    def from_letters(cls, letters: str) -> "PinState":
        return cls(
            limit_x="X" in letters,
            limit_y="Y" in letters,
            limit_z="Z" in letters,
            limit_a="A" in letters,
            probe="P" in letters,
            door="D" in letters,
            hold="H" in letters,
            soft_reset="R" in letters,
            cycle_start="S" in letters,
        )

    @property
    def any_limit(self) -> bool:
        return self.limit_x or self.limit_y or self.limit_z or self.limit_a


@dataclass(frozen=True)
class Overrides:
    feed: int = 100
    rapid: int = 100
    spindle: int = 100


@dataclass(frozen=True)
class MachineStatus:
    state: MachineState = MachineState.UNKNOWN
    machine_position: Position4 = field(default_factory=Position4)
    work_position: Position4 = field(default_factory=Position4)
    feed_rate: int = 0
    spindle_speed: int = 0
    last_reported_line: int = 0
    buffer_available: int = 0
    pins: PinState = field(default_factory=PinState)
    overrides: Overrides = field(default_factory=Overrides)
    planner_blocks_available: int = 0
    work_coordinate_offset: Position4 | None = None


# ============================================================================
# JOB / CONNECTION STATE
# ============================================================================

class JobStateKind(Enum):
    IDLE = "idle"
    SENDING = "sending"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class JobState:
    kind: JobStateKind = JobStateKind.IDLE
    message: str | None = None

    @classmethod
    def idle(cls) -> "JobState":
        return cls(JobStateKind.IDLE)

    @classmethod
    def sending(cls) -> "JobState":
        return cls(JobStateKind.SENDING)

    @classmethod
    def paused(cls) -> "JobState":
        return cls(JobStateKind.PAUSED)

    @classmethod
    def completed(cls) -> "JobState":
        return cls(JobStateKind.COMPLETED)

    @classmethod
    def error(cls, message: str) -> "JobState":
        return cls(JobStateKind.ERROR, message)

    @property
    def is_active(self) -> bool:
        return self.kind in (JobStateKind.SENDING, JobStateKind.PAUSED)

    def __str__(self) -> str:
        if self.kind == JobStateKind.ERROR:
            return f"Error({self.message})"
        return self.kind.value.capitalize()


class ConnectionStateKind(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionState:
    kind: ConnectionStateKind = ConnectionStateKind.DISCONNECTED
    device_name: str | None = None
    message: str | None = None

    @classmethod
    def disconnected(cls) -> "ConnectionState":
        return cls(ConnectionStateKind.DISCONNECTED)

    @classmethod
    def connecting(cls, device_name: str | None = None) -> "ConnectionState":
        return cls(ConnectionStateKind.CONNECTING, device_name)

    @classmethod
    def connected(cls, device_name: str) -> "ConnectionState":
        return cls(ConnectionStateKind.CONNECTED, device_name)

    @classmethod
    def error(cls, message: str, device_name: str | None = None) -> "ConnectionState":
        return cls(ConnectionStateKind.ERROR, device_name, message)


# ============================================================================
# STREAMING
# ============================================================================

@dataclass(frozen=True)
class QueuedLine:
    """One job line waiting for, or occupying, space in the firmware buffer.

    ``byte_count`` is the trimmed content plus the newline terminator. The
    ``N{seq}`` prefix added on the wire is not counted; the gap between the
    safe capacity and the real buffer size absorbs it.
    """

    sequence_number: int
    content: str
    byte_count: int

    @classmethod
    def create(cls, sequence_number: int, content: str) -> "QueuedLine":
        return cls(sequence_number, content, len(content) + 1)

    @property
    def wire_text(self) -> str:
        return f"N{self.sequence_number}{self.content}"


@dataclass(frozen=True)
class JobProgress:
    total_lines: int = 0
    sent_lines: int = 0
    completed_lines: int = 0
    bytes_in_flight: int = 0
    percent_complete: float = 0.0
    current_line: str = ""


# ============================================================================
# FIRMWARE RESPONSES
# ============================================================================

class ResponseKind(Enum):
    ACK = "ack"
    ERROR = "error"
    STATUS = "status"
    SETTING = "setting"
    FEEDBACK = "feedback"
    ALARM = "alarm"
    PROBE = "probe"
    WORK_OFFSET = "work_offset"
    STARTUP = "startup"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Ack:
    line_number: int | None = None
    kind: ResponseKind = field(default=ResponseKind.ACK, init=False)


@dataclass(frozen=True)
class ErrorResponse:
    code: int
    message: str
    kind: ResponseKind = field(default=ResponseKind.ERROR, init=False)


@dataclass(frozen=True)
class StatusReport:
    """Fields of one ``<...>`` report; ``None`` means the field was absent."""

    state: MachineState
    raw: str = ""
    machine_position: Position4 | None = None
    work_position: Position4 | None = None
    work_coordinate_offset: Position4 | None = None
    feed_rate: int | None = None
    spindle_speed: int | None = None
    line_number: int | None = None
    planner_blocks_available: int | None = None
    buffer_available: int | None = None
    pins: str | None = None
    overrides: Overrides | None = None
    kind: ResponseKind = field(default=ResponseKind.STATUS, init=False)


@dataclass(frozen=True)
class Setting:
    id: int
    value: float
    description: str | None = None
    kind: ResponseKind = field(default=ResponseKind.SETTING, init=False)


@dataclass(frozen=True)
class Feedback:
    category: str
    text: str
    kind: ResponseKind = field(default=ResponseKind.FEEDBACK, init=False)


@dataclass(frozen=True)
class AlarmResponse:
    code: int
    message: str
    kind: ResponseKind = field(default=ResponseKind.ALARM, init=False)


@dataclass(frozen=True)
class ProbeResult:
    position: Position4
    success: bool
    kind: ResponseKind = field(default=ResponseKind.PROBE, init=False)


@dataclass(frozen=True)
class WorkOffset:
    label: str
    position: Position4
    kind: ResponseKind = field(default=ResponseKind.WORK_OFFSET, init=False)


@dataclass(frozen=True)
class Startup:
    version: str
    firmware: str = "Grbl"
    kind: ResponseKind = field(default=ResponseKind.STARTUP, init=False)


@dataclass(frozen=True)
class Unknown:
    raw: str
    kind: ResponseKind = field(default=ResponseKind.UNKNOWN, init=False)


GrblResponse: TypeAlias = Union[
    Ack,
    ErrorResponse,
    StatusReport,
    Setting,
    Feedback,
    AlarmResponse,
    ProbeResult,
    WorkOffset,
    Startup,
    Unknown,
]

# (job_token, sequence_number) for a job line, None for a single command.
AckLedgerEntry: TypeAlias = tuple[int, int] | None


class StreamSessionState:
    event_q: queue.Queue[tuple[Any, ...]]

    _transport: Any
    _connection_state: ConnectionState
    _ready: bool

    _job_state: JobState
    _job_token: int
    _job_queue: deque[QueuedLine]
    _total_lines: int
    _sent_lines: int
    _current_line: str
    _progress: JobProgress
    _budget: Any
    _ack_ledger: deque[AckLedgerEntry]
    _stop_requested: bool
    _stopping: bool

    _stream_lock: asyncio.Lock
    _write_lock: asyncio.Lock
    _ack_event: asyncio.Event
    _resume_event: asyncio.Event

    _dispatch_task: asyncio.Task[None] | None
    _listener_task: asyncio.Task[None] | None
    _status_task: asyncio.Task[None] | None
    _disconnect_task: asyncio.Task[None] | None

    _status_model: Any
    _poll_status: bool
    _status_poll_interval: float
    _status_query_failures: int
    _status_query_failure_limit: int
    _status_query_backoff_base: float
    _status_query_backoff_max: float
    _dispatch_backoff: float
    _stop_grace_delay: float

    _ok_log_interval: float
    _last_ok_log_ts: float
    _ok_log_count: int
    _status_log_interval: float
    _last_status_log_ts: float

    _jog_feed: float
    _probe_feed: float
    _probe_distance: float
    _default_wcs: int

    @property
    def is_connected(self) -> bool:
        raise NotImplementedError

    def _emit(self, *event: Any) -> None:
        raise NotImplementedError

    def _signal_disconnect(self, reason: str | None = None) -> None:
        raise NotImplementedError

    def _set_job_state(self, state: JobState) -> None:
        raise NotImplementedError

    def _update_progress(self) -> None:
        raise NotImplementedError

    async def _write_line(self, text: str, entry: AckLedgerEntry) -> bool:
        raise NotImplementedError

    async def _write_realtime(self, command: bytes) -> None:
        raise NotImplementedError

    async def _abort_job(self, message: str, *, clear_pending: bool = False) -> None:
        raise NotImplementedError

    async def _handle_ack(self, line_number: int | None) -> None:
        raise NotImplementedError

    async def _handle_error(self, response: ErrorResponse, raw: str) -> None:
        raise NotImplementedError

    async def _handle_controller_reset(self) -> None:
        raise NotImplementedError

    async def _handle_alarm(self, response: AlarmResponse, raw: str) -> None:
        raise NotImplementedError

    async def _handle_rx_line(self, line: str) -> None:
        raise NotImplementedError
