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
import logging
import queue
from collections import deque
from typing import Any, Optional

from .buffer_budget import BufferBudget
from .machine_status import MachineStatusModel
from .stream_session_commands import StreamSessionCommandMixin
from .stream_session_connection import StreamSessionConnectionMixin
from .stream_session_status import StreamSessionStatusMixin
from .stream_session_streaming import StreamSessionStreamingMixin
from .transport.base import Transport
from .types import ConnectionState, JobProgress, JobState
from .utils.config import Settings
from .utils.constants import (
    DEFAULT_JOG_FEED,
    DEFAULT_PROBE_DISTANCE,
    DEFAULT_PROBE_FEED,
    DISPATCH_BACKOFF,
    RX_BUFFER_SAFE_CAPACITY,
    RX_BUFFER_SIZE,
    RX_OK_SUMMARY_INTERVAL,
    RX_STATUS_LOG_INTERVAL,
    STATUS_POLL_DEFAULT,
    STATUS_QUERY_BACKOFF_BASE,
    STATUS_QUERY_BACKOFF_MAX,
    STATUS_QUERY_FAILURE_LIMIT_DEFAULT,
    STOP_GRACE_DELAY,
)

logger = logging.getLogger(__name__)


class StreamSession(
    StreamSessionConnectionMixin,
    StreamSessionStreamingMixin,
    StreamSessionStatusMixin,
    StreamSessionCommandMixin,
):
    """Streams G-code to a GRBL controller over one transport.

    This class handles:
    - Connection and disconnection
    - Character-counting job streaming with pause / resume / stop
    - Status polling and response parsing
    - Real-time and single-line operator commands

    Must be created and used inside a running event loop. Events are
    published on ``event_q`` as tuples; see the README for the list.

    Example:
        async with StreamSession(SerialTransport("/dev/ttyUSB0")) as session:
            await session.connect()
            state = await session.run_job(lines)
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        event_q: Optional[queue.Queue] = None,
        *,
        settings: Optional[Settings] = None,
        poll_status: bool = True,
        safe_capacity: Optional[int] = None,
        firmware_buffer_size: Optional[int] = None,
        status_poll_interval: Optional[float] = None,
        status_query_failure_limit: Optional[int] = None,
        stop_grace_delay: Optional[float] = None,
        dispatch_backoff: float = DISPATCH_BACKOFF,
    ):
        """Initialize the session.

        Explicit keyword arguments win over ``settings``, which win over
        the built-in defaults.

        Args:
            transport: Link used by ``connect()`` when none is passed there
            event_q: Queue receiving event tuples; a new one when omitted
            settings: Loaded settings supplying engine defaults
            poll_status: Start the ``?`` status poller on connect
        """
        self.event_q = event_q if event_q is not None else queue.Queue()

        def pick(value: Any, key: str, default: Any) -> Any:
            if value is not None:
                return value
            if settings is not None:
                return settings.get(key, default)
            return default

        self._transport = transport
        self._connection_state = ConnectionState.disconnected()
        self._ready = False

        # Job state
        self._budget = BufferBudget(
            safe_capacity=int(pick(safe_capacity, "rx_buffer_safe_capacity", RX_BUFFER_SAFE_CAPACITY)),
            firmware_buffer_size=int(pick(firmware_buffer_size, "rx_buffer_size", RX_BUFFER_SIZE)),
        )
        self._job_state = JobState.idle()
        self._job_token = 0
        self._job_queue = deque()
        self._total_lines = 0
        self._sent_lines = 0
        self._current_line = ""
        self._progress = JobProgress()
        self._ack_ledger = deque()
        self._stop_requested = False
        self._stopping = False

        # Synchronization
        self._stream_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._ack_event = asyncio.Event()
        self._resume_event = asyncio.Event()
        self._resume_event.set()

        # Tasks
        self._dispatch_task = None
        self._listener_task = None
        self._status_task = None
        self._disconnect_task = None

        # Status polling
        self._status_model = MachineStatusModel()
        self._poll_status = poll_status
        self._status_poll_interval = STATUS_POLL_DEFAULT
        self._status_query_failures = 0
        self._status_query_failure_limit = STATUS_QUERY_FAILURE_LIMIT_DEFAULT
        self._status_query_backoff_base = STATUS_QUERY_BACKOFF_BASE
        self._status_query_backoff_max = STATUS_QUERY_BACKOFF_MAX
        self.set_status_poll_interval(pick(status_poll_interval, "status_poll_interval", STATUS_POLL_DEFAULT))
        self.set_status_query_failure_limit(
            pick(status_query_failure_limit, "status_query_failure_limit", STATUS_QUERY_FAILURE_LIMIT_DEFAULT)
        )
        self._dispatch_backoff = float(dispatch_backoff)
        self._stop_grace_delay = float(pick(stop_grace_delay, "stop_grace_delay", STOP_GRACE_DELAY))

        # RX log throttling
        self._ok_log_interval = RX_OK_SUMMARY_INTERVAL
        self._last_ok_log_ts = 0.0
        self._ok_log_count = 0
        self._status_log_interval = RX_STATUS_LOG_INTERVAL
        self._last_status_log_ts = 0.0

        # Operator defaults
        self._jog_feed = float(pick(None, "jog_feed", DEFAULT_JOG_FEED))
        self._probe_feed = float(pick(None, "probe_feed", DEFAULT_PROBE_FEED))
        self._probe_distance = float(pick(None, "probe_distance", DEFAULT_PROBE_DISTANCE))
        self._default_wcs = int(pick(None, "default_wcs", 0))

    # ========================================================================
    # CONTEXT MANAGER SUPPORT
    # ========================================================================

    async def __aenter__(self) -> "StreamSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Disconnect on exit; errors during cleanup are logged."""
        try:
            await self.disconnect()
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")
        return False
