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

import asyncio
import logging
import time
from typing import Any

from titan_sender.types import (
    AlarmResponse,
    MachineState,
    MachineStatus,
    ResponseKind,
    StreamSessionState,
)

from .machine_status import MachineStatusModel
from .response_parser import parse_response
from .utils.constants import (
    RT_STATUS,
    STATUS_QUERY_FAILURE_LIMIT_DEFAULT,
    STATUS_QUERY_FAILURE_LIMIT_MAX,
    STATUS_QUERY_FAILURE_LIMIT_MIN,
)
from .utils.exceptions import TransportError
from .utils.grbl_errors import annotate_grbl_alarm, format_alarm
from .utils.validation import validate_interval

logger = logging.getLogger(__name__)


class StreamSessionStatusMixin(StreamSessionState):
    @property
    def status(self) -> MachineStatus:
        """Latest merged machine status."""
        return self._status_model.status

    @property
    def machine(self) -> MachineStatusModel:
        return self._status_model

    @property
    def ready(self) -> bool:
        return self._ready

    def set_status_poll_interval(self, interval: float) -> None:
        """Set status polling interval.

        Args:
            interval: Polling interval in seconds

        Raises:
            InvalidParameterError: If interval is invalid
        """
        self._status_poll_interval = validate_interval(interval)
        logger.debug(f"Status poll interval set to {self._status_poll_interval}s")

    def set_status_query_failure_limit(self, limit: int) -> None:
        """Set the number of consecutive status failures before disconnect.

        Args:
            limit: Failure limit, clamped to 1..10
        """
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            limit = STATUS_QUERY_FAILURE_LIMIT_DEFAULT
        limit = max(STATUS_QUERY_FAILURE_LIMIT_MIN, min(STATUS_QUERY_FAILURE_LIMIT_MAX, limit))
        self._status_query_failure_limit = limit
        logger.debug(f"Status query failure limit set to {limit}")

    def _mark_ready(self) -> None:
        if not self._ready:
            self._ready = True
            self._emit("ready", True)
            logger.info("Controller ready")

    def _emit(self, *event: Any) -> None:
        """Put an event on the consumer queue, logging instead of raising."""
        try:
            self.event_q.put(event)
        except Exception as e:
            logger.error(f"Failed to queue {event[0] if event else 'event'}: {e}")

    # ========================================================================
    # RX LOG THROTTLING
    # ========================================================================

    def _status_log_due(self, now: float) -> bool:
        if (now - self._last_status_log_ts) >= self._status_log_interval:
            self._last_status_log_ts = now
            return True
        return False

    def _note_ok_log(self, now: float) -> str | None:
        count = self._ok_log_count + 1
        if self._last_ok_log_ts <= 0:
            self._last_ok_log_ts = now
            self._ok_log_count = count
            return None
        if (now - self._last_ok_log_ts) >= self._ok_log_interval:
            self._ok_log_count = 0
            self._last_ok_log_ts = now
            return f"OK x{count}"
        self._ok_log_count = count
        return None

    def _flush_ok_log(self, now: float) -> str | None:
        count = self._ok_log_count
        if count <= 0:
            return None
        if self._last_ok_log_ts <= 0:
            self._last_ok_log_ts = now
            return None
        if (now - self._last_ok_log_ts) >= self._ok_log_interval:
            self._ok_log_count = 0
            self._last_ok_log_ts = now
            return f"OK x{count}"
        return None

    def _log_rx_line(self, line: str, kind: ResponseKind, now: float) -> None:
        if kind == ResponseKind.ACK:
            summary = self._note_ok_log(now)
            if summary:
                self._emit("log_rx", summary)
            return
        summary = self._flush_ok_log(now)
        if summary:
            self._emit("log_rx", summary)
        if kind != ResponseKind.STATUS or self._status_log_due(now):
            self._emit("log_rx", line)

    # ========================================================================
    # RESPONSE HANDLING
    # ========================================================================

    async def _handle_rx_line(self, line: str) -> None:
        """Handle one line received from the controller.

        Args:
            line: Line received from GRBL, terminator removed
        """
        response = parse_response(line)
        kind = response.kind
        self._log_rx_line(line, kind, time.monotonic())

        if kind == ResponseKind.ACK:
            await self._handle_ack(response.line_number)
        elif kind == ResponseKind.ERROR:
            await self._handle_error(response, line)
        elif kind == ResponseKind.STATUS:
            self._mark_ready()
            self._status_model.apply(response)
            self._emit("status", self._status_model.status)
            if response.state == MachineState.ALARM and self._job_state.is_active:
                await self._abort_job("alarm", clear_pending=True)
        elif kind == ResponseKind.ALARM:
            self._status_model.apply(response)
            await self._handle_alarm(response, line)
        elif kind == ResponseKind.STARTUP:
            self._status_model.apply(response)
            logger.info(f"Controller banner: {response.firmware} {response.version}".rstrip())
            await self._handle_controller_reset()
            self._mark_ready()
        elif kind == ResponseKind.SETTING:
            self._status_model.apply(response)
            self._emit("setting", response.id, response.value)
        elif kind == ResponseKind.PROBE:
            self._status_model.apply(response)
            self._emit("probe", response)
        elif kind == ResponseKind.WORK_OFFSET:
            if self._status_model.apply(response):
                self._emit("status", self._status_model.status)
            self._emit("offset", response.label, response.position)
        elif kind == ResponseKind.FEEDBACK:
            self._status_model.apply(response)
            text = response.text.lower()
            if response.category == "MSG" and "reset to continue" in text:
                await self._abort_job("alarm", clear_pending=True)
        else:
            logger.debug(f"Unrecognised line: {line!r}")

    async def _handle_alarm(self, response: AlarmResponse, raw: str) -> None:
        message = format_alarm(response.code, response.message)
        logger.error(f"GRBL alarm: {annotate_grbl_alarm(raw)}")
        self._emit("alarm", message)
        self._emit("log", f"[alarm] {message}")
        if self._job_state.is_active and not self._stopping:
            await self._abort_job("alarm", clear_pending=True)
        else:
            # Firmware discards its buffer on alarm; nothing in flight will be answered.
            async with self._stream_lock:
                self._budget.clear()
                self._ack_ledger.clear()
            self._ack_event.set()

    # ========================================================================
    # STATUS POLLING
    # ========================================================================

    async def _status_loop(self) -> None:
        """Status polling task - periodically requests status."""
        logger.debug("Status task started")
        try:
            while self.is_connected:
                try:
                    await self._write_realtime(RT_STATUS)
                    self._status_query_failures = 0
                except TransportError as e:
                    self._status_query_failures += 1
                    logger.error(f"Status query error: {e}")
                    self._emit(
                        "log",
                        f"[status] Query failed "
                        f"({self._status_query_failures}/{self._status_query_failure_limit})",
                    )
                    if self._status_query_failures >= self._status_query_failure_limit:
                        self._signal_disconnect(f"Status query error: {e}")
                        return
                    await asyncio.sleep(
                        min(
                            self._status_query_backoff_max,
                            self._status_query_backoff_base * self._status_query_failures,
                        )
                    )
                    continue
                await asyncio.sleep(self._status_poll_interval)
        finally:
            logger.debug("Status task stopped")
