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

import logging
from typing import TYPE_CHECKING

from titan_sender.types import JobStateKind, MachineState, StreamSessionState

from .utils.constants import (
    CONTINUOUS_JOG_DISTANCE,
    RT_COOLANT_FLOOD,
    RT_COOLANT_MIST,
    RT_FO_MINUS_10,
    RT_FO_PLUS_10,
    RT_FO_RESET,
    RT_HOLD,
    RT_JOG_CANCEL,
    RT_RESET,
    RT_RESUME,
    RT_RO_25,
    RT_RO_50,
    RT_RO_RESET,
    RT_SO_MINUS_10,
    RT_SO_PLUS_10,
    RT_SO_RESET,
    RT_SPINDLE_STOP,
    RT_STATUS,
    OVERRIDE_STEP,
    WCS_CODES,
)
from .utils.exceptions import InvalidParameterError, NotConnected
from .utils.validation import (
    validate_axis,
    validate_distance,
    validate_feed_rate,
    validate_override_percent,
    validate_rapid_override,
    validate_wcs_index,
)

logger = logging.getLogger(__name__)

_RAPID_OVERRIDE_BYTES = {100: RT_RO_RESET, 50: RT_RO_50, 25: RT_RO_25}


def format_number(value: float) -> str:
    """Compact G-code number: ``10`` not ``10.0000``, ``-2.5`` not ``-2.5000``."""
    text = f"{float(value):.4f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


class StreamSessionCommandMixin(StreamSessionState):
    if TYPE_CHECKING:
        async def pause_job(self) -> bool: ...
        async def resume_job(self) -> bool: ...
        async def stop_job(self) -> None: ...

    async def send_command(self, command: str) -> None:
        """Send a single line immediately, outside the job queue.

        The line bypasses the buffer budget but shares the write lock with
        job lines, and its ``ok``/``error`` is matched through the
        acknowledgement ledger so it cannot be mistaken for a job line's.

        Args:
            command: G-code or GRBL system command (no terminator)

        Raises:
            InvalidParameterError: If the command is empty or multi-line
            NotConnected: If not connected
            TransportWriteError: If the write fails
        """
        command = (command or "").strip()
        if not command:
            raise InvalidParameterError("command", command, "must not be empty")
        if "\n" in command or "\r" in command:
            raise InvalidParameterError("command", command, "must be a single line")
        if not self.is_connected:
            raise NotConnected("Cannot send command - not connected")
        await self._write_line(command, None)
        logger.debug(f"Manual command sent: {command}")

    async def send_realtime(self, command: bytes) -> None:
        """Send a single real-time byte; it is never queued or acknowledged."""
        if not isinstance(command, (bytes, bytearray)) or len(command) != 1:
            raise InvalidParameterError("command", command, "must be a single byte")
        if not self.is_connected:
            raise NotConnected("Cannot send real-time command - not connected")
        await self._write_realtime(bytes(command))

    # ========================================================================
    # MOTION
    # ========================================================================

    async def jog(self, axis: str, distance: float, feed: float | None = None) -> None:
        """Execute an incremental single-axis jog move.

        Args:
            axis: X, Y, Z or A
            distance: Signed distance in millimetres
            feed: Feed rate in mm/min; the configured jog feed when omitted

        Raises:
            InvalidParameterError: If parameters are invalid
            NotConnected: If not connected
            StateViolation: Unless the machine is Idle or jogging
        """
        axis = validate_axis(axis)
        distance = validate_distance(distance)
        feed = validate_feed_rate(self._jog_feed if feed is None else feed)
        if not self.is_connected:
            raise NotConnected("Cannot jog - not connected")
        self._status_model.require_state((MachineState.IDLE, MachineState.JOG), "jog")
        await self.send_command(
            f"$J=G91 G21 {axis}{format_number(distance)} F{format_number(feed)}"
        )

    async def jog_continuous(self, axis: str, direction: float, feed: float | None = None) -> None:
        """Start a long jog in one direction, to be ended with ``jog_cancel``.

        Args:
            axis: X, Y, Z or A
            direction: Any positive or negative number; only its sign is used
            feed: Feed rate in mm/min; the configured jog feed when omitted
        """
        try:
            direction = float(direction)
        except (TypeError, ValueError):
            raise InvalidParameterError("direction", direction, "must be numeric")
        if direction == 0:
            raise InvalidParameterError("direction", direction, "must be positive or negative")
        distance = CONTINUOUS_JOG_DISTANCE if direction > 0 else -CONTINUOUS_JOG_DISTANCE
        await self.jog(axis, distance, feed)

    async def jog_cancel(self) -> None:
        """Cancel active jog command."""
        await self.send_realtime(RT_JOG_CANCEL)

    async def home(self) -> None:
        """Send home command ($H) to run homing cycle."""
        if not self.is_connected:
            raise NotConnected("Cannot home - not connected")
        self._status_model.require_state((MachineState.IDLE,), "home")
        await self.send_command("$H")

    async def unlock(self) -> None:
        """Send unlock command ($X) to clear alarm state."""
        await self.send_command("$X")

    async def probe(
        self,
        axis: str = "Z",
        distance: float | None = None,
        feed: float | None = None,
    ) -> None:
        """Probe toward the workpiece with ``G38.2``.

        The result arrives later as a ``("probe", ProbeResult)`` event.
        """
        axis = validate_axis(axis)
        distance = validate_distance(self._probe_distance if distance is None else distance)
        feed = validate_feed_rate(self._probe_feed if feed is None else feed)
        if not self.is_connected:
            raise NotConnected("Cannot probe - not connected")
        self._status_model.require_state((MachineState.IDLE,), "probe")
        await self.send_command(f"G38.2 {axis}{format_number(distance)} F{format_number(feed)}")

    # ========================================================================
    # WORK COORDINATES
    # ========================================================================

    async def zero_work_position(self, axis: str | None = None) -> None:
        """Zero one axis, or X/Y/Z together, in the active work coordinate system."""
        active = self._status_model.active_wcs
        wcs = validate_wcs_index(self._default_wcs if active is None else active)
        if axis is None:
            words = "X0 Y0 Z0"
        else:
            words = f"{validate_axis(axis)}0"
        await self.send_command(f"G10 L20 P{wcs + 1} {words}")

    async def select_work_coordinate_system(self, index: int) -> None:
        """Switch to G54..G59 (index 0..5) and refresh the parser state."""
        index = validate_wcs_index(index)
        await self.send_command(WCS_CODES[index])
        await self.request_parser_state()

    # ========================================================================
    # OVERRIDES
    # ========================================================================

    async def set_feed_override(self, percent: int) -> None:
        await self._apply_override(percent, RT_FO_RESET, RT_FO_PLUS_10, RT_FO_MINUS_10)

    async def set_spindle_override(self, percent: int) -> None:
        await self._apply_override(percent, RT_SO_RESET, RT_SO_PLUS_10, RT_SO_MINUS_10)

    async def set_rapid_override(self, percent: int) -> None:
        """Rapid override only has three levels: 100, 50 and 25 percent."""
        percent = validate_rapid_override(percent)
        await self.send_realtime(_RAPID_OVERRIDE_BYTES[percent])

    async def _apply_override(
        self, percent: int, reset: bytes, plus_10: bytes, minus_10: bytes
    ) -> None:
        # GRBL has no absolute override command: reset to 100%, then step.
        percent = validate_override_percent(percent)
        steps = int((percent - 100) / OVERRIDE_STEP)
        await self.send_realtime(reset)
        step_byte = plus_10 if steps > 0 else minus_10
        for _ in range(abs(steps)):
            await self.send_realtime(step_byte)
        logger.debug(f"Override set to {100 + steps * OVERRIDE_STEP}%")

    # ========================================================================
    # ACCESSORIES / MACHINE CONTROL
    # ========================================================================

    async def spindle_stop(self) -> None:
        await self.send_realtime(RT_SPINDLE_STOP)

    async def toggle_flood(self) -> None:
        await self.send_realtime(RT_COOLANT_FLOOD)

    async def toggle_mist(self) -> None:
        await self.send_realtime(RT_COOLANT_MIST)

    async def feed_hold(self) -> None:
        """Feed hold; pauses the job when one is sending."""
        if self._job_state.kind == JobStateKind.SENDING:
            await self.pause_job()
            return
        await self.send_realtime(RT_HOLD)

    async def cycle_start(self) -> None:
        """Cycle start; resumes the job when one is paused."""
        if self._job_state.kind == JobStateKind.PAUSED:
            await self.resume_job()
            return
        await self.send_realtime(RT_RESUME)

    async def soft_reset(self) -> None:
        """Send soft reset (Ctrl-X).

        An active job is stopped through ``stop_job`` so the queue, budget
        and ledger are cleared along with it.
        """
        if self._job_state.is_active or self._budget.pending or self._job_queue:
            await self.stop_job()
        else:
            await self.send_realtime(RT_RESET)
            async with self._stream_lock:
                self._ack_ledger.clear()
        if self._ready:
            self._ready = False
            self._emit("ready", False)
        self._emit("log", "[reset] Soft reset sent")

    # ========================================================================
    # QUERIES
    # ========================================================================

    async def request_status(self) -> None:
        await self.send_realtime(RT_STATUS)

    async def request_settings(self) -> None:
        """Dump firmware settings ($$); each arrives as a ``setting`` event."""
        await self.send_command("$$")

    async def set_setting(self, setting_id: int, value: float) -> None:
        try:
            setting_id = int(setting_id)
        except (TypeError, ValueError) as exc:
            raise InvalidParameterError("setting_id", setting_id, "must be an integer") from exc
        if setting_id < 0:
            raise InvalidParameterError("setting_id", setting_id, "must not be negative")
        try:
            value = float(value)
        except (TypeError, ValueError) as exc:
            raise InvalidParameterError("value", value, "must be a number") from exc
        await self.send_command(f"${setting_id}={format_number(value)}")

    async def request_parser_state(self) -> None:
        await self.send_command("$G")
