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

"""Character-counting job streaming for the stream session.

Every line written to the wire, job line or single command, is appended
to the acknowledgement ledger in write order. GRBL answers ``ok``/``error``
strictly in receive order, so the head of the ledger always names the
line a plain acknowledgement belongs to. Job lines are then released
from the buffer budget; single commands are consumed without touching it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Iterable

from titan_sender.types import (
    ErrorResponse,
    JobProgress,
    JobState,
    JobStateKind,
    MachineState,
    QueuedLine,
    StreamSessionState,
)

from .gcode_source import prepare_job_lines
from .utils.constants import PAUSE_POLL_INTERVAL, RT_HOLD, RT_RESET, RT_RESUME, TASK_CANCEL_TIMEOUT
from .utils.exceptions import (
    AlreadyStreaming,
    GcodeValidationError,
    NotConnected,
    TransportError,
)
from .utils.grbl_errors import annotate_grbl_error, format_error

logger = logging.getLogger(__name__)


class StreamSessionStreamingMixin(StreamSessionState):
    @property
    def job_state(self) -> JobState:
        return self._job_state

    @property
    def progress(self) -> JobProgress:
        return self._progress

    @property
    def bytes_in_flight(self) -> int:
        return self._budget.bytes_in_flight

    @property
    def pending_count(self) -> int:
        return len(self._budget.pending)

    @property
    def queued_count(self) -> int:
        return len(self._job_queue)

    @property
    def awaiting_ack(self) -> int:
        """Lines written to the wire, job or single command, not yet answered."""
        return len(self._ack_ledger)

    def is_streaming(self) -> bool:
        """True while a job is sending or paused."""
        return self._job_state.is_active

    # ========================================================================
    # JOB LIFECYCLE
    # ========================================================================

    async def submit_job(self, lines: Iterable[str]) -> int:
        """Queue a program and start streaming it.

        Lines are trimmed; blank lines and lines starting with ``;`` or
        ``(`` are dropped. Survivors are numbered from 1.

        Args:
            lines: Program text, one G-code line per item

        Returns:
            Number of lines queued

        Raises:
            AlreadyStreaming: If a job is sending or paused
            NotConnected: If the transport is down
            GcodeValidationError: If a line can never fit the buffer budget
        """
        if self._job_state.is_active:
            raise AlreadyStreaming("A job is already streaming")
        if not self.is_connected:
            raise NotConnected("Cannot start job - not connected")

        queued = prepare_job_lines(lines)
        for line in queued:
            if line.byte_count > self._budget.safe_capacity:
                raise GcodeValidationError(
                    f"Line {line.sequence_number} needs {line.byte_count} bytes; "
                    f"the buffer budget is {self._budget.safe_capacity}",
                    line_number=line.sequence_number,
                    line_content=line.content,
                )

        await self._cancel_dispatch()
        async with self._stream_lock:
            self._job_token += 1
            self._budget.clear()
            self._job_queue = deque(queued)
            self._total_lines = len(queued)
            self._sent_lines = 0
            self._current_line = ""
            self._stop_requested = False
            self._update_progress()
        self._ack_event.clear()
        self._resume_event.set()
        self._set_job_state(JobState.sending())

        logger.info(f"Job started: {len(queued)} lines")
        self._emit("log", f"[stream] Job started ({len(queued)} lines)")
        self._dispatch_task = asyncio.create_task(
            self._dispatch_loop(self._job_token), name="titan-dispatch"
        )
        return len(queued)

    async def wait_for_job(self) -> JobState:
        """Wait until the current dispatch task ends and return the job state."""
        task = self._dispatch_task
        if task is not None:
            await asyncio.wait({task})
        return self._job_state

    async def run_job(self, lines: Iterable[str]) -> JobState:
        """Submit a program and wait for it to complete, fail or be stopped."""
        await self.submit_job(lines)
        return await self.wait_for_job()

    async def pause_job(self) -> bool:
        """Pause active stream (feed hold).

        Returns:
            True if a sending job was paused
        """
        if self._job_state.kind != JobStateKind.SENDING:
            logger.debug(f"Pause ignored in state {self._job_state}")
            return False
        self._resume_event.clear()
        self._set_job_state(JobState.paused())
        try:
            await self._write_realtime(RT_HOLD)
        except TransportError as exc:
            logger.error(f"Pause failed: {exc}")
            self._emit("log", f"[pause failed] {exc}")
        logger.info("Stream paused")
        return True

    async def resume_job(self) -> bool:
        """Resume paused stream (cycle start).

        Returns:
            True if a paused job was resumed
        """
        if self._job_state.kind != JobStateKind.PAUSED:
            logger.debug(f"Resume ignored in state {self._job_state}")
            return False
        try:
            await self._write_realtime(RT_RESUME)
        except TransportError as exc:
            logger.error(f"Resume failed: {exc}")
            self._emit("log", f"[resume failed] {exc}")
            return False
        self._set_job_state(JobState.sending())
        self._resume_event.set()
        self._ack_event.set()
        logger.info("Stream resumed")
        return True

    async def stop_job(self) -> None:
        """Stop the job: soft reset, grace delay, then clear everything.

        Safe in every job state and when called repeatedly. The soft reset
        is only sent when something is queued or in flight.
        """
        outstanding = (
            self._job_state.is_active or bool(self._budget.pending) or bool(self._job_queue)
        )
        self._stop_requested = True
        self._stopping = True
        self._resume_event.set()
        self._ack_event.set()
        try:
            if outstanding and self.is_connected:
                try:
                    await self._write_realtime(RT_RESET)
                except TransportError as exc:
                    logger.error(f"Reset failed: {exc}")
                    self._emit("log", f"[reset failed] {exc}")
                await asyncio.sleep(self._stop_grace_delay)
            await self._cancel_dispatch()
            async with self._stream_lock:
                self._job_token += 1
                self._job_queue.clear()
                self._budget.clear()
                self._ack_ledger.clear()
                self._update_progress()
            if self._job_state.kind != JobStateKind.IDLE:
                self._set_job_state(JobState.idle())
        finally:
            self._stopping = False
        if outstanding:
            logger.info("Stream stopped")
            self._emit("log", "[stream] Stopped")

    # ========================================================================
    # DISPATCH
    # ========================================================================

    async def _dispatch_loop(self, token: int) -> None:
        logger.debug("Dispatch task started")
        try:
            while token == self._job_token and not self._stop_requested:
                if self._status_model.state == MachineState.ALARM:
                    await self._abort_job("alarm", clear_pending=True)
                    return
                kind = self._job_state.kind
                if kind == JobStateKind.PAUSED:
                    await self._wait_event(self._resume_event, PAUSE_POLL_INTERVAL)
                    continue
                if kind != JobStateKind.SENDING:
                    return

                line: QueuedLine | None = None
                async with self._stream_lock:
                    if not self._job_queue and not self._budget.pending:
                        self._set_job_state(JobState.completed())
                        logger.info(f"Job completed ({self._total_lines} lines)")
                        self._emit("log", f"[stream] Job completed ({self._total_lines} lines)")
                        return
                    head = self._job_queue[0] if self._job_queue else None
                    if head is not None and self._budget.fits(head.byte_count):
                        line = self._job_queue.popleft()
                        self._budget.reserve(line)
                        self._sent_lines += 1
                        self._current_line = line.content
                        self._update_progress()
                    else:
                        self._ack_event.clear()

                if line is not None:
                    if not await self._write_line(line.wire_text, (token, line.sequence_number)):
                        await self._unreserve(token, line)
                    continue
                # Buffer full or draining: sleep until an ack, bounded by the backoff.
                await self._wait_event(self._ack_event, self._dispatch_backoff)
        except TransportError as exc:
            logger.error(f"Stream write failed: {exc}")
            if self._job_state.is_active:
                message = f"Transport error: {exc}"
                self._set_job_state(JobState.error(message))
                self._emit("stream_error", message)
            self._signal_disconnect(f"Write failed: {exc}")
        finally:
            logger.debug("Dispatch task stopped")

    @staticmethod
    async def _wait_event(event: asyncio.Event, timeout: float) -> None:
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def _unreserve(self, token: int, line: QueuedLine) -> None:
        """Give back the budget of a line that was reserved but never written.

        A paused job gets the line back at the head of its queue so resume
        sends it next; a failed job just forgets it.
        """
        async with self._stream_lock:
            if token != self._job_token:
                return
            if self._budget.release(line.sequence_number) is None:
                return
            self._sent_lines -= 1
            if self._job_state.kind == JobStateKind.PAUSED:
                self._job_queue.appendleft(line)
            self._update_progress()
        logger.debug(f"Line {line.sequence_number} held back ({self._job_state})")

    async def _cancel_dispatch(self) -> None:
        task = self._dispatch_task
        self._dispatch_task = None
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
        _, still_running = await asyncio.wait({task}, timeout=TASK_CANCEL_TIMEOUT)
        if still_running:
            logger.warning("Dispatch task did not terminate")

    async def _abort_job(self, message: str, *, clear_pending: bool = False) -> None:
        """Fail the active job; ``clear_pending`` when the firmware dropped its buffer."""
        if not self._job_state.is_active or self._stopping:
            return
        async with self._stream_lock:
            self._job_queue.clear()
            if clear_pending:
                self._job_token += 1
                self._budget.clear()
                self._ack_ledger.clear()
            self._update_progress()
        self._set_job_state(JobState.error(message))
        logger.error(f"Job aborted: {message}")
        self._emit("stream_error", message)
        self._emit("log", f"[stream error] {message}")
        self._resume_event.set()
        self._ack_event.set()

    # ========================================================================
    # ACKNOWLEDGEMENTS
    # ========================================================================

    async def _handle_ack(self, line_number: int | None) -> None:
        async with self._stream_lock:
            released = None
            if line_number is not None:
                released = self._budget.release(line_number)
                self._drop_ledger_entry(line_number)
            elif self._ack_ledger:
                entry = self._ack_ledger.popleft()
                if entry is not None and entry[0] == self._job_token:
                    released = self._budget.release(entry[1])
            else:
                logger.debug("ok with nothing outstanding")
            if released is not None:
                self._update_progress()
        self._ack_event.set()

    async def _handle_error(self, response: ErrorResponse, raw: str) -> None:
        text = format_error(response.code, response.message)
        failed_line: QueuedLine | None = None
        manual = False
        async with self._stream_lock:
            if self._ack_ledger:
                entry = self._ack_ledger.popleft()
                if entry is None:
                    manual = True
                elif entry[0] == self._job_token:
                    failed_line = self._budget.release(entry[1])
            elif self._budget.pending:
                failed_line = self._budget.release_oldest()
            else:
                manual = True
            if failed_line is not None:
                self._update_progress()
        self._ack_event.set()

        annotated = annotate_grbl_error(raw)
        if failed_line is not None and self._job_state.is_active:
            logger.error(f"GRBL error: {annotated} (line {failed_line.sequence_number})")
            self._set_job_state(JobState.error(text))
            detail = self._format_stream_error(text, failed_line)
            self._emit("stream_error", detail)
            self._emit("log", f"[stream error] {detail}")
        elif manual:
            logger.error(f"GRBL error: {annotated}")
            self._emit("manual_error", text)
        else:
            logger.warning(f"GRBL error for a line of a finished job: {annotated}")

    async def _handle_controller_reset(self) -> None:
        """The firmware restarted: its buffer and every pending line are gone."""
        was_active = self._job_state.is_active
        async with self._stream_lock:
            self._job_token += 1
            self._job_queue.clear()
            self._budget.clear()
            self._ack_ledger.clear()
            self._update_progress()
        if was_active and not self._stopping:
            self._set_job_state(JobState.error("Controller reset"))
            logger.warning("Controller reset during job")
            self._emit("stream_error", "Controller reset")
        self._resume_event.set()
        self._ack_event.set()

    def _drop_ledger_entry(self, sequence_number: int) -> None:
        target = (self._job_token, sequence_number)
        try:
            self._ack_ledger.remove(target)
        except ValueError:
            logger.debug(f"ok:{sequence_number} not in acknowledgement ledger")

    # ========================================================================
    # STATE / PROGRESS
    # ========================================================================

    def _set_job_state(self, state: JobState) -> None:
        if state == self._job_state:
            return
        self._job_state = state
        self._emit("job_state", state)

    def _update_progress(self) -> None:
        total = self._total_lines
        completed = self._sent_lines - len(self._budget.pending)
        self._progress = JobProgress(
            total_lines=total,
            sent_lines=self._sent_lines,
            completed_lines=completed,
            bytes_in_flight=self._budget.bytes_in_flight,
            percent_complete=(completed / total * 100.0) if total > 0 else 0.0,
            current_line=self._current_line,
        )
        self._emit("progress", self._progress)

    def _format_stream_error(self, message: str, line: QueuedLine) -> str:
        return f"{message} | line {line.sequence_number}: {line.content}"
