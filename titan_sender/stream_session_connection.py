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

"""Connection management for the stream session."""

from __future__ import annotations

import asyncio
import logging
import traceback
from typing import TYPE_CHECKING

from titan_sender.types import (
    AckLedgerEntry,
    ConnectionState,
    JobState,
    JobStateKind,
    StreamSessionState,
)

from .transport.base import Transport
from .utils.constants import RT_STATUS, TASK_CANCEL_TIMEOUT
from .utils.exceptions import NotConnected, TransportError
from .utils.logging_config import SERIAL_LOGGER_NAME

logger = logging.getLogger(__name__)
serial_logger = logging.getLogger(SERIAL_LOGGER_NAME)


class StreamSessionConnectionMixin(StreamSessionState):
    """Connection lifecycle support for the stream session."""
    if TYPE_CHECKING:
        async def _listen_loop(self) -> None: ...
        async def _status_loop(self) -> None: ...

    @property
    def is_connected(self) -> bool:
        """True if a transport is attached and open."""
        return self._transport is not None and self._transport.is_connected

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def transport(self) -> Transport | None:
        return self._transport

    async def connect(self, transport: Transport | None = None) -> None:
        """Open a transport and start the listener and status poller.

        Any existing connection is torn down first; only one link is
        active at a time.

        Args:
            transport: Link to open; defaults to the one given at construction

        Raises:
            NotConnected: If no transport was supplied at all
            TransportConnectError: If the link cannot be opened
        """
        if transport is None:
            transport = self._transport
        if transport is None:
            raise NotConnected("No transport configured")

        if self._listener_task is not None or self.is_connected:
            await self.disconnect()

        self._transport = transport
        self._set_connection_state(ConnectionState.connecting(transport.device_name))
        try:
            await transport.connect()
        except TransportError as exc:
            logger.error(f"Connect to {transport.device_name} failed: {exc}")
            self._set_connection_state(ConnectionState.error(str(exc), transport.device_name))
            raise

        self._disconnect_task = None
        self._status_query_failures = 0
        self._ready = False
        self._status_model.reset()
        self._set_connection_state(ConnectionState.connected(transport.device_name))
        logger.info(f"Connected to {transport.device_name}")

        self._listener_task = asyncio.create_task(self._listen_loop(), name="titan-listener")
        if self._poll_status:
            self._status_task = asyncio.create_task(self._status_loop(), name="titan-status")

    async def disconnect(self) -> None:
        """Disconnect from the controller.

        Stops every background task and closes the transport. An active job
        ends ``Idle``. Idempotent.
        """
        pending = self._disconnect_task
        if pending is not None and not pending.done():
            await asyncio.wait({pending})
            return
        await self._teardown(None)

    async def wait_closed(self) -> None:
        """Wait for a disconnect triggered by a lost link to finish."""
        pending = self._disconnect_task
        if pending is not None:
            await asyncio.wait({pending})

    # ========================================================================
    # INTERNAL HELPERS
    # ========================================================================

    async def _teardown(self, reason: str | None) -> None:
        current = asyncio.current_task()
        was_active = self._job_state.is_active
        self._stop_requested = True
        self._resume_event.set()
        self._ack_event.set()

        tasks = [
            task
            for task in (self._dispatch_task, self._status_task, self._listener_task)
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            _, still_running = await asyncio.wait(tasks, timeout=TASK_CANCEL_TIMEOUT)
            for task in still_running:
                logger.warning(f"Task {task.get_name()} did not terminate")
        self._dispatch_task = None
        self._status_task = None
        self._listener_task = None

        async with self._stream_lock:
            self._job_token += 1
            self._job_queue.clear()
            self._budget.clear()
            self._ack_ledger.clear()
            self._update_progress()

        if was_active:
            # Requested disconnects end the job cleanly; a lost link is a failure.
            self._set_job_state(JobState.idle() if reason is None else JobState.error("Connection lost"))

        transport = self._transport
        if transport is not None:
            try:
                await transport.disconnect()
            except TransportError as exc:
                logger.error(f"Error closing {transport.device_name}: {exc}")

        self._status_query_failures = 0
        if self._ready:
            self._ready = False
            self._emit("ready", False)
        device = transport.device_name if transport is not None else None
        if reason:
            self._emit("log", f"[disconnect] {reason}")
            self._set_connection_state(ConnectionState.error(reason, device))
        else:
            self._set_connection_state(ConnectionState.disconnected())
        logger.info(f"Disconnected{f' ({reason})' if reason else ''}")

    def _signal_disconnect(self, reason: str | None = None) -> None:
        """Schedule a teardown after the link failed under a background task."""
        if self._disconnect_task is not None and not self._disconnect_task.done():
            return
        reason = reason or "Connection lost"
        logger.warning(f"Connection lost: {reason}")
        self._disconnect_task = asyncio.get_running_loop().create_task(
            self._teardown(reason), name="titan-disconnect"
        )

    def _set_connection_state(self, state: ConnectionState) -> None:
        self._connection_state = state
        self._emit("conn", state)

    def _emit_exception(self, context: str, exc: BaseException) -> None:
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self._emit("log", f"[session] {context}: {exc}")
        for ln in tb.splitlines():
            self._emit("log", ln)

    async def _listen_loop(self) -> None:
        """Read lines until EOF, feeding each one to the response handler."""
        logger.debug("Listener task started")
        transport = self._transport
        try:
            async for line in transport.receive():
                serial_logger.debug(f"RX {line}")
                try:
                    await self._handle_rx_line(line)
                except TransportError:
                    raise
                except Exception as exc:
                    logger.error(f"Failed to handle {line!r}: {exc}", exc_info=True)
                    self._emit_exception("RX handler error", exc)
        except TransportError as exc:
            logger.error(f"Receive error: {exc}")
            self._emit("log", f"[read error] {exc}")
            self._signal_disconnect(f"Receive error: {exc}")
            return
        finally:
            logger.debug("Listener task stopped")
        self._signal_disconnect("Connection closed by device")

    async def _write_line(self, text: str, entry: AckLedgerEntry) -> bool:
        """Write one line and record which acknowledgement it expects.

        Job lines (``entry`` set) are dropped if, while waiting for the write
        lock, their job was stopped, replaced, paused or failed.

        Returns:
            False if a job line was dropped instead of written

        Raises:
            NotConnected: If the transport is closed
            TransportWriteError: If the write fails
        """
        transport = self._transport
        if transport is None or not transport.is_connected:
            raise NotConnected("Not connected")
        async with self._write_lock:
            if entry is not None and (
                self._stop_requested
                or entry[0] != self._job_token
                or self._job_state.kind != JobStateKind.SENDING
            ):
                return False
            self._ack_ledger.append(entry)
            try:
                await transport.send(text)
            except TransportError:
                if self._ack_ledger and self._ack_ledger[-1] == entry:
                    self._ack_ledger.pop()
                raise
        serial_logger.debug(f"TX {text}")
        if entry is None:
            self._emit("log_tx", text)
        return True

    async def _write_realtime(self, command: bytes) -> None:
        transport = self._transport
        if transport is None or not transport.is_connected:
            raise NotConnected("Not connected")
        async with self._write_lock:
            await transport.write(command)
        if command != RT_STATUS:
            serial_logger.debug(f"TX RT 0x{command.hex()}")
