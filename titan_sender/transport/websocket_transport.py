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

"""WebSocket transport (FluidNC / ESP3D style web consoles)."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..utils.constants import (
    LINE_ENCODING,
    WEBSOCKET_CONNECT_TIMEOUT,
    WEBSOCKET_PING_INTERVAL,
)
from ..utils.exceptions import (
    InvalidParameterError,
    NotConnected,
    TransportConnectError,
    TransportReadError,
    TransportWriteError,
)
from .base import Transport

logger = logging.getLogger(__name__)


class WebSocketTransport(Transport):
    """Lines go out as text frames; real-time bytes as binary frames.

    Incoming frames may hold several lines or a partial one, so they are
    reassembled on ``\\n`` before being yielded.
    """

    def __init__(
        self,
        url: str,
        open_timeout: float = WEBSOCKET_CONNECT_TIMEOUT,
        ping_interval: float = WEBSOCKET_PING_INTERVAL,
    ):
        if not url or not url.startswith(("ws://", "wss://")):
            raise InvalidParameterError("url", url, "must start with ws:// or wss://")
        self.device_name = url
        self.url = url
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval
        self._ws: Any = None

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        if self._ws is not None:
            return
        try:
            self._ws = await websockets.connect(
                self.url,
                open_timeout=self.open_timeout,
                ping_interval=self.ping_interval,
            )
        except (OSError, TimeoutError, WebSocketException) as exc:
            self._ws = None
            raise TransportConnectError(f"Failed to connect to {self.url}: {exc}") from exc
        logger.info(f"Connected to {self.url}")

    async def disconnect(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as exc:
            logger.debug(f"Error while closing {self.url}: {exc!r}")
        logger.info(f"Disconnected from {self.url}")

    async def write(self, data: bytes) -> None:
        if self._ws is None:
            raise NotConnected(f"{self.url} is not connected")
        await self._send_frame(data)

    async def send(self, text: str) -> None:
        if self._ws is None:
            raise NotConnected(f"{self.url} is not connected")
        await self._send_frame(text + "\n")

    async def _send_frame(self, frame: str | bytes) -> None:
        try:
            await self._ws.send(frame)
        except (OSError, WebSocketException) as exc:
            raise TransportWriteError(f"Write to {self.url} failed: {exc}") from exc

    async def receive(self) -> AsyncIterator[str]:
        ws = self._ws
        if ws is None:
            raise NotConnected(f"{self.url} is not connected")
        partial = ""
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode(LINE_ENCODING, errors="replace")
                partial += message
                *lines, partial = partial.split("\n")
                for line in lines:
                    line = line.strip()
                    if line:
                        yield line
        except ConnectionClosed as exc:
            logger.info(f"WebSocket {self.url} closed: {exc}")
        except (OSError, WebSocketException) as exc:
            raise TransportReadError(f"Read from {self.url} failed: {exc}") from exc
        if partial.strip():
            yield partial.strip()
