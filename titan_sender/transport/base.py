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

"""Transport contract shared by every link to the controller.

A transport carries newline-terminated ASCII lines to the firmware,
single real-time bytes, and yields decoded incoming lines. It knows
nothing about GRBL itself.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator

from ..utils.constants import LINE_ENCODING
from ..utils.exceptions import (
    NotConnected,
    TransportConnectError,
    TransportReadError,
    TransportWriteError,
)

logger = logging.getLogger(__name__)


def encode_line(text: str) -> bytes:
    return (text + "\n").encode(LINE_ENCODING, errors="replace")


def decode_line(raw: bytes) -> str:
    return raw.decode(LINE_ENCODING, errors="replace").strip()


class Transport(ABC):
    """One connection to a line-oriented controller.

    Single writer, single reader: the owning session serializes writes and
    runs exactly one ``receive`` iteration per connection.
    """

    device_name: str = ""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Open the link.

        Raises:
            TransportConnectError: If the link cannot be opened
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the link; safe to call when already closed."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write raw bytes (real-time commands) without a terminator.

        Raises:
            NotConnected: If the link is closed
            TransportWriteError: If the write fails
        """

    async def send(self, text: str) -> None:
        """Write one line, appending the ``\\n`` terminator."""
        await self.write(encode_line(text))

    @abstractmethod
    def receive(self) -> AsyncIterator[str]:
        """Yield decoded, trimmed, non-empty incoming lines until EOF.

        Raises:
            TransportReadError: If reading fails
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.device_name!r})"


class StreamTransport(Transport):
    """Transport over an ``asyncio`` reader/writer pair."""

    def __init__(self, device_name: str):
        self.device_name = device_name
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @abstractmethod
    async def _open(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        ...

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> None:
        if self.is_connected:
            return
        try:
            self._reader, self._writer = await self._open()
        except (OSError, asyncio.TimeoutError) as exc:
            self._reader = None
            self._writer = None
            raise TransportConnectError(f"Failed to connect to {self.device_name}: {exc}") from exc
        logger.info(f"Connected to {self.device_name}")

    async def disconnect(self) -> None:
        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as exc:
            logger.debug(f"Error while closing {self.device_name}: {exc!r}")
        logger.info(f"Disconnected from {self.device_name}")

    async def write(self, data: bytes) -> None:
        writer = self._writer
        if writer is None or writer.is_closing():
            raise NotConnected(f"{self.device_name} is not connected")
        try:
            writer.write(data)
            await writer.drain()
        except (OSError, RuntimeError) as exc:
            raise TransportWriteError(f"Write to {self.device_name} failed: {exc}") from exc

    async def receive(self) -> AsyncIterator[str]:
        reader = self._reader
        if reader is None:
            raise NotConnected(f"{self.device_name} is not connected")
        while True:
            try:
                raw = await reader.readline()
            except (OSError, ValueError, asyncio.IncompleteReadError) as exc:
                raise TransportReadError(f"Read from {self.device_name} failed: {exc}") from exc
            if not raw:
                return
            line = decode_line(raw)
            if line:
                yield line
