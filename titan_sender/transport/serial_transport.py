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

"""USB serial transport (pyserial + pyserial-asyncio)."""

from __future__ import annotations

import asyncio
import logging

import serial
import serial_asyncio
from serial.tools import list_ports

from ..utils.constants import BAUD_DEFAULT, SERIAL_CONNECT_DELAY
from ..utils.validation import validate_baud_rate, validate_port_name
from .base import StreamTransport

logger = logging.getLogger(__name__)


def available_ports() -> list[str]:
    """Get list of available serial ports.

    Returns:
        List of port device names
    """
    return [p.device for p in list_ports.comports()]


class SerialTransport(StreamTransport):
    """GRBL over a USB CDC/serial adapter, 8N1."""

    def __init__(
        self,
        port: str,
        baud: int = BAUD_DEFAULT,
        connect_delay: float = SERIAL_CONNECT_DELAY,
    ):
        super().__init__(validate_port_name(port))
        self.port = self.device_name
        self.baud = validate_baud_rate(baud)
        self.connect_delay = connect_delay

    async def _open(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        reader, writer = await serial_asyncio.open_serial_connection(
            url=self.port,
            baudrate=self.baud,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
        )
        # Boards that reset on DTR need a moment before they accept input.
        if self.connect_delay > 0:
            await asyncio.sleep(self.connect_delay)
        logger.info(f"Opened {self.port} at {self.baud} baud")
        return reader, writer
