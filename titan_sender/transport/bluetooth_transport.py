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

"""Bluetooth Classic transport over an RFCOMM socket.

Serial Port Profile modules (HC-05, ESP32 SPP) expose the Serial Port
service (UUID 00001101-0000-1000-8000-00805F9B34FB) on an RFCOMM channel,
almost always channel 1. The socket is handed to asyncio streams once
connected.
"""

from __future__ import annotations

import asyncio
import logging
import socket

from ..utils.constants import BLUETOOTH_RFCOMM_CHANNEL, TCP_CONNECT_TIMEOUT
from ..utils.exceptions import InvalidParameterError, TransportConnectError
from .base import StreamTransport

logger = logging.getLogger(__name__)


def bluetooth_supported() -> bool:
    return hasattr(socket, "AF_BLUETOOTH") and hasattr(socket, "BTPROTO_RFCOMM")


class BluetoothTransport(StreamTransport):
    def __init__(
        self,
        address: str,
        channel: int = BLUETOOTH_RFCOMM_CHANNEL,
        connect_timeout: float = TCP_CONNECT_TIMEOUT,
    ):
        if not address:
            raise InvalidParameterError("address", address, "must be a device address")
        super().__init__(address)
        self.address = address
        self.channel = int(channel)
        self.connect_timeout = connect_timeout

    async def _open(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if not bluetooth_supported():
            raise TransportConnectError(
                "Bluetooth RFCOMM sockets are not available on this platform"
            )
        sock = socket.socket(socket.AF_BLUETOOTH, socket.SOCK_STREAM, socket.BTPROTO_RFCOMM)
        sock.setblocking(False)
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.sock_connect(sock, (self.address, self.channel)),
                timeout=self.connect_timeout,
            )
        except BaseException:
            sock.close()
            raise
        logger.info(f"RFCOMM link to {self.address} channel {self.channel} open")
        return await asyncio.open_connection(sock=sock)
