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

"""Raw TCP (telnet-style) line transport for networked controllers."""

from __future__ import annotations

import asyncio

from ..utils.constants import TCP_CONNECT_TIMEOUT, TCP_PORT_DEFAULT
from ..utils.exceptions import InvalidParameterError
from .base import StreamTransport


class TcpTransport(StreamTransport):
    def __init__(
        self,
        host: str,
        port: int = TCP_PORT_DEFAULT,
        connect_timeout: float = TCP_CONNECT_TIMEOUT,
    ):
        if not host:
            raise InvalidParameterError("host", host, "must be non-empty")
        super().__init__(f"{host}:{port}")
        self.host = host
        self.port = int(port)
        self.connect_timeout = connect_timeout

    async def _open(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        return await asyncio.wait_for(
            asyncio.open_connection(self.host, self.port),
            timeout=self.connect_timeout,
        )
