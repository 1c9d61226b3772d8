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

"""Character-counting accounting for GRBL's serial receive buffer."""

from __future__ import annotations

import logging
from collections import OrderedDict

from .types import QueuedLine
from .utils.constants import RX_BUFFER_SAFE_CAPACITY, RX_BUFFER_SIZE
from .utils.exceptions import GrblBufferOverflowException, InvalidParameterError

logger = logging.getLogger(__name__)


class BufferBudget:
    """Bytes the engine believes are sitting in the firmware RX buffer.

    Holds the transmitted-but-unacknowledged lines keyed by sequence number
    in transmission order, so the oldest pending line is always first.
    Not locked; the owning session serializes every mutation.
    """

    def __init__(
        self,
        safe_capacity: int = RX_BUFFER_SAFE_CAPACITY,
        firmware_buffer_size: int = RX_BUFFER_SIZE,
    ):
        if not (0 < safe_capacity < firmware_buffer_size):
            raise InvalidParameterError(
                "safe_capacity",
                safe_capacity,
                f"must be positive and below the {firmware_buffer_size}-byte buffer",
            )
        self.safe_capacity = safe_capacity
        self.firmware_buffer_size = firmware_buffer_size
        self.bytes_in_flight = 0
        self.pending: OrderedDict[int, QueuedLine] = OrderedDict()

    def __len__(self) -> int:
        return len(self.pending)

    def fits(self, byte_count: int) -> bool:
        return self.bytes_in_flight + byte_count <= self.safe_capacity

    def reserve(self, line: QueuedLine) -> None:
        """Account for a line about to be written.

        Raises:
            GrblBufferOverflowException: If the line does not fit
        """
        if not self.fits(line.byte_count):
            raise GrblBufferOverflowException(
                f"Line {line.sequence_number} ({line.byte_count} bytes) exceeds budget "
                f"({self.bytes_in_flight}/{self.safe_capacity} in flight)"
            )
        self.pending[line.sequence_number] = line
        self.bytes_in_flight += line.byte_count

    def release(self, sequence_number: int) -> QueuedLine | None:
        """Drop one acknowledged line; unknown sequence numbers are ignored."""
        line = self.pending.pop(sequence_number, None)
        if line is None:
            logger.debug(f"No pending line N{sequence_number} to release")
            return None
        self.bytes_in_flight = max(0, self.bytes_in_flight - line.byte_count)
        return line

    def release_oldest(self) -> QueuedLine | None:
        if not self.pending:
            return None
        _, line = self.pending.popitem(last=False)
        self.bytes_in_flight = max(0, self.bytes_in_flight - line.byte_count)
        return line

    def clear(self) -> None:
        self.pending.clear()
        self.bytes_in_flight = 0
