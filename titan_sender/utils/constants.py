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

"""Constants and configuration values for Titan Sender.

This module centralizes all magic numbers, default values, and protocol
constants used by the streaming engine and its transports.
"""

# ============================================================================
# TRANSPORT CONSTANTS
# ============================================================================

BAUD_DEFAULT = 115200
"""Default baud rate for GRBL serial communication (8N1)."""

VALID_BAUD_RATES = (9600, 19200, 38400, 57600, 115200, 230400, 250000, 500000, 921600)
"""Baud rates accepted by the serial transport."""

SERIAL_CONNECT_DELAY = 0.25
"""Seconds to let boards that reset on open finish booting."""

TCP_CONNECT_TIMEOUT = 10.0
"""Seconds to wait for a raw TCP (telnet) connection."""

TCP_PORT_DEFAULT = 23
"""Default port for raw TCP line connections (grblHAL / FluidNC telnet)."""

WEBSOCKET_CONNECT_TIMEOUT = 10.0
"""Seconds to wait for the WebSocket handshake."""

WEBSOCKET_PING_INTERVAL = 30.0
"""Seconds between WebSocket keepalive pings."""

BLUETOOTH_SPP_UUID = "00001101-0000-1000-8000-00805F9B34FB"
"""Serial Port Profile service UUID."""

BLUETOOTH_RFCOMM_CHANNEL = 1
"""Default RFCOMM channel for SPP devices."""

LINE_ENCODING = "ascii"
"""Encoding used on the wire in both directions."""

# ============================================================================
# STATUS POLLING
# ============================================================================

STATUS_POLL_DEFAULT = 0.2
"""Default interval (seconds) between status queries (5 Hz)."""

STATUS_POLL_INTERVAL_MIN = 0.05
"""Minimum allowed status poll interval (seconds)."""

STATUS_QUERY_FAILURE_LIMIT_DEFAULT = 3
"""Consecutive failed status queries before the link is considered lost."""

STATUS_QUERY_FAILURE_LIMIT_MIN = 1
STATUS_QUERY_FAILURE_LIMIT_MAX = 10

STATUS_QUERY_BACKOFF_BASE = 0.2
"""Backoff step (seconds) added per consecutive status query failure."""

STATUS_QUERY_BACKOFF_MAX = 2.0
"""Upper bound (seconds) for the status query backoff."""

# ============================================================================
# GRBL BUFFER MANAGEMENT
# ============================================================================

RX_BUFFER_SIZE = 128
"""GRBL RX buffer size in bytes."""

RX_BUFFER_SAFE_CAPACITY = 100
"""Bytes the engine allows in flight; the rest absorbs estimation error."""

DISPATCH_BACKOFF = 0.05
"""Longest wait (seconds) for an acknowledgement before re-checking the budget."""

PAUSE_POLL_INTERVAL = 0.1
"""Longest wait (seconds) while paused before re-checking stop/alarm flags."""

STOP_GRACE_DELAY = 0.1
"""Seconds to let a soft reset settle before local state is cleared."""

TASK_CANCEL_TIMEOUT = 1.0
"""Seconds to wait for a background task to finish after cancellation."""

# ============================================================================
# GRBL REAL-TIME COMMAND BYTES
# ============================================================================

RT_STATUS = b"?"
"""Status report query."""

RT_RESUME = b"~"
"""Cycle start / resume."""

RT_HOLD = b"!"
"""Feed hold (pause)."""

RT_RESET = b"\x18"
"""Ctrl-X soft reset."""

RT_JOG_CANCEL = b"\x85"
"""Cancel jog command."""

# Feed override commands
RT_FO_RESET = b"\x90"
RT_FO_PLUS_10 = b"\x91"
RT_FO_MINUS_10 = b"\x92"

# Rapid override commands
RT_RO_RESET = b"\x95"
RT_RO_50 = b"\x96"
RT_RO_25 = b"\x97"

# Spindle override commands
RT_SO_RESET = b"\x99"
RT_SO_PLUS_10 = b"\x9A"
RT_SO_MINUS_10 = b"\x9B"
RT_SPINDLE_STOP = b"\x9E"

# Coolant toggles
RT_COOLANT_FLOOD = b"\xA0"
RT_COOLANT_MIST = b"\xA1"

OVERRIDE_MIN = 10
"""Lowest feed/spindle override percentage GRBL accepts."""

OVERRIDE_MAX = 200
"""Highest feed/spindle override percentage GRBL accepts."""

OVERRIDE_STEP = 10
"""Percent change of one coarse override step."""

# ============================================================================
# OPERATOR COMMANDS
# ============================================================================

JOG_AXES = ("X", "Y", "Z", "A")
"""Axes accepted by jog, probe and zeroing commands."""

DEFAULT_JOG_FEED = 1000
"""Default jog feed (mm/min)."""

CONTINUOUS_JOG_DISTANCE = 1000.0
"""Travel (mm) of a hold-to-jog move; it runs until cancelled with 0x85."""

DEFAULT_PROBE_FEED = 100
"""Default probe feed (mm/min)."""

DEFAULT_PROBE_DISTANCE = -50.0
"""Default probe travel (mm)."""

WCS_CODES = ("G54", "G55", "G56", "G57", "G58", "G59")
"""Work coordinate systems selectable by index 0-5."""

FIRMWARE_BANNER_PREFIX = "grbl"
"""Lower-cased prefix shared by GRBL, grblHAL and FluidNC startup banners."""

# ============================================================================
# EVENT / LOGGING
# ============================================================================

RX_OK_SUMMARY_INTERVAL = 0.5
"""Seconds between "OK xN" console summaries while streaming."""

RX_STATUS_LOG_INTERVAL = 1.0
"""Seconds between status reports echoed to the console log."""

SETTINGS_FILENAME = "settings.json"
"""Settings file name inside the config directory."""

SETTINGS_BACKUP_SUFFIX = ".backup"
"""Suffix used for the settings backup copy."""

SETTINGS_TEMP_SUFFIX = ".tmp"
"""Suffix used for the temporary settings file during atomic save."""

ERROR_PYSERIAL_MISSING = (
    "pyserial and pyserial-asyncio are required for USB serial connections. "
    "Install with: pip install pyserial pyserial-asyncio"
)
