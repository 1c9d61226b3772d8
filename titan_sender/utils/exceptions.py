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

"""Custom exceptions for Titan Sender.

Transport failures, firmware responses, protocol noise and caller mistakes
each get their own branch so the session can decide what to absorb, what
to surface in the job state and what to raise at the call site.
"""

from typing import Any, Optional


class TitanSenderException(Exception):
    """Base exception for all Titan Sender errors."""
    pass


# ============================================================================
# TRANSPORT EXCEPTIONS
# ============================================================================

class TransportError(TitanSenderException):
    """Base exception for transport (serial, Bluetooth, TCP, WebSocket) errors."""
    pass


class TransportConnectError(TransportError):
    """Failed to open the transport."""
    pass


class TransportWriteError(TransportError):
    """Failed to write data to the transport."""
    pass


class TransportReadError(TransportError):
    """Failed to read data from the transport."""
    pass


class NotConnected(TransportError):
    """Attempted an operation that needs an open transport."""
    pass


# ============================================================================
# GRBL EXCEPTIONS
# ============================================================================

class GrblException(TitanSenderException):
    """Base exception for GRBL-related errors."""
    pass


class FirmwareError(GrblException):
    """GRBL answered a line with ``error:N``."""

    def __init__(self, message: str, error_code: Optional[int] = None):
        super().__init__(message)
        self.error_code = error_code


class FirmwareAlarm(GrblException):
    """GRBL raised ``ALARM:N``; motion is locked until reset/unlock."""

    def __init__(self, message: str, alarm_code: Optional[int] = None):
        super().__init__(message)
        self.alarm_code = alarm_code


class ProtocolParseError(GrblException):
    """A status or feedback line could not be decoded."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class AlreadyStreaming(GrblException):
    """A job was submitted while another one is sending or paused."""
    pass


class StateViolation(GrblException):
    """Command rejected because the machine is in the wrong state."""

    def __init__(self, message: str, state: Any = None):
        super().__init__(message)
        self.state = state


class GrblBufferOverflowException(GrblException):
    """Attempted to overfill GRBL's RX buffer."""
    pass


# ============================================================================
# G-CODE EXCEPTIONS
# ============================================================================

class GcodeException(TitanSenderException):
    """Base exception for G-code related errors."""
    pass


class GcodeValidationError(GcodeException):
    """A job line cannot be streamed."""

    def __init__(
        self,
        message: str,
        line_number: Optional[int] = None,
        line_content: Optional[str] = None,
    ):
        super().__init__(message)
        self.line_number = line_number
        self.line_content = line_content


class GcodeFileError(GcodeException):
    """Error reading a G-code file."""
    pass


# ============================================================================
# SETTINGS EXCEPTIONS
# ============================================================================

class SettingsException(TitanSenderException):
    """Base exception for settings errors."""
    pass


class SettingsLoadError(SettingsException):
    """Failed to load settings file."""
    pass


class SettingsSaveError(SettingsException):
    """Failed to save settings file."""
    pass


class SettingsValidationError(SettingsException):
    """Settings validation failed."""
    pass


# ============================================================================
# VALIDATION EXCEPTIONS
# ============================================================================

class ValidationException(TitanSenderException):
    """Base exception for validation errors."""
    pass


class InvalidParameterError(ValidationException):
    """Invalid parameter value."""

    def __init__(self, parameter_name: str, value: Any, reason: Optional[str] = None):
        self.parameter_name = parameter_name
        self.value = value
        self.reason = reason

        message = f"Invalid value for '{parameter_name}': {value}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvalidRangeError(ValidationException):
    """Value out of valid range."""

    def __init__(self, value, min_val, max_val):
        self.value = value
        self.min_val = min_val
        self.max_val = max_val

        message = f"Value {value} out of range [{min_val}, {max_val}]"
        super().__init__(message)
