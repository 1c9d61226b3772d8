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

from __future__ import annotations

import re

UNKNOWN_ERROR_MESSAGE = "Unknown error code"
UNKNOWN_ALARM_MESSAGE = "Unknown alarm code"

# GRBL v1.1 codes 1-38, grblHAL extensions above that.
GRBL_ERROR_CODES: dict[int, str] = {
    1: "Expected command letter.",
    2: "Bad number format.",
    3: "Invalid statement (unrecognized/unsupported '$' command).",
    4: "Value < 0.",
    5: "Setting disabled (homing not enabled).",
    6: "Value < 3 usec (step pulse too short).",
    7: "EEPROM read fail. Using defaults.",
    8: "Not idle (cannot run that '$' command unless IDLE).",
    9: "G-code locked out during alarm or jog state.",
    10: "Homing not enabled (soft limits require homing).",
    11: "Line overflow (too many characters; line not executed).",
    12: "Step rate > 30kHz (settings exceed max step rate).",
    13: "Check Door (safety door opened / door state).",
    14: "Line length exceeded (startup/build info too long for EEPROM storage).",
    15: "Travel exceeded (jog target exceeds travel; ignored).",
    16: "Invalid jog command (missing '=' or contains prohibited g-code).",
    17: "Setting disabled (laser mode requires PWM output).",
    20: "Unsupported command (invalid/unsupported g-code).",
    21: "Modal group violation.",
    22: "Undefined feed rate.",
    23: "Requires integer value.",
    24: ">1 axis-word-requiring command in block.",
    25: "Repeated g-code word in block.",
    26: "No axis words found when required.",
    27: "Invalid line number.",
    28: "Missing required value word.",
    29: "G59.x WCS not supported.",
    30: "G53 only allowed with G0/G1.",
    31: "Axis words present but unused by command/modal state.",
    32: "G2/G3 require at least one in-plane axis word.",
    33: "Motion target invalid.",
    34: "Arc radius invalid.",
    35: "G2/G3 require at least one in-plane offset word.",
    36: "Unused value words found in block.",
    37: "G43.1 TLO not assigned to configured tool length axis.",
    38: "Tool number > max supported.",
    39: "Value out of range.",
    40: "Tool change pending.",
    41: "Spindle not running.",
    42: "Illegal plane for command.",
    43: "Max feed rate exceeded.",
    44: "RPM out of range.",
    45: "Limit switch engaged (only homing is allowed).",
    46: "Homing required.",
    47: "Tool error (unknown or invalid tool).",
    48: "Value word conflict.",
    49: "Power-on self test failed.",
    50: "Emergency stop active.",
    51: "Motor fault.",
    52: "Setting value out of range.",
    53: "Setting disabled.",
    54: "Invalid retract position.",
    55: "Illegal homing configuration.",
    56: "Coordinate system locked.",
    60: "SD card mount failed.",
    61: "SD card read failed.",
    62: "SD card failed to open directory.",
    63: "SD card directory not found.",
    64: "SD card file empty.",
    65: "SD card file not found.",
    66: "SD card failed to open file.",
    70: "Bluetooth initialisation failed.",
}

# GRBL v1.1 alarms 1-9, grblHAL extensions above that.
GRBL_ALARM_CODES: dict[int, str] = {
    1: "Hard limit: hard limit triggered; position likely lost; re-home recommended.",
    2: "Soft limit: target exceeds travel; position retained; may unlock safely.",
    3: "Abort during cycle: reset while in motion; position likely lost; re-home recommended.",
    4: "Probe fail: probe not in expected initial state for the probing mode used.",
    5: "Probe fail: probe did not contact within programmed travel.",
    6: "Homing fail: active homing cycle was reset.",
    7: "Homing fail: safety door opened during homing.",
    8: "Homing fail: pull-off travel failed to clear the switch.",
    9: "Homing fail: could not find switch within search distance.",
    10: "E-stop asserted: clear the emergency stop and reset.",
    11: "Homing required: run a homing cycle before motion.",
    12: "Limit switch engaged: clear the switch before continuing.",
    13: "Probe protection triggered.",
    14: "Spindle at-speed timeout.",
    15: "Homing fail: dual-axis second switch did not trigger after the first within the allowed distance.",
    16: "Power-on self test failed.",
    17: "Motor fault.",
    18: "Homing fail.",
}

_ERROR_CODE_PAT = re.compile(r"error:(\d+)", re.IGNORECASE)
_ALARM_CODE_PAT = re.compile(r"ALARM:(\d+)", re.IGNORECASE)


def get_grbl_error_description(code: int) -> str | None:
    return GRBL_ERROR_CODES.get(int(code))


def get_grbl_alarm_description(code: int) -> str | None:
    return GRBL_ALARM_CODES.get(int(code))


def error_message(code: int) -> str:
    """Human-readable text for an ``error:N`` code, never failing."""
    return get_grbl_error_description(code) or UNKNOWN_ERROR_MESSAGE


def alarm_message(code: int) -> str:
    """Human-readable text for an ``ALARM:N`` code, never failing."""
    return get_grbl_alarm_description(code) or UNKNOWN_ALARM_MESSAGE


def format_error(code: int, message: str | None = None) -> str:
    return f"Error {code}: {message or error_message(code)}"


def format_alarm(code: int, message: str | None = None) -> str:
    return f"ALARM {code}: {message or alarm_message(code)}"


def extract_grbl_code(line: str) -> tuple[str, int, str] | None:
    """Return (kind, code, description) for known GRBL error/alarm codes."""
    text = line or ""
    err_match = _ERROR_CODE_PAT.search(text)
    if err_match:
        err_desc = get_grbl_error_description(int(err_match.group(1)))
        if err_desc:
            return ("error", int(err_match.group(1)), err_desc)
    alarm_match = _ALARM_CODE_PAT.search(text)
    if alarm_match:
        alarm_desc = get_grbl_alarm_description(int(alarm_match.group(1)))
        if alarm_desc:
            return ("alarm", int(alarm_match.group(1)), alarm_desc)
    return None


def _annotate(line: str, kind: str) -> str:
    info = extract_grbl_code(line)
    if not info or info[0] != kind:
        return line
    code = info[1]
    desc = info[2]
    marker = f"{kind}:{code}"
    pos = line.lower().find(marker)
    if pos >= 0 and "(" in line[pos:]:
        return line
    return f"{line} ({desc})"


def annotate_grbl_error(line: str) -> str:
    return _annotate(line, "error")


def annotate_grbl_alarm(line: str) -> str:
    return _annotate(line, "alarm")


def annotate_grbl_message(line: str) -> str:
    if not line:
        return line
    annotated = annotate_grbl_error(line)
    if annotated != line:
        return annotated
    return annotate_grbl_alarm(line)
