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

"""Classification and decoding of lines received from GRBL firmware.

``parse_response`` never raises: anything it cannot decode comes back as
``Unknown`` so noise on the link cannot take the session down.
"""

from __future__ import annotations

import logging
import re

from .types import (
    Ack,
    AlarmResponse,
    ErrorResponse,
    Feedback,
    GrblResponse,
    MachineState,
    Overrides,
    Position4,
    ProbeResult,
    Setting,
    Startup,
    StatusReport,
    Unknown,
    WorkOffset,
)
from .utils.constants import FIRMWARE_BANNER_PREFIX
from .utils.exceptions import ProtocolParseError
from .utils.grbl_errors import alarm_message, error_message

logger = logging.getLogger(__name__)

WORK_OFFSET_LABELS = frozenset(
    {"WCO", "G54", "G55", "G56", "G57", "G58", "G59", "G28", "G30", "G92", "TLO"}
)

_SETTING_PAT = re.compile(r"^\$(\d+)\s*=\s*([^\s(]+)\s*(?:\((.*)\))?\s*$")
_BANNER_VERSION_PAT = re.compile(r"^(\S+)\s+(\S+)")
_FLUIDNC_PAT = re.compile(r"FluidNC\s+(v?[\w.\-]+)", re.IGNORECASE)


def parse_response(line: str) -> GrblResponse:
    """Classify one line of firmware output.

    Args:
        line: A single line with the terminator already removed

    Returns:
        The decoded response; ``Unknown`` for anything unrecognised or
        malformed
    """
    text = (line or "").strip()
    try:
        return _classify(text)
    except ProtocolParseError as exc:
        logger.debug(f"Discarding malformed line {text!r}: {exc}")
        return Unknown(text)


def _classify(text: str) -> GrblResponse:
    lower = text.lower()
    if lower == "ok":
        return Ack()
    if lower.startswith("ok:"):
        return Ack(_parse_int(text[3:], "ok line number"))
    if lower.startswith("error:"):
        return _parse_error(text[6:])
    if text.startswith("<") and text.endswith(">"):
        return parse_status_report(text)
    if text.startswith("$") and "=" in text:
        return _parse_setting(text)
    if text.startswith("[") and text.endswith("]"):
        return _parse_feedback(text[1:-1])
    if lower.startswith("alarm:"):
        code = _parse_int(text[6:].split(":", 1)[0], "alarm code")
        return AlarmResponse(code, alarm_message(code))
    if lower.startswith(FIRMWARE_BANNER_PREFIX):
        return _parse_banner(text)
    return Unknown(text)


# ============================================================================
# FIELD HELPERS
# ============================================================================

def _parse_int(value: str, what: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ProtocolParseError(f"Bad {what}: {value!r}")


def _parse_number(value: str, what: str) -> int:
    # F/S may be reported as decimals by some builds; GRBL keeps them integral.
    try:
        return int(float(value.strip()))
    except ValueError:
        raise ProtocolParseError(f"Bad {what}: {value!r}")


def _parse_floats(value: str, what: str) -> list[float]:
    parts = [p for p in value.split(",") if p.strip()]
    if not parts:
        raise ProtocolParseError(f"Empty {what}")
    try:
        return [float(p) for p in parts]
    except ValueError:
        raise ProtocolParseError(f"Bad {what}: {value!r}")


def _parse_position(value: str, what: str) -> Position4:
    return Position4.from_values(_parse_floats(value, what))


# ============================================================================
# LINE DECODERS
# ============================================================================

def _parse_error(rest: str) -> ErrorResponse:
    code_text = rest.split(":", 1)[0]
    try:
        code = int(code_text.strip())
    except ValueError:
        # GRBL 0.9 style "error: Bad number format"
        return ErrorResponse(0, rest.strip() or error_message(0))
    return ErrorResponse(code, error_message(code))


def parse_status_report(text: str) -> StatusReport:
    """Decode a ``<State|Key:Value|...>`` status report.

    Raises:
        ProtocolParseError: If the report is malformed
    """
    body = text.strip()
    if not (body.startswith("<") and body.endswith(">")):
        raise ProtocolParseError("Status report must be wrapped in <>", raw=text)
    fields = body[1:-1].split("|")
    state_token = fields[0].strip()
    if not state_token:
        raise ProtocolParseError("Status report without state", raw=text)

    values: dict = {"state": MachineState.from_report(state_token), "raw": body}
    for field_text in fields[1:]:
        key, sep, value = field_text.partition(":")
        if not sep:
            continue
        key = key.strip()
        if key == "MPos":
            values["machine_position"] = _parse_position(value, "MPos")
        elif key == "WPos":
            values["work_position"] = _parse_position(value, "WPos")
        elif key == "WCO":
            values["work_coordinate_offset"] = _parse_position(value, "WCO")
        elif key == "Bf":
            blocks, _, available = value.partition(",")
            values["planner_blocks_available"] = _parse_int(blocks, "Bf blocks")
            values["buffer_available"] = _parse_int(available, "Bf bytes")
        elif key == "Ln":
            values["line_number"] = _parse_int(value, "Ln")
        elif key == "F":
            values["feed_rate"] = _parse_number(value, "F")
        elif key == "S":
            values["spindle_speed"] = _parse_number(value, "S")
        elif key == "FS":
            feed, _, speed = value.partition(",")
            values["feed_rate"] = _parse_number(feed, "FS feed")
            if speed:
                values["spindle_speed"] = _parse_number(speed, "FS speed")
        elif key == "Ov":
            parts = [_parse_int(p, "Ov") for p in value.split(",")]
            if len(parts) != 3:
                raise ProtocolParseError(f"Ov needs three values: {value!r}", raw=text)
            values["overrides"] = Overrides(*parts)
        elif key == "Pn":
            values["pins"] = value.strip()
        # A: (accessories) and vendor fields are not tracked.
    return StatusReport(**values)


def _parse_setting(text: str) -> GrblResponse:
    match = _SETTING_PAT.match(text)
    if not match:
        # $N0=..., $I=... and similar are not numeric settings
        return Unknown(text)
    try:
        value = float(match.group(2))
    except ValueError:
        return Unknown(text)
    description = match.group(3)
    return Setting(int(match.group(1)), value, description.strip() if description else None)


def _parse_feedback(inner: str) -> GrblResponse:
    category, sep, rest = inner.partition(":")
    category = category.strip()
    if not sep:
        return Feedback("", inner.strip())
    if category == "PRB":
        coords, _, flag = rest.rpartition(":")
        if not coords:
            raise ProtocolParseError(f"Probe result without success flag: {inner!r}")
        return ProbeResult(_parse_position(coords, "PRB"), flag.strip() == "1")
    if category == "TLO":
        offset = _parse_floats(rest, "TLO")[0]
        return WorkOffset("TLO", Position4(z=offset))
    if category in WORK_OFFSET_LABELS:
        return WorkOffset(category, _parse_position(rest, category))
    return Feedback(category, rest.strip())


def _parse_banner(text: str) -> Startup:
    fluidnc = _FLUIDNC_PAT.search(text)
    if fluidnc:
        return Startup(fluidnc.group(1), "FluidNC")
    match = _BANNER_VERSION_PAT.match(text)
    if not match:
        return Startup("", text.split("[", 1)[0].strip() or "Grbl")
    return Startup(match.group(2), match.group(1))
