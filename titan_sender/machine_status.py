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

"""Live snapshot of firmware state built from parsed responses."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from .types import (
    GrblResponse,
    MachineState,
    MachineStatus,
    Overrides,
    PinState,
    Position4,
    ProbeResult,
    ResponseKind,
    StatusReport,
)
from .utils.constants import WCS_CODES
from .utils.exceptions import StateViolation

logger = logging.getLogger(__name__)


def merge_status_report(previous: MachineStatus, report: StatusReport) -> MachineStatus:
    """Build the next status from a report.

    Fields missing from the report keep their previous value, except the
    pin set: GRBL omits ``Pn`` when no input is active, so absence clears it.
    The position that was not reported is derived through the work
    coordinate offset when one is known.
    """
    wco = report.work_coordinate_offset or previous.work_coordinate_offset
    machine_position = previous.machine_position
    work_position = previous.work_position
    if report.machine_position is not None:
        machine_position = report.machine_position
        if report.work_position is not None:
            work_position = report.work_position
        elif wco is not None:
            work_position = machine_position - wco
    elif report.work_position is not None:
        work_position = report.work_position
        if wco is not None:
            machine_position = work_position + wco

    return MachineStatus(
        state=report.state,
        machine_position=machine_position,
        work_position=work_position,
        feed_rate=previous.feed_rate if report.feed_rate is None else report.feed_rate,
        spindle_speed=previous.spindle_speed if report.spindle_speed is None else report.spindle_speed,
        last_reported_line=(
            previous.last_reported_line if report.line_number is None else report.line_number
        ),
        buffer_available=(
            previous.buffer_available if report.buffer_available is None else report.buffer_available
        ),
        pins=PinState.from_letters(report.pins or ""),
        overrides=previous.overrides if report.overrides is None else report.overrides,
        planner_blocks_available=(
            previous.planner_blocks_available
            if report.planner_blocks_available is None
            else report.planner_blocks_available
        ),
        work_coordinate_offset=wco,
    )


class MachineStatusModel:
    """Holds the current ``MachineStatus`` plus the firmware's reported tables.

    Only ``apply`` mutates it; everything else reads.
    """

    def __init__(self):
        self.status = MachineStatus()
        self._clear_tables()

    def _clear_tables(self) -> None:
        self.settings: dict[int, float] = {}
        self.setting_descriptions: dict[int, str] = {}
        self.work_offsets: dict[str, Position4] = {}
        self.last_probe: ProbeResult | None = None
        self.active_wcs: int | None = None
        self.parser_state: str | None = None
        self.firmware: str | None = None
        self.version: str | None = None
        self.last_alarm: int | None = None

    @property
    def state(self) -> MachineState:
        return self.status.state

    def apply(self, response: GrblResponse) -> bool:
        """Fold one parsed response into the model.

        Returns:
            True if ``status`` changed
        """
        kind = response.kind
        if kind == ResponseKind.STATUS:
            self.status = merge_status_report(self.status, response)
            if response.state != MachineState.ALARM:
                self.last_alarm = None
            return True
        if kind == ResponseKind.ALARM:
            self.last_alarm = response.code
            self.status = replace(self.status, state=MachineState.ALARM)
            return True
        if kind == ResponseKind.STARTUP:
            self.firmware = response.firmware
            self.version = response.version
            self.last_alarm = None
            self.status = replace(
                self.status,
                state=MachineState.IDLE,
                feed_rate=0,
                spindle_speed=0,
                pins=PinState(),
                overrides=Overrides(),
            )
            return True
        if kind == ResponseKind.SETTING:
            self.settings[response.id] = response.value
            if response.description:
                self.setting_descriptions[response.id] = response.description
        elif kind == ResponseKind.WORK_OFFSET:
            self.work_offsets[response.label] = response.position
            if response.label == "WCO":
                self.status = replace(self.status, work_coordinate_offset=response.position)
                return True
        elif kind == ResponseKind.PROBE:
            self.last_probe = response
        elif kind == ResponseKind.FEEDBACK:
            self._apply_feedback(response.category, response.text)
        return False

    def _apply_feedback(self, category: str, text: str) -> None:
        if category == "GC":
            self.parser_state = text
            for token in text.split():
                if token in WCS_CODES:
                    self.active_wcs = WCS_CODES.index(token)
        elif category == "VER":
            self.version = text.split(":", 1)[0] or self.version

    def reset(self) -> None:
        self.status = MachineStatus()
        self._clear_tables()

    # ========================================================================
    # STATE GATING
    # ========================================================================

    def can_jog(self) -> bool:
        return self.state in (MachineState.IDLE, MachineState.JOG)

    def can_home(self) -> bool:
        return self.state == MachineState.IDLE

    def can_probe(self) -> bool:
        return self.state == MachineState.IDLE

    def require_state(self, allowed: Iterable[MachineState], action: str) -> None:
        """Reject ``action`` unless the machine is in one of ``allowed`` states.

        Raises:
            StateViolation: If the current state is not allowed
        """
        allowed = tuple(allowed)
        if self.state not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise StateViolation(
                f"Cannot {action} while {self.state.value} (requires {names})",
                state=self.state,
            )
