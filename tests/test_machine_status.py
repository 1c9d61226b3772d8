"""Tests for the machine status model."""

from __future__ import annotations

import pytest

from titan_sender.machine_status import MachineStatusModel, merge_status_report
from titan_sender.response_parser import parse_response
from titan_sender.types import MachineState, MachineStatus, Overrides, PinState, Position4
from titan_sender.utils.exceptions import StateViolation


def apply_lines(model: MachineStatusModel, *lines: str) -> None:
    for text in lines:
        model.apply(parse_response(text))


class TestMergeStatusReport:
    def test_round_trip_machine_position(self) -> None:
        status = merge_status_report(
            MachineStatus(), parse_response("<Idle|MPos:1.000,2.000,3.000>")
        )
        assert status.machine_position == Position4(1, 2, 3, 0)
        assert status.state == MachineState.IDLE

    def test_absent_fields_are_carried_forward(self) -> None:
        first = merge_status_report(
            MachineStatus(), parse_response("<Run|MPos:1,1,1|Bf:15,100|FS:800,9000|Ov:110,100,100>")
        )
        second = merge_status_report(first, parse_response("<Run|MPos:2,2,2>"))
        assert second.feed_rate == 800
        assert second.spindle_speed == 9000
        assert second.buffer_available == 100
        assert second.overrides == Overrides(110, 100, 100)
        assert second.machine_position == Position4(2, 2, 2, 0)

    def test_missing_pins_field_clears_pins(self) -> None:
        first = merge_status_report(MachineStatus(), parse_response("<Idle|MPos:0,0,0|Pn:XP>"))
        assert first.pins == PinState(limit_x=True, probe=True)
        assert first.pins.any_limit
        second = merge_status_report(first, parse_response("<Idle|MPos:0,0,0>"))
        assert second.pins == PinState()

    def test_work_position_derived_from_offset(self) -> None:
        status = merge_status_report(
            MachineStatus(), parse_response("<Idle|MPos:15,25,5|WCO:10,20,0>")
        )
        assert status.work_position == Position4(5, 5, 5, 0)
        later = merge_status_report(status, parse_response("<Idle|WPos:1,1,1>"))
        assert later.machine_position == Position4(11, 21, 1, 0)


class TestMachineStatusModel:
    def test_alarm_then_startup(self) -> None:
        model = MachineStatusModel()
        apply_lines(model, "<Run|MPos:0,0,0|FS:500,1000>", "ALARM:1")
        assert model.state == MachineState.ALARM
        assert model.last_alarm == 1

        apply_lines(model, "Grbl 1.1h ['$' for help]")
        assert model.state == MachineState.IDLE
        assert model.status.feed_rate == 0
        assert model.last_alarm is None
        assert model.firmware == "Grbl"
        assert model.version == "1.1h"

    def test_malformed_status_leaves_model_unchanged(self) -> None:
        model = MachineStatusModel()
        apply_lines(model, "<Idle|MPos:1,2,3>")
        before = model.status
        assert not model.apply(parse_response("<Idle|MPos:x,y,z>"))
        assert model.status is before

    def test_tables(self) -> None:
        model = MachineStatusModel()
        apply_lines(
            model,
            "$130=300.000 (x max travel, mm)",
            "[G55:1.000,2.000,3.000]",
            "[WCO:4.000,5.000,6.000]",
            "[GC:G0 G57 G17 G21 G90 G94 M5 M9 T0 F0 S0]",
            "[VER:1.1h.20190825:]",
        )
        assert model.settings == {130: 300.0}
        assert model.setting_descriptions[130] == "x max travel, mm"
        assert model.work_offsets["G55"] == Position4(1, 2, 3, 0)
        assert model.status.work_coordinate_offset == Position4(4, 5, 6, 0)
        assert model.active_wcs == 3
        assert model.parser_state.startswith("G0 G57")
        assert model.version == "1.1h.20190825"

    def test_reset(self) -> None:
        model = MachineStatusModel()
        apply_lines(model, "<Idle|MPos:1,2,3>", "$0=10")
        model.reset()
        assert model.status == MachineStatus()
        assert model.settings == {}


class TestStateGating:
    @pytest.mark.parametrize(
        "report,jog,home",
        [
            ("<Idle|MPos:0,0,0>", True, True),
            ("<Jog|MPos:0,0,0>", True, False),
            ("<Run|MPos:0,0,0>", False, False),
            ("<Alarm|MPos:0,0,0>", False, False),
        ],
    )
    def test_helpers(self, report, jog, home) -> None:
        model = MachineStatusModel()
        apply_lines(model, report)
        assert model.can_jog() is jog
        assert model.can_home() is home
        assert model.can_probe() is home

    def test_require_state(self) -> None:
        model = MachineStatusModel()
        apply_lines(model, "<Hold:0|MPos:0,0,0>")
        with pytest.raises(StateViolation) as exc_info:
            model.require_state((MachineState.IDLE,), "home")
        assert exc_info.value.state == MachineState.HOLD
        assert "Cannot home while Hold" in str(exc_info.value)
