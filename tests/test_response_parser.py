"""Tests for firmware line classification and status report decoding."""

from __future__ import annotations

import pytest

from titan_sender.response_parser import parse_response, parse_status_report
from titan_sender.types import (
    Ack,
    AlarmResponse,
    ErrorResponse,
    Feedback,
    MachineState,
    Overrides,
    Position4,
    ProbeResult,
    ResponseKind,
    Setting,
    Startup,
    Unknown,
    WorkOffset,
)
from titan_sender.utils.exceptions import ProtocolParseError


# ---------------------------------------------------------------------------
# Acknowledgements, errors, alarms
# ---------------------------------------------------------------------------


class TestAcknowledgements:
    def test_plain_ok(self) -> None:
        assert parse_response("ok") == Ack()

    def test_ok_case_and_whitespace(self) -> None:
        assert parse_response("  OK \r") == Ack()

    def test_numbered_ok(self) -> None:
        assert parse_response("ok:42") == Ack(42)

    def test_bad_numbered_ok_is_unknown(self) -> None:
        assert parse_response("ok:abc").kind == ResponseKind.UNKNOWN


class TestErrorsAndAlarms:
    def test_error_with_known_code(self) -> None:
        response = parse_response("error:9")
        assert response == ErrorResponse(9, "G-code locked out during alarm or jog state.")

    def test_error_with_unknown_code(self) -> None:
        assert parse_response("error:250") == ErrorResponse(250, "Unknown error code")

    def test_legacy_textual_error(self) -> None:
        response = parse_response("error: Bad number format")
        assert response.kind == ResponseKind.ERROR
        assert response.code == 0
        assert response.message == "Bad number format"

    def test_alarm(self) -> None:
        response = parse_response("ALARM:2")
        assert isinstance(response, AlarmResponse)
        assert response.code == 2
        assert response.message.startswith("Soft limit")

    def test_unknown_alarm_code(self) -> None:
        assert parse_response("ALARM:99") == AlarmResponse(99, "Unknown alarm code")


# ---------------------------------------------------------------------------
# Status reports
# ---------------------------------------------------------------------------


class TestStatusReports:
    def test_minimal_idle_report(self) -> None:
        report = parse_response("<Idle|MPos:1.000,2.000,3.000>")
        assert report.kind == ResponseKind.STATUS
        assert report.state == MachineState.IDLE
        assert report.machine_position == Position4(1, 2, 3, 0)
        assert report.work_position is None

    def test_full_run_report(self) -> None:
        report = parse_response("<Run|MPos:10.0,0.0,-2.5,0.0|Bf:10,64|Ln:42|F:800|S:12000>")
        assert report.state == MachineState.RUN
        assert report.machine_position == Position4(10, 0, -2.5, 0)
        assert report.buffer_available == 64
        assert report.planner_blocks_available == 10
        assert report.line_number == 42
        assert report.feed_rate == 800
        assert report.spindle_speed == 12000

    def test_grbl_11_fields(self) -> None:
        report = parse_status_report(
            "<Hold:0|WPos:1.5,2.5,3.5|FS:500,8000|WCO:10,20,30|Ov:120,50,90|Pn:XZP|A:SF>"
        )
        assert report.state == MachineState.HOLD
        assert report.work_position == Position4(1.5, 2.5, 3.5, 0)
        assert report.work_coordinate_offset == Position4(10, 20, 30, 0)
        assert report.feed_rate == 500
        assert report.spindle_speed == 8000
        assert report.overrides == Overrides(120, 50, 90)
        assert report.pins == "XZP"

    def test_substate_and_unknown_state(self) -> None:
        assert parse_status_report("<Door:1|MPos:0,0,0>").state == MachineState.DOOR
        assert parse_status_report("<Tool|MPos:0,0,0>").state == MachineState.UNKNOWN

    @pytest.mark.parametrize(
        "line",
        ["<Idle|MPos:abc,1,2>", "<|MPos:0,0,0>", "<Idle|Bf:x,1>", "<Idle|Ov:100,100>"],
    )
    def test_malformed_report_is_unknown(self, line) -> None:
        response = parse_response(line)
        assert isinstance(response, Unknown)
        assert response.raw == line

    def test_strict_parser_raises(self) -> None:
        with pytest.raises(ProtocolParseError):
            parse_status_report("<Idle|MPos:1,2,nope>")


# ---------------------------------------------------------------------------
# Settings, feedback, banners
# ---------------------------------------------------------------------------


class TestSettingsAndFeedback:
    def test_setting_with_description(self) -> None:
        assert parse_response("$110=5000.000 (x max rate, mm/min)") == Setting(
            110, 5000.0, "x max rate, mm/min"
        )

    def test_setting_without_description(self) -> None:
        assert parse_response("$0=10") == Setting(0, 10.0, None)

    def test_startup_block_is_not_a_setting(self) -> None:
        assert parse_response("$N0=G54").kind == ResponseKind.UNKNOWN

    def test_probe_result(self) -> None:
        assert parse_response("[PRB:0.000,0.000,-1.250:1]") == ProbeResult(
            Position4(0, 0, -1.25, 0), True
        )
        assert not parse_response("[PRB:0.000,0.000,0.000:0]").success

    def test_work_offsets(self) -> None:
        assert parse_response("[G54:10.000,20.000,0.000]") == WorkOffset(
            "G54", Position4(10, 20, 0, 0)
        )
        assert parse_response("[TLO:1.500]") == WorkOffset("TLO", Position4(z=1.5))

    def test_message_and_parser_state(self) -> None:
        assert parse_response("[MSG:'$H'|'$X' to unlock]") == Feedback("MSG", "'$H'|'$X' to unlock")
        assert parse_response("[GC:G0 G54 G17 G21 G90 G94 M5 M9 T0 F0 S0]").category == "GC"

    def test_grbl_banner(self) -> None:
        assert parse_response("Grbl 1.1h ['$' for help]") == Startup("1.1h", "Grbl")

    def test_grblhal_banner(self) -> None:
        assert parse_response("GrblHAL 1.1f ['$' or '$HELP' for help]") == Startup(
            "1.1f", "GrblHAL"
        )

    def test_unrecognised_text(self) -> None:
        assert parse_response("hello") == Unknown("hello")
        assert parse_response("") == Unknown("")
