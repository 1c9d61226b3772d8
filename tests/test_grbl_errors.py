"""Tests for GRBL error and alarm code lookup."""

from __future__ import annotations

from titan_sender.utils.grbl_errors import (
    alarm_message,
    annotate_grbl_alarm,
    annotate_grbl_error,
    annotate_grbl_message,
    error_message,
    extract_grbl_code,
    format_alarm,
    format_error,
)


class TestLookup:
    def test_standard_codes(self) -> None:
        assert error_message(9) == "G-code locked out during alarm or jog state."
        assert alarm_message(1).startswith("Hard limit")

    def test_grblhal_codes(self) -> None:
        assert error_message(60) != "Unknown error code"
        assert alarm_message(18) == "Homing fail."

    def test_unknown_codes(self) -> None:
        assert error_message(999) == "Unknown error code"
        assert alarm_message(999) == "Unknown alarm code"

    def test_format(self) -> None:
        assert format_error(9) == "Error 9: G-code locked out during alarm or jog state."
        assert format_alarm(3, "custom") == "ALARM 3: custom"


class TestAnnotate:
    def test_error_line(self) -> None:
        assert annotate_grbl_error("error:2") == "error:2 (Bad number format.)"

    def test_alarm_line(self) -> None:
        annotated = annotate_grbl_alarm("ALARM:1")
        assert annotated.startswith("ALARM:1 (Hard limit")

    def test_already_annotated_line_unchanged(self) -> None:
        assert annotate_grbl_error("error:2 (bad number)") == "error:2 (bad number)"

    def test_unknown_code_unchanged(self) -> None:
        assert annotate_grbl_error("error:999") == "error:999"

    def test_message_dispatch(self) -> None:
        assert annotate_grbl_message("ALARM:2").startswith("ALARM:2 (Soft limit")
        assert annotate_grbl_message("ok") == "ok"

    def test_extract(self) -> None:
        assert extract_grbl_code("error:9")[:2] == ("error", 9)
        assert extract_grbl_code("ALARM:9")[:2] == ("alarm", 9)
        assert extract_grbl_code("nothing here") is None
