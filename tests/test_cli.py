"""Tests for the command-line front end."""

from __future__ import annotations

import os
import queue

import pytest

from titan_sender import cli
from titan_sender.transport import (
    BluetoothTransport,
    SerialTransport,
    TcpTransport,
    WebSocketTransport,
)
from titan_sender.types import JobProgress, JobState
from titan_sender.utils.config import Settings
from titan_sender.utils.exceptions import InvalidParameterError, TitanSenderException


class TestParser:
    def test_stream_with_serial_port(self) -> None:
        args = cli.build_parser().parse_args(
            ["--port", "/dev/ttyUSB0", "-b", "57600", "stream", "part.nc", "-q"]
        )
        assert args.command == "stream"
        assert args.file == "part.nc"
        assert args.quiet
        assert args.baud == 57600

    def test_send_joins_words(self) -> None:
        args = cli.build_parser().parse_args(["--tcp", "cnc.local", "send", "G0", "X10"])
        assert args.words == ["G0", "X10"]

    def test_links_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--port", "COM3", "--tcp", "cnc:23", "ports"])

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--port", "COM3"])


class TestMakeTransport:
    def parse(self, *argv):
        return cli.build_parser().parse_args([*argv, "ports"])

    def test_explicit_links(self, settings) -> None:
        serial_link = cli.make_transport(self.parse("--port", "/dev/ttyACM0"), settings)
        assert isinstance(serial_link, SerialTransport)
        assert serial_link.baud == settings.get("baud_rate")

        tcp = cli.make_transport(self.parse("--tcp", "10.0.0.5"), settings)
        assert isinstance(tcp, TcpTransport)
        assert (tcp.host, tcp.port) == ("10.0.0.5", 23)

        ws = cli.make_transport(self.parse("--ws", "ws://fluidnc.local:81"), settings)
        assert isinstance(ws, WebSocketTransport)

        bt = cli.make_transport(self.parse("--bt", "00:11:22:33:44:55", "--channel", "2"), settings)
        assert isinstance(bt, BluetoothTransport)
        assert bt.channel == 2

    def test_bad_tcp_port(self, settings) -> None:
        with pytest.raises(InvalidParameterError):
            cli.make_transport(self.parse("--tcp", "cnc:abc"), settings)

    def test_falls_back_to_saved_link(self, settings) -> None:
        settings.set("tcp_host", "192.168.1.40")
        settings.set("tcp_port", 8080)
        link = cli.make_transport(self.parse(), settings)
        assert isinstance(link, TcpTransport)
        assert link.device_name == "192.168.1.40:8080"

    def test_no_link_configured(self, settings) -> None:
        with pytest.raises(TitanSenderException):
            cli.make_transport(self.parse(), settings)


class TestRememberLink:
    def test_explicit_link_becomes_the_default(self, settings) -> None:
        settings.set("last_port", "/dev/ttyUSB0")
        args = cli.build_parser().parse_args(["--tcp", "10.0.0.5:8080", "send", "$I"])
        cli.remember_link(args, settings)

        reloaded = Settings(settings.filepath)
        assert reloaded.load()
        assert reloaded.get("last_port") == ""
        assert (reloaded.get("tcp_host"), reloaded.get("tcp_port")) == ("10.0.0.5", 8080)
        link = cli.make_transport(cli.build_parser().parse_args(["ports"]), reloaded)
        assert isinstance(link, TcpTransport)

    def test_saved_link_is_not_rewritten(self, settings) -> None:
        cli.remember_link(cli.build_parser().parse_args(["ports"]), settings)
        assert not os.path.exists(settings.filepath)


class TestEventPrinter:
    def test_routes_events(self, capsys) -> None:
        event_q = queue.Queue()
        event_q.put(("log_rx", "ok"))
        event_q.put(("stream_error", "error:20 | line 3: G5"))
        event_q.put(("job_state", JobState.completed()))
        event_q.put(("setting", 110, 5000.0))
        event_q.put(("progress", JobProgress(total_lines=4, completed_lines=2, percent_complete=50.0)))
        event_q.put(("progress", JobProgress(total_lines=4, completed_lines=2, percent_complete=50.4)))
        cli.EventPrinter(event_q).drain()

        out, err = capsys.readouterr()
        lines = out.splitlines()
        assert lines[:3] == ["ok", "job: Completed", "$110=5000"]
        assert len(lines) == 4
        assert "2/4 lines" in lines[3]
        assert err.strip() == "stream error: error:20 | line 3: G5"

    def test_quiet_hides_progress(self, capsys) -> None:
        event_q = queue.Queue()
        event_q.put(("progress", JobProgress(total_lines=1, percent_complete=100.0)))
        cli.EventPrinter(event_q, show_progress=False).drain()
        assert capsys.readouterr().out == ""


@pytest.mark.usefixtures("reset_app_logging")
class TestMain:
    def test_lists_ports(self, monkeypatch, capsys, tmp_path) -> None:
        monkeypatch.setattr(cli, "available_ports", lambda: ["/dev/ttyUSB0"])
        assert cli.main(["--log-dir", str(tmp_path), "ports"]) == 0
        assert capsys.readouterr().out.splitlines() == ["/dev/ttyUSB0"]

    def test_reports_missing_link(self, capsys, tmp_path) -> None:
        assert cli.main(["--log-dir", str(tmp_path), "send", "$I"]) == 1
        assert "No link given" in capsys.readouterr().err
