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
"""
Command-line front end.

Usage:
    titan-sender ports
    titan-sender --port /dev/ttyUSB0 stream part.nc
    titan-sender --tcp 192.168.1.40:23 send '$$'
    titan-sender --ws ws://fluidnc.local:81 send G0 X10
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import queue
import sys
from pathlib import Path

from . import __version__
from .gcode_source import read_gcode_file
from .stream_session import StreamSession
from .transport import (
    BluetoothTransport,
    SerialTransport,
    TcpTransport,
    Transport,
    WebSocketTransport,
    available_ports,
)
from .types import JobProgress, JobStateKind
from .utils.config import Settings
from .utils.constants import BLUETOOTH_RFCOMM_CHANNEL, TCP_PORT_DEFAULT
from .utils.exceptions import SettingsSaveError, TitanSenderException
from .utils.logging_config import setup_logging
from .utils.validation import validate_host_port

logger = logging.getLogger(__name__)

READY_TIMEOUT = 5.0
"""Seconds to wait for a banner or status report before sending anyway."""

COMMAND_REPLY_TIMEOUT = 10.0
"""Seconds ``send`` waits for the last command to be answered."""

EVENT_DRAIN_INTERVAL = 0.1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="titan-sender",
        description="Stream G-code to a GRBL controller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Without a link option the last link saved in the settings file is used.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    link = parser.add_mutually_exclusive_group()
    link.add_argument("--port", "-p", type=str, help="Serial port (e.g. COM3, /dev/ttyUSB0)")
    link.add_argument("--tcp", type=str, metavar="HOST[:PORT]", help="Raw TCP (telnet) link")
    link.add_argument("--ws", type=str, metavar="URL", help="WebSocket link (ws:// or wss://)")
    link.add_argument("--bt", type=str, metavar="ADDRESS", help="Bluetooth RFCOMM device address")

    parser.add_argument("--baud", "-b", type=int, help="Serial baud rate (default from settings)")
    parser.add_argument(
        "--channel",
        type=int,
        default=BLUETOOTH_RFCOMM_CHANNEL,
        help="Bluetooth RFCOMM channel",
    )
    parser.add_argument("--no-poll", action="store_true", help="Do not poll status with '?'")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug output on the console")
    parser.add_argument("--log-dir", type=str, help="Directory for log files")

    commands = parser.add_subparsers(dest="command", required=True)
    stream = commands.add_parser("stream", help="Stream a G-code file")
    stream.add_argument("file", type=str, help="G-code program")
    stream.add_argument("--quiet", "-q", action="store_true", help="No progress output")

    send = commands.add_parser("send", help="Send one command line (MDI)")
    send.add_argument("words", nargs="+", help="Command words, joined with spaces")

    commands.add_parser("ports", help="List serial ports")
    return parser


def make_transport(args: argparse.Namespace, settings: Settings) -> Transport:
    """Build the link chosen on the command line, else the one in settings.

    Raises:
        InvalidParameterError: If no link is configured or an address is malformed
    """
    baud = args.baud if args.baud is not None else settings.get("baud_rate")
    if args.port:
        return SerialTransport(args.port, baud)
    if args.tcp:
        host, port = validate_host_port(args.tcp, default_port=TCP_PORT_DEFAULT)
        return TcpTransport(host, port)
    if args.ws:
        return WebSocketTransport(args.ws)
    if args.bt:
        return BluetoothTransport(args.bt, args.channel)

    if settings.get("last_port"):
        return SerialTransport(settings.get("last_port"), baud)
    if settings.get("tcp_host"):
        return TcpTransport(settings.get("tcp_host"), settings.get("tcp_port", TCP_PORT_DEFAULT))
    if settings.get("websocket_url"):
        return WebSocketTransport(settings.get("websocket_url"))
    if settings.get("bluetooth_address"):
        return BluetoothTransport(settings.get("bluetooth_address"), args.channel)
    raise TitanSenderException("No link given: use --port, --tcp, --ws or --bt")


LINK_KEYS = ("last_port", "tcp_host", "websocket_url", "bluetooth_address")


def remember_link(args: argparse.Namespace, settings: Settings) -> None:
    """Save a link given on the command line as the default for the next run."""
    if args.port:
        key, value = "last_port", args.port
    elif args.tcp:
        host, port = validate_host_port(args.tcp, default_port=TCP_PORT_DEFAULT)
        settings.set("tcp_port", port)
        key, value = "tcp_host", host
    elif args.ws:
        key, value = "websocket_url", args.ws
    elif args.bt:
        key, value = "bluetooth_address", args.bt
    else:
        return
    for name in LINK_KEYS:
        settings.set(name, value if name == key else "")
    if args.baud is not None:
        settings.set("baud_rate", args.baud)
    try:
        settings.save()
    except SettingsSaveError as e:
        logger.warning(f"Could not remember link: {e}")


def _format_progress(progress: JobProgress) -> str:
    return (
        f"{progress.percent_complete:5.1f}%  "
        f"{progress.completed_lines}/{progress.total_lines} lines  "
        f"{progress.bytes_in_flight:3d} B in flight"
    )


class EventPrinter:
    """Drains the session event queue onto the terminal."""

    def __init__(self, event_q: queue.Queue, show_progress: bool = True):
        self.event_q = event_q
        self.show_progress = show_progress
        self._last_percent = -1

    def drain(self) -> None:
        while True:
            try:
                event = self.event_q.get_nowait()
            except queue.Empty:
                return
            self.handle(event)

    def handle(self, event: tuple) -> None:
        kind = event[0]
        if kind in ("log", "log_rx"):
            print(event[1])
        elif kind in ("stream_error", "manual_error", "alarm"):
            print(f"{kind.replace('_', ' ')}: {event[1]}", file=sys.stderr)
        elif kind == "progress" and self.show_progress:
            percent = int(event[1].percent_complete)
            if percent != self._last_percent:
                self._last_percent = percent
                print(_format_progress(event[1]))
        elif kind == "job_state":
            print(f"job: {event[1]}")
        elif kind == "setting":
            print(f"${event[1]}={event[2]:g}")

    async def run(self) -> None:
        while True:
            self.drain()
            await asyncio.sleep(EVENT_DRAIN_INTERVAL)


async def _wait_ready(session: StreamSession, timeout: float = READY_TIMEOUT) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not session.ready and loop.time() < deadline:
        await asyncio.sleep(EVENT_DRAIN_INTERVAL)
    if not session.ready:
        logger.warning("No banner or status report yet; continuing")


async def _stream_file(session: StreamSession, path: str) -> int:
    lines = read_gcode_file(path)
    await session.submit_job(lines)
    try:
        state = await session.wait_for_job()
    except asyncio.CancelledError:
        logger.info("Interrupted; stopping job")
        await asyncio.shield(session.stop_job())
        raise
    return 0 if state.kind == JobStateKind.COMPLETED else 1


async def _send_command(session: StreamSession, command: str) -> int:
    await session.send_command(command)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + COMMAND_REPLY_TIMEOUT
    while session.awaiting_ack and loop.time() < deadline:
        await asyncio.sleep(EVENT_DRAIN_INTERVAL)
    if session.awaiting_ack:
        logger.error(f"No reply to {command!r}")
        return 1
    return 0


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    transport = make_transport(args, settings)
    show_progress = not getattr(args, "quiet", False)
    async with StreamSession(transport, settings=settings, poll_status=not args.no_poll) as session:
        printer = EventPrinter(session.event_q, show_progress=show_progress)
        printer_task = asyncio.create_task(printer.run())
        try:
            await session.connect()
            remember_link(args, settings)
            await _wait_ready(session)
            if args.command == "stream":
                return await _stream_file(session, args.file)
            return await _send_command(session, " ".join(args.words))
        finally:
            printer_task.cancel()
            await asyncio.wait({printer_task})
            printer.drain()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        console_level=logging.DEBUG if args.verbose else logging.WARNING,
        log_dir=Path(args.log_dir) if args.log_dir else None,
    )

    if args.command == "ports":
        ports = available_ports()
        for port in ports:
            print(port)
        if not ports:
            print("No serial ports found", file=sys.stderr)
        return 0

    settings = Settings()
    try:
        settings.load()
        return asyncio.run(run_command(args, settings))
    except KeyboardInterrupt:
        print("Stopped", file=sys.stderr)
        return 130
    except TitanSenderException as e:
        logger.debug(f"Command failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
