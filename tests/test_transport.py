"""Tests for the transports against local servers."""

from __future__ import annotations

import asyncio

import pytest
import websockets

from titan_sender.transport import (
    BluetoothTransport,
    SerialTransport,
    TcpTransport,
    WebSocketTransport,
)
from titan_sender.transport import serial_transport
from titan_sender.transport.base import decode_line, encode_line
from titan_sender.transport.bluetooth_transport import bluetooth_supported
from titan_sender.utils.exceptions import (
    InvalidParameterError,
    NotConnected,
    TransportConnectError,
)


async def collect(transport, count: int) -> list[str]:
    lines = []
    async for line in transport.receive():
        lines.append(line)
        if len(lines) == count:
            break
    return lines


class TestLineCodec:
    def test_encode_appends_newline(self) -> None:
        assert encode_line("G0 X1") == b"G0 X1\n"

    def test_decode_strips_terminators(self) -> None:
        assert decode_line(b"ok\r\n") == "ok"


class TestTcpTransport:
    def test_round_trip_with_local_server(self) -> None:
        async def scenario():
            received: list[bytes] = []

            async def handle(reader, writer):
                received.append(await reader.readline())
                received.append(await reader.readexactly(1))
                writer.write(b"Grbl 1.1h ['$' for help]\r\n\r\nok\n")
                await writer.drain()
                writer.close()

            server = await asyncio.start_server(handle, "127.0.0.1", 0)
            port = server.sockets[0].getsockname()[1]
            async with server:
                transport = TcpTransport("127.0.0.1", port)
                await transport.connect()
                assert transport.is_connected
                await transport.send("$I")
                await transport.write(b"?")
                lines = [line async for line in transport.receive()]
                await transport.disconnect()
                assert not transport.is_connected

            assert received == [b"$I\n", b"?"]
            assert lines == ["Grbl 1.1h ['$' for help]", "ok"]

        asyncio.run(scenario())

    def test_connection_refused(self) -> None:
        async def scenario():
            server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
            port = server.sockets[0].getsockname()[1]
            server.close()
            await server.wait_closed()
            transport = TcpTransport("127.0.0.1", port, connect_timeout=2.0)
            with pytest.raises(TransportConnectError):
                await transport.connect()
            assert not transport.is_connected

        asyncio.run(scenario())

    def test_write_when_closed(self) -> None:
        async def scenario():
            with pytest.raises(NotConnected):
                await TcpTransport("127.0.0.1", 23).write(b"?")

        asyncio.run(scenario())

    def test_requires_host(self) -> None:
        with pytest.raises(InvalidParameterError):
            TcpTransport("")


class TestWebSocketTransport:
    def test_frames_are_split_into_lines(self) -> None:
        async def scenario():
            received: list = []

            async def handler(ws):
                received.append(await ws.recv())
                received.append(await ws.recv())
                await ws.send("o")
                await ws.send("k\n<Idle|MPos:0.000,0.000,0.000>\n")
                await ws.send("ok\n")

            async with websockets.serve(handler, "127.0.0.1", 0) as server:
                port = list(server.sockets)[0].getsockname()[1]
                transport = WebSocketTransport(f"ws://127.0.0.1:{port}")
                await transport.connect()
                await transport.send("$G")
                await transport.write(b"?")
                lines = await asyncio.wait_for(collect(transport, 3), timeout=5.0)
                await transport.disconnect()

            assert received == ["$G\n", b"?"]
            assert lines == ["ok", "<Idle|MPos:0.000,0.000,0.000>", "ok"]

        asyncio.run(scenario())

    def test_rejects_non_websocket_url(self) -> None:
        with pytest.raises(InvalidParameterError):
            WebSocketTransport("http://cnc.local")

    def test_connect_failure(self) -> None:
        async def scenario():
            server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
            port = server.sockets[0].getsockname()[1]
            server.close()
            await server.wait_closed()
            transport = WebSocketTransport(f"ws://127.0.0.1:{port}", open_timeout=2.0)
            with pytest.raises(TransportConnectError):
                await transport.connect()

        asyncio.run(scenario())


class TestSerialTransport:
    def test_parameters_validated(self) -> None:
        with pytest.raises(InvalidParameterError):
            SerialTransport("/dev/ttyUSB0", baud=1234)
        with pytest.raises(InvalidParameterError):
            SerialTransport("")

    def test_available_ports(self, monkeypatch) -> None:
        class FakePort:
            def __init__(self, device):
                self.device = device

        monkeypatch.setattr(
            serial_transport.list_ports,
            "comports",
            lambda: [FakePort("/dev/ttyUSB0"), FakePort("/dev/ttyACM0")],
        )
        assert serial_transport.available_ports() == ["/dev/ttyUSB0", "/dev/ttyACM0"]

    def test_missing_port_fails_to_connect(self, tmp_path) -> None:
        async def scenario():
            transport = SerialTransport(str(tmp_path / "no-such-tty"), connect_delay=0)
            with pytest.raises(TransportConnectError):
                await transport.connect()

        asyncio.run(scenario())


class TestBluetoothTransport:
    def test_requires_address(self) -> None:
        with pytest.raises(InvalidParameterError):
            BluetoothTransport("")

    @pytest.mark.skipif(bluetooth_supported(), reason="platform has RFCOMM sockets")
    def test_unsupported_platform(self) -> None:
        async def scenario():
            with pytest.raises(TransportConnectError):
                await BluetoothTransport("00:11:22:33:44:55").connect()

        asyncio.run(scenario())
