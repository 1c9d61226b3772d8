"""Links to the controller: USB serial, Bluetooth RFCOMM, raw TCP, WebSocket."""

from .base import StreamTransport, Transport
from .bluetooth_transport import BluetoothTransport
from .serial_transport import SerialTransport, available_ports
from .tcp_transport import TcpTransport
from .websocket_transport import WebSocketTransport

__all__ = [
    "BluetoothTransport",
    "SerialTransport",
    "StreamTransport",
    "TcpTransport",
    "Transport",
    "WebSocketTransport",
    "available_ports",
]
