"""Validation utilities for Titan Sender.

Operator command arguments are checked here before anything reaches the
wire, so a bad jog or override request never costs a firmware error.
"""

import math
from typing import Optional

from .constants import (
    JOG_AXES,
    OVERRIDE_MAX,
    OVERRIDE_MIN,
    STATUS_POLL_INTERVAL_MIN,
    VALID_BAUD_RATES,
    WCS_CODES,
)
from .exceptions import InvalidParameterError, InvalidRangeError


def validate_feed_rate(feed: float) -> float:
    """Validate feed rate value.

    Args:
        feed: Feed rate in mm/min

    Returns:
        The validated feed rate

    Raises:
        InvalidParameterError: If feed rate is invalid
    """
    try:
        feed = float(feed)
    except (TypeError, ValueError):
        raise InvalidParameterError("feed_rate", feed, "must be numeric")

    if not math.isfinite(feed) or feed <= 0:
        raise InvalidParameterError("feed_rate", feed, "must be positive")

    return feed


def validate_axis(axis: str) -> str:
    """Validate an axis letter and return it upper-cased.

    Raises:
        InvalidParameterError: If the axis is not one of X, Y, Z, A
    """
    if not isinstance(axis, str) or axis.strip().upper() not in JOG_AXES:
        raise InvalidParameterError("axis", axis, f"must be one of {', '.join(JOG_AXES)}")
    return axis.strip().upper()


def validate_distance(distance: float, allow_zero: bool = False) -> float:
    """Validate a signed travel distance in mm.

    Args:
        distance: Distance value
        allow_zero: Accept 0.0 (no motion) when True

    Returns:
        The validated distance

    Raises:
        InvalidParameterError: If distance is not a finite number or is zero
    """
    try:
        distance = float(distance)
    except (TypeError, ValueError):
        raise InvalidParameterError("distance", distance, "must be numeric")

    if not math.isfinite(distance):
        raise InvalidParameterError("distance", distance, "must be finite")
    if distance == 0 and not allow_zero:
        raise InvalidParameterError("distance", distance, "must be non-zero")

    return distance


def validate_override_percent(percent: int) -> int:
    """Validate a feed/spindle override percentage.

    Raises:
        InvalidParameterError: If the value is not an integer
        InvalidRangeError: If outside 10..200
    """
    try:
        percent = int(percent)
    except (TypeError, ValueError):
        raise InvalidParameterError("override", percent, "must be integer")

    if not (OVERRIDE_MIN <= percent <= OVERRIDE_MAX):
        raise InvalidRangeError(percent, OVERRIDE_MIN, OVERRIDE_MAX)

    return percent


def validate_rapid_override(percent: int) -> int:
    """Rapid overrides only exist as 100, 50 and 25 percent."""
    try:
        percent = int(percent)
    except (TypeError, ValueError):
        raise InvalidParameterError("rapid_override", percent, "must be integer")

    if percent not in (100, 50, 25):
        raise InvalidParameterError("rapid_override", percent, "must be 100, 50 or 25")

    return percent


def validate_wcs_index(index: int) -> int:
    """Validate a work coordinate system index (0 = G54 ... 5 = G59).

    Raises:
        InvalidParameterError: If the index is not an integer
        InvalidRangeError: If outside 0..5
    """
    try:
        index = int(index)
    except (TypeError, ValueError):
        raise InvalidParameterError("wcs_index", index, "must be integer")

    if not (0 <= index < len(WCS_CODES)):
        raise InvalidRangeError(index, 0, len(WCS_CODES) - 1)

    return index


def validate_port_name(port: str) -> str:
    """Validate serial port name.

    Args:
        port: Serial port name (e.g., "COM3" or "/dev/ttyUSB0")

    Returns:
        The validated port name

    Raises:
        InvalidParameterError: If port name is invalid
    """
    if not port or not isinstance(port, str):
        raise InvalidParameterError("port", port, "must be non-empty string")

    port = port.strip()
    if not port:
        raise InvalidParameterError("port", port, "must be non-empty")

    return port


def validate_baud_rate(baud: int) -> int:
    """Validate baud rate.

    Raises:
        InvalidParameterError: If baud rate is invalid
    """
    try:
        baud = int(baud)
    except (TypeError, ValueError):
        raise InvalidParameterError("baud_rate", baud, "must be integer")

    if baud not in VALID_BAUD_RATES:
        raise InvalidParameterError(
            "baud_rate",
            baud,
            f"must be one of {list(VALID_BAUD_RATES)}"
        )

    return baud


def validate_interval(interval: float, min_val: float = STATUS_POLL_INTERVAL_MIN) -> float:
    """Validate time interval.

    Args:
        interval: Time interval in seconds
        min_val: Minimum allowed value

    Returns:
        The validated interval

    Raises:
        InvalidParameterError: If interval is invalid
    """
    try:
        interval = float(interval)
    except (TypeError, ValueError):
        raise InvalidParameterError("interval", interval, "must be numeric")

    if interval < min_val:
        raise InvalidParameterError(
            "interval",
            interval,
            f"must be >= {min_val}"
        )

    return interval


def validate_host_port(text: str, default_port: Optional[int] = None) -> tuple:
    """Split ``HOST:PORT`` into a (host, port) tuple.

    Raises:
        InvalidParameterError: If the host is empty or the port is not 1..65535
    """
    if not text or not isinstance(text, str):
        raise InvalidParameterError("address", text, "must be HOST:PORT")
    host, sep, port_text = text.strip().rpartition(":")
    if not sep:
        host, port_text = text.strip(), ""
    if not host:
        raise InvalidParameterError("address", text, "missing host")
    if not port_text:
        if default_port is None:
            raise InvalidParameterError("address", text, "missing port")
        return host, default_port
    try:
        port = int(port_text)
    except ValueError:
        raise InvalidParameterError("port", port_text, "must be integer")
    if not (0 < port < 65536):
        raise InvalidRangeError(port, 1, 65535)
    return host, port
