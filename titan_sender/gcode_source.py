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

from __future__ import annotations

import logging
from typing import Iterable

from .types import QueuedLine
from .utils.exceptions import GcodeFileError

logger = logging.getLogger(__name__)

COMMENT_PREFIXES = (";", "(")


def is_streamable(line: str) -> bool:
    """True for a trimmed line that is neither blank nor a comment line."""
    return bool(line) and not line.startswith(COMMENT_PREFIXES)


def prepare_job_lines(lines: Iterable[str]) -> list[QueuedLine]:
    """Trim lines, drop blanks and comment lines, and number the rest from 1.

    Inline comments are left alone; the firmware strips them.
    """
    queued: list[QueuedLine] = []
    for raw in lines:
        text = (raw or "").strip()
        if not is_streamable(text):
            continue
        queued.append(QueuedLine.create(len(queued) + 1, text))
    return queued


def read_gcode_file(path: str, encoding: str = "utf-8") -> list[str]:
    """Read a G-code program, replacing undecodable bytes.

    Raises:
        GcodeFileError: If the file cannot be read
    """
    try:
        with open(path, "r", encoding=encoding, errors="replace", newline="") as f:
            lines = f.read().splitlines()
    except OSError as exc:
        raise GcodeFileError(f"Failed to read {path}: {exc}") from exc
    logger.info(f"Loaded {len(lines)} lines from {path}")
    return lines
