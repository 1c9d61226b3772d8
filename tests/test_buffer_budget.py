"""Tests for the character-counting buffer budget."""

from __future__ import annotations

import pytest

from titan_sender.buffer_budget import BufferBudget
from titan_sender.types import QueuedLine
from titan_sender.utils.exceptions import GrblBufferOverflowException, InvalidParameterError


def line(seq: int, content: str = "G1 X10 Y10 F500") -> QueuedLine:
    return QueuedLine.create(seq, content)


class TestConstruction:
    def test_defaults(self) -> None:
        budget = BufferBudget()
        assert budget.safe_capacity == 100
        assert budget.firmware_buffer_size == 128
        assert budget.bytes_in_flight == 0
        assert budget.fits(100)
        assert not budget.fits(101)

    @pytest.mark.parametrize("capacity", [0, -1, 128, 200])
    def test_capacity_must_be_below_buffer_size(self, capacity) -> None:
        with pytest.raises(InvalidParameterError):
            BufferBudget(safe_capacity=capacity, firmware_buffer_size=128)


class TestAccounting:
    def test_byte_count_is_content_plus_newline(self) -> None:
        assert line(1, "G0 X0").byte_count == 6
        assert line(7, "G0 X0").wire_text == "N7G0 X0"

    def test_reserve_and_release(self) -> None:
        budget = BufferBudget()
        budget.reserve(line(1))
        budget.reserve(line(2))
        assert budget.bytes_in_flight == 32
        assert len(budget) == 2

        released = budget.release(1)
        assert released.sequence_number == 1
        assert budget.bytes_in_flight == 16
        assert list(budget.pending) == [2]

    def test_release_unknown_sequence_is_ignored(self) -> None:
        budget = BufferBudget()
        budget.reserve(line(1))
        assert budget.release(99) is None
        assert budget.bytes_in_flight == 16

    def test_release_oldest_follows_send_order(self) -> None:
        budget = BufferBudget()
        for seq in (1, 2, 3):
            budget.reserve(line(seq))
        assert [budget.release_oldest().sequence_number for _ in range(3)] == [1, 2, 3]
        assert budget.release_oldest() is None
        assert budget.bytes_in_flight == 0

    def test_fits_is_inclusive_of_capacity(self) -> None:
        budget = BufferBudget(safe_capacity=32)
        budget.reserve(line(1))
        assert budget.fits(16)
        assert not budget.fits(17)

    def test_reserve_refuses_overflow(self) -> None:
        budget = BufferBudget(safe_capacity=20)
        budget.reserve(line(1))
        with pytest.raises(GrblBufferOverflowException):
            budget.reserve(line(2))
        assert budget.bytes_in_flight == 16
        assert list(budget.pending) == [1]

    def test_clear(self) -> None:
        budget = BufferBudget()
        budget.reserve(line(1))
        budget.clear()
        assert budget.bytes_in_flight == 0
        assert len(budget) == 0
