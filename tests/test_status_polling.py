"""Tests for the background ``?`` status poller."""

from __future__ import annotations

import asyncio

import pytest

from fakes import IDLE_STATUS, drain_events, events_of, open_session, wait_until
from titan_sender.types import ConnectionStateKind, MachineState
from titan_sender.utils.constants import RT_STATUS
from titan_sender.utils.exceptions import InvalidParameterError


class TestStatusPolling:
    def test_polls_at_configured_interval(self) -> None:
        async def scenario():
            session, transport = await open_session(poll_status=True, status_poll_interval=0.05)
            try:
                await wait_until(lambda: transport.realtime.count(RT_STATUS) >= 3)
                assert transport.sent_lines == []
                transport.feed(IDLE_STATUS)
                await wait_until(lambda: session.ready)
                assert session.status.state == MachineState.IDLE
                events = drain_events(session.event_q)
                assert events_of(events, "ready")[0][1] is True
                assert events_of(events, "status")
            finally:
                await session.disconnect()

        asyncio.run(scenario())

    def test_repeated_failures_drop_the_link(self) -> None:
        async def scenario():
            session, transport = await open_session(
                poll_status=True,
                status_poll_interval=0.05,
                status_query_failure_limit=2,
            )
            transport.fail_writes = True
            await wait_until(
                lambda: session.connection_state.kind == ConnectionStateKind.ERROR,
                timeout=3.0,
            )
            await session.wait_closed()
            assert not session.is_connected
            assert session.connection_state.message == (
                "Status query error: simulated write failure"
            )
            logs = [e[1] for e in events_of(drain_events(session.event_q), "log")]
            assert "[status] Query failed (1/2)" in logs

        asyncio.run(scenario())

    def test_no_polling_when_disabled(self) -> None:
        async def scenario():
            session, transport = await open_session()
            try:
                await asyncio.sleep(0.1)
                assert transport.writes == []
            finally:
                await session.disconnect()

        asyncio.run(scenario())


class TestPollSettings:
    def test_interval_floor(self) -> None:
        async def scenario():
            session, _ = await open_session()
            try:
                with pytest.raises(InvalidParameterError):
                    session.set_status_poll_interval(0.01)
                session.set_status_poll_interval("0.5")
                assert session._status_poll_interval == 0.5
            finally:
                await session.disconnect()

        asyncio.run(scenario())

    @pytest.mark.parametrize("value,expected", [(0, 1), (5, 5), (50, 10), ("junk", 3)])
    def test_failure_limit_clamped(self, value, expected) -> None:
        async def scenario():
            session, _ = await open_session()
            try:
                session.set_status_query_failure_limit(value)
                assert session._status_query_failure_limit == expected
            finally:
                await session.disconnect()

        asyncio.run(scenario())
