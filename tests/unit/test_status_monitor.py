"""Unit tests for StatusMonitor."""
from unittest.mock import AsyncMock

import httpx
import pytest

from relay.ingest.status_monitor import StatusMonitor


def _states(*states):
    pending = list(states)

    def responder(request):
        state = pending.pop(0) if len(pending) > 1 else pending[0]
        if isinstance(state, httpx.Response):
            return state
        return httpx.Response(200, json={"broadcasts": {"b-1": {"id": "b-1", "state": state}}})

    return responder


@pytest.mark.unit
@pytest.mark.asyncio
class TestStatusMonitor:
    async def test_reports_only_changes(self, mock_http, scheduler):
        client, handler = mock_http(_states("RUNNING", "RUNNING", "ENDED"))
        on_change = AsyncMock()
        monitor = StatusMonitor(http_client=client, scheduler=scheduler, poll_interval=30.0)
        monitor.start("b-1", on_change)

        await scheduler.tick("status-poll")
        await scheduler.tick("status-poll")
        on_change.assert_not_awaited()

        await scheduler.tick("status-poll")
        on_change.assert_awaited_once_with("ENDED")
        assert monitor.get_current_state() == "ENDED"
        assert handler.requests[0].url.params["ids"] == "b-1"

    @pytest.mark.parametrize("terminal", ["ENDED", "TIMED_OUT"])
    async def test_stops_after_terminal_state(self, mock_http, scheduler, terminal):
        client, _ = mock_http(_states(terminal))
        on_change = AsyncMock()
        monitor = StatusMonitor(http_client=client, scheduler=scheduler)
        monitor.start("b-1", on_change)

        await scheduler.tick("status-poll")

        assert not monitor.is_running
        assert scheduler.active("status-poll") == []
        on_change.assert_awaited_once_with(terminal)

    async def test_stops_even_if_callback_raises(self, mock_http, scheduler):
        client, _ = mock_http(_states("ENDED"))
        monitor = StatusMonitor(http_client=client, scheduler=scheduler)
        monitor.start("b-1", AsyncMock(side_effect=RuntimeError("boom")))

        with pytest.raises(RuntimeError):
            await monitor.check_once()

        assert not monitor.is_running

    async def test_non_terminal_change_keeps_running(self, mock_http, scheduler):
        client, _ = mock_http(_states("NOT_STARTED"))
        on_change = AsyncMock()
        monitor = StatusMonitor(http_client=client, scheduler=scheduler)
        monitor.start("b-1", on_change)

        await scheduler.tick("status-poll")

        on_change.assert_awaited_once_with("NOT_STARTED")
        assert monitor.is_running

    async def test_lookup_errors_are_transient(self, mock_http, scheduler):
        client, _ = mock_http(_states(httpx.Response(503), "ENDED"))
        on_change = AsyncMock()
        monitor = StatusMonitor(http_client=client, scheduler=scheduler)
        monitor.start("b-1", on_change)

        await scheduler.tick("status-poll")
        assert monitor.is_running
        on_change.assert_not_awaited()

        await scheduler.tick("status-poll")
        on_change.assert_awaited_once_with("ENDED")

    async def test_stop_prevents_further_ticks(self, mock_http, scheduler):
        client, handler = mock_http(_states("RUNNING"))
        monitor = StatusMonitor(http_client=client, scheduler=scheduler)
        monitor.start("b-1", AsyncMock())
        monitor.stop()

        await scheduler.tick("status-poll")
        await monitor.check_once()

        assert handler.requests == []
