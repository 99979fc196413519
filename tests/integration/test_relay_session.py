"""
Integration tests for RelaySession.

Drives the whole pipeline (service lookup, broadcast lookup, token flow,
polling, parsing, dedup, delivery, buffering, status shutdown) against
fake platform and receiver endpoints, firing scheduler ticks by hand.
"""
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from relay.cli import parse_args
from relay.main import RelaySession, run
from relay.result import Err, Ok

BROADCAST_ID = "1YpKkgVgevZxj"
BROADCAST_URL = f"https://x.com/i/broadcasts/{BROADCAST_ID}"
EXP = 4_102_444_800  # 2100-01-01


class FakePlatform:
    """Broadcast lookup, token flow and chat history in one responder."""

    def __init__(self, chat_token):
        self.chat_token = chat_token
        self.state = "RUNNING"
        self.history = []
        self.token_requests = 0
        self.history_bodies = []

    def queue_history(self, *batches):
        for messages, cursor in batches:
            self.history.append(
                httpx.Response(
                    200,
                    json={"messages": [m.model_dump() for m in messages], "cursor": cursor},
                )
            )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/broadcasts/show.json"):
            record = {
                "id": BROADCAST_ID,
                "media_key": "28_1",
                "title": "Test stream",
                "state": self.state,
                "username": "host",
                "user_display_name": "Host",
                "start": "2024-01-01T00:00:00Z",
            }
            return httpx.Response(200, json={"broadcasts": {BROADCAST_ID: record}})
        if "/live_video_stream/status/" in path:
            self.token_requests += 1
            return httpx.Response(200, json={"chatToken": self.chat_token})
        if path.endswith("/accessChatPublic"):
            return httpx.Response(
                200, json={"access_token": "access-1", "endpoint": "https://chat.example", "room_id": "r1"}
            )
        if path.endswith("/chatapi/v1/history"):
            self.history_bodies.append(json.loads(request.content))
            if self.history:
                return self.history.pop(0)
            return httpx.Response(200, json={"messages": [], "cursor": ""})
        return httpx.Response(404)


class FakeReceiver:
    def __init__(self, services):
        self.services = services
        self.available = True
        self.comments = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if not self.available:
            raise httpx.ConnectError("refused", request=request)
        if request.url.path == "/api/services":
            return httpx.Response(200, json=self.services)
        if request.url.path == "/api/comments":
            self.comments.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404)

    def delivered_ids(self):
        return [c["comment"]["id"] for c in self.comments]


@pytest.fixture
def platform(jwt_factory):
    return FakePlatform(jwt_factory(EXP))


@pytest.fixture
def receiver():
    return FakeReceiver([{"id": "svc-1", "name": "Main", "url": BROADCAST_URL}])


@pytest.fixture
def viewer_server():
    server = MagicMock()
    server.start = AsyncMock()
    server.stop = AsyncMock()
    return server


@pytest.fixture
def make_session(scheduler, mock_http, platform, receiver, viewer_server):
    def factory(argv):
        platform_client, _ = mock_http(platform)
        receiver_client, _ = mock_http(receiver)
        return RelaySession(
            parse_args(argv).value,
            scheduler=scheduler,
            platform_client=platform_client,
            receiver_client=receiver_client,
            viewer_count_server=viewer_server,
            delay=AsyncMock(),
        )

    return factory


@pytest.mark.integration
@pytest.mark.asyncio
class TestRelaySession:
    async def test_start_wires_every_job(self, make_session, scheduler, viewer_server):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])

        assert await session.start() == Ok(None)

        assert session.service_id == "svc-1"
        assert session.broadcast.media_key == "28_1"
        viewer_server.start.assert_awaited_once()
        names = sorted(h.name for h in scheduler.active())
        assert names == ["buffer-flush", "chat-poll", "stats", "status-poll", "token-check"]

    async def test_broadcast_url_comes_from_service(self, make_session):
        session = make_session(["--service-id", "svc-1"])
        assert await session.start() == Ok(None)
        assert session.broadcast.broadcast_id == BROADCAST_ID

    async def test_missing_service_is_fatal(self, make_session):
        session = make_session([BROADCAST_URL, "--service-name", "Other"])
        result = await session.start()
        assert isinstance(result, Err)
        assert "Main" in result.error

    async def test_ended_broadcast_is_fatal(self, make_session, platform):
        platform.state = "ENDED"
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        result = await session.start()
        assert isinstance(result, Err)
        assert "ended" in result.error

    async def test_delivers_each_comment_once(
        self, make_session, scheduler, platform, receiver, envelope_factory
    ):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        await session.start()

        platform.queue_history(
            ([envelope_factory("a"), envelope_factory("b"), envelope_factory("a")], "c1"),
            ([envelope_factory("b"), envelope_factory("c", kind=2), envelope_factory("d")], "c2"),
        )
        await scheduler.tick("chat-poll")
        await scheduler.tick("chat-poll")

        assert receiver.delivered_ids() == ["a", "b", "d"]
        assert session.total_comments == 3
        assert session.duplicate_filter.size() == 3
        assert platform.history_bodies[1]["cursor"] == "c1"
        assert receiver.comments[0]["service"] == {"id": "svc-1"}

    async def test_system_entries_do_not_stall_delivery(
        self, make_session, scheduler, platform, receiver, envelope_factory
    ):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        await session.start()

        page = {
            "messages": [envelope_factory("a").model_dump(), {"kind": 2, "payload": None}],
            "cursor": "c1",
        }
        platform.history.append(httpx.Response(200, json=page))
        platform.queue_history(([envelope_factory("b")], "c2"))
        await scheduler.tick("chat-poll")
        await scheduler.tick("chat-poll")

        assert receiver.delivered_ids() == ["a", "b"]
        assert platform.history_bodies[1]["cursor"] == "c1"

    async def test_receiver_outage_buffers_then_flushes(
        self, make_session, scheduler, platform, receiver, envelope_factory
    ):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        await session.start()

        receiver.available = False
        platform.queue_history(([envelope_factory("a"), envelope_factory("b")], "c1"))
        await scheduler.tick("chat-poll")

        assert not session.delivery.is_connected()
        assert session.delivery.get_buffer_size() == 2
        assert receiver.comments == []

        receiver.available = True
        await scheduler.tick("buffer-flush")

        assert receiver.delivered_ids() == ["a", "b"]
        assert session.delivery.is_connected()

    async def test_token_rejection_refreshes_and_keeps_cursor(
        self, make_session, scheduler, platform, envelope_factory
    ):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        await session.start()
        platform.queue_history(([envelope_factory("a")], "c1"))
        await scheduler.tick("chat-poll")

        platform.history.append(httpx.Response(401))
        await scheduler.tick("chat-poll")

        assert platform.token_requests == 2
        assert len(scheduler.active("chat-poll")) == 1

        await scheduler.tick("chat-poll")
        assert platform.history_bodies[-1]["cursor"] == "c1"

    async def test_token_exhaustion_ends_session(self, make_session, scheduler, platform):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        await session.start()

        platform.chat_token = None
        platform.history.append(httpx.Response(401))
        await scheduler.tick("chat-poll")

        assert session.exit_code == 1
        assert scheduler.active() == []

    async def test_broadcast_end_shuts_down(self, make_session, scheduler, platform, viewer_server):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        await session.start()

        platform.state = "ENDED"
        await scheduler.tick("status-poll")
        await session.wait_closed()

        assert session.exit_code == 0
        assert scheduler.active() == []
        viewer_server.stop.assert_awaited_once()

    async def test_shutdown_flushes_buffer_once(self, make_session, scheduler, platform, receiver, envelope_factory):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        await session.start()
        receiver.available = False
        platform.queue_history(([envelope_factory("a")], "c1"))
        await scheduler.tick("chat-poll")

        receiver.available = True
        await session.shutdown()
        await session.shutdown()

        assert receiver.delivered_ids() == ["a"]

    async def test_request_shutdown_keeps_a_single_task(self, make_session, viewer_server):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        await session.start()

        first = session.request_shutdown()
        second = session.request_shutdown()
        assert first is second

        await session.wait_closed()
        await first
        assert first.done()
        viewer_server.stop.assert_awaited_once()

    async def test_stats_line_renders_counters(self, make_session, scheduler, platform, envelope_factory, caplog):
        session = make_session([BROADCAST_URL, "--service-name", "Main"])
        await session.start()
        platform.queue_history(([envelope_factory("a")], "c1"))
        await scheduler.tick("chat-poll")

        with caplog.at_level(logging.INFO, logger="relay.main"):
            await scheduler.tick("stats")

        message = caplog.records[-1].getMessage()
        assert "delivered: 1" in message
        assert "errors: 0" in message
        assert "buffered: 0" in message
        assert "receiver connected: True" in message


@pytest.mark.integration
@pytest.mark.asyncio
async def test_run_reports_config_errors(capsys):
    assert await run(["--port", "80"]) == 1
    assert "--service-name" in capsys.readouterr().err
