"""
Shared fixtures: a manual scheduler, mock-transport HTTP clients and
builders for platform payloads.
"""
import base64
import json
from typing import Callable, List, Optional

import httpx
import pytest

from relay.schemas.broadcast import ChatCredentials, ParsedComment, RawChatMessage
from relay.utils.scheduler import call_maybe_async


class ManualHandle:
    def __init__(self, interval, callback, name=""):
        self.interval = interval
        self.callback = callback
        self.name = name
        self._cancelled = False

    @property
    def cancelled(self):
        return self._cancelled

    def cancel(self):
        self._cancelled = True


class ManualScheduler:
    """Scheduler whose ticks only run when a test fires them."""

    def __init__(self):
        self.handles: List[ManualHandle] = []

    def schedule_repeating(self, interval, callback, name=""):
        handle = ManualHandle(interval, callback, name)
        self.handles.append(handle)
        return handle

    def active(self, name: Optional[str] = None) -> List[ManualHandle]:
        return [h for h in self.handles if not h.cancelled and (name is None or h.name == name)]

    async def tick(self, name: Optional[str] = None) -> None:
        """Fire one tick of every active job (optionally only those named ``name``)."""
        for handle in self.active(name):
            if not handle.cancelled:
                await call_maybe_async(handle.callback)


class RecordingHandler:
    """MockTransport handler that records requests and replays queued responses."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def json_bodies(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]


def make_jwt(exp) -> str:
    """Unsigned three-segment JWT carrying ``exp``."""
    def segment(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    return f"{segment({'alg': 'HS256', 'typ': 'JWT'})}.{segment({'exp': exp})}.signature"


def chat_envelope(uuid, text="hello", timestamp=1700000000000, kind=1, sender=None, lang="en") -> RawChatMessage:
    if sender is None:
        sender = {
            "user_id": "periscope-1",
            "twitter_id": "1111",
            "username": "viewer",
            "display_name": "Viewer One",
            "profile_image_url": "https://pbs.example/viewer.jpg",
            "verified": False,
        }
    payload = {
        "uuid": uuid,
        "body": json.dumps({"body": text, "timestamp": timestamp}),
        "sender": sender,
        "lang": lang,
    }
    return RawChatMessage(kind=kind, payload=json.dumps(payload), signature="sig")


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def mock_http():
    """Factory: build an AsyncClient whose requests go to ``responder``."""
    def factory(responder):
        handler = RecordingHandler(responder)
        return httpx.AsyncClient(transport=httpx.MockTransport(handler)), handler

    return factory


@pytest.fixture
def credentials():
    return ChatCredentials(
        access_token="access-123",
        endpoint="https://chat.example.pscp.tv",
        room_id="room-1",
        expires_at=1_700_003_600_000,
    )


@pytest.fixture
def sample_comment():
    return ParsedComment(
        id="c-1",
        user_id="1111",
        username="viewer",
        display_name="Viewer One",
        comment="hello",
        profile_image="https://pbs.example/viewer.jpg",
        timestamp=1700000000000,
    )


@pytest.fixture
def jwt_factory():
    return make_jwt


@pytest.fixture
def envelope_factory():
    return chat_envelope
