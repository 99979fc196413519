"""
Chat Token Provider

Exchanges a broadcast's media key for chat-session credentials:

1. ``live_video_stream/status`` returns a chat token (a JWT) for the stream
2. the JWT's ``exp`` claim gives the credential lifetime (no signature check;
   the issuing server stays the trust authority)
3. ``accessChatPublic`` trades the chat token for an access token, the
   region-specific chat endpoint and the room id

The provider remembers the media key and acquisition time so the session
can refresh proactively before the server invalidates the token.
"""

from __future__ import annotations

import base64
import binascii
import json
import math
import time
from typing import Callable, Optional

import httpx

from relay.result import Err, Ok, Result
from relay.schemas.broadcast import ChatCredentials
from relay.schemas.errors import (
    ApiError,
    ChatAccessDenied,
    StreamNotFound,
    StreamOffline,
    TokenError,
)
from relay.utils.http import create_http_client, describe_error, response_message
from relay.utils.logging import get_logger

logger = get_logger(__name__, category="token")

LIVE_VIDEO_STREAM_URL = "https://api.x.com/1.1/live_video_stream/status"
ACCESS_CHAT_PUBLIC_URL = "https://proxsee-cf.pscp.tv/api/v2/accessChatPublic"

# Fraction of the credential lifetime after which a refresh is due
REFRESH_THRESHOLD = 0.8


def _now_ms() -> int:
    return int(time.time() * 1000)


def decode_jwt_exp(jwt: str) -> Optional[int]:
    """
    Read the ``exp`` claim (epoch seconds) from a JWT without verifying it.

    Returns None for anything that is not a three-segment token with a
    numeric ``exp``.
    """
    parts = jwt.split(".")
    if len(parts) != 3:
        return None

    segment = parts[1]
    segment += "=" * (-len(segment) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError):
        return None

    if not isinstance(payload, dict):
        return None
    exp = payload.get("exp")
    # bool is an int subclass; a boolean exp is not a timestamp
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    if isinstance(exp, float) and not math.isfinite(exp):
        return None
    return int(exp)


class TokenProvider:
    """Acquires, refreshes and tracks chat-session credentials."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        """
        Initialize token provider.

        Args:
            http_client: Client used for both token endpoints
            clock: Returns the current time as epoch milliseconds
        """
        self.http_client = http_client or create_http_client()
        self.clock = clock

        self._media_key: Optional[str] = None
        self._credentials: Optional[ChatCredentials] = None
        self._acquired_at: Optional[int] = None

    async def acquire(self, media_key: str) -> Result[ChatCredentials, TokenError]:
        """Run the full token flow for ``media_key`` and remember it for refresh()."""
        result = await self._acquire_token(media_key)
        if isinstance(result, Ok):
            self._media_key = media_key
            self._store(result.value)
            logger.info(
                f"Chat token acquired - endpoint: {result.value.endpoint}, "
                f"room: {result.value.room_id}, expires_at: {result.value.expires_at}"
            )
        else:
            logger.warning(f"Chat token acquisition failed: {result.error.kind}")
        return result

    async def refresh(self) -> Result[ChatCredentials, TokenError]:
        """Re-run the token flow with the last acquired media key."""
        if self._media_key is None:
            return Err(StreamOffline())

        result = await self._acquire_token(self._media_key)
        if isinstance(result, Ok):
            self._store(result.value)
            logger.info(
                f"Chat token refreshed - endpoint: {result.value.endpoint}, "
                f"room: {result.value.room_id}, expires_at: {result.value.expires_at}"
            )
        else:
            logger.warning(f"Chat token refresh failed: {result.error.kind}")
        return result

    def is_expiring_soon(self) -> bool:
        if self._credentials is None or self._acquired_at is None:
            return True
        now = self.clock()
        if now >= self._credentials.expires_at:
            return True
        lifetime = self._credentials.expires_at - self._acquired_at
        elapsed = now - self._acquired_at
        return elapsed >= lifetime * REFRESH_THRESHOLD

    def get_credentials(self) -> Optional[ChatCredentials]:
        return self._credentials

    async def aclose(self) -> None:
        await self.http_client.aclose()

    def _store(self, credentials: ChatCredentials) -> None:
        self._credentials = credentials
        self._acquired_at = self.clock()

    async def _acquire_token(self, media_key: str) -> Result[ChatCredentials, TokenError]:
        # Step 1: chat token from the stream status endpoint
        try:
            response = await self.http_client.get(f"{LIVE_VIDEO_STREAM_URL}/{media_key}.json")
        except httpx.RequestError as e:
            return Err(ApiError(status=0, message=describe_error(e)))

        if not response.is_success:
            if response.status_code == 404:
                return Err(StreamNotFound(media_key=media_key))
            return Err(ApiError(status=response.status_code, message=response_message(response)))

        try:
            stream_data = response.json()
        except ValueError as e:
            return Err(ApiError(status=response.status_code, message=f"Invalid JSON: {e}"))

        chat_token = stream_data.get("chatToken") if isinstance(stream_data, dict) else None
        if not chat_token or not isinstance(chat_token, str):
            return Err(StreamOffline())

        # Step 2: lifetime from the JWT
        exp = decode_jwt_exp(chat_token)
        if exp is None:
            logger.warning("Chat token is not a decodable JWT")
            return Err(StreamOffline())

        # Step 3: exchange for chat server credentials
        try:
            chat_response = await self.http_client.post(
                ACCESS_CHAT_PUBLIC_URL, json={"chat_token": chat_token}
            )
        except httpx.RequestError as e:
            return Err(ApiError(status=0, message=describe_error(e)))

        if not chat_response.is_success:
            return Err(ChatAccessDenied())

        try:
            chat_data = chat_response.json()
            credentials = ChatCredentials(
                access_token=chat_data["access_token"],
                endpoint=chat_data["endpoint"],
                room_id=str(chat_data["room_id"]),
                expires_at=exp * 1000,
            )
        except (ValueError, KeyError, TypeError) as e:
            return Err(ApiError(status=chat_response.status_code, message=f"Malformed chat access response: {e}"))

        return Ok(credentials)


def format_token_error(error: TokenError) -> str:
    if isinstance(error, StreamNotFound):
        return f"Error: stream not found for media key: {error.media_key}"
    if isinstance(error, StreamOffline):
        return "Error: the stream is offline (no chat token available)"
    if isinstance(error, ChatAccessDenied):
        return "Error: access to the chat was denied"
    return f"Error: token API failed ({error.status}): {error.message}"
