"""
Chat History Poller

Polls the chat server's history endpoint on an interval, following the
server-issued cursor. The cursor survives stop()/start(), so the session can
swap in fresh credentials without losing its read position.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional, Union

import httpx
from pydantic import ValidationError

from relay.config import settings
from relay.schemas.broadcast import ChatCredentials, ChatHistoryResponse, RawChatMessage
from relay.utils.http import create_http_client, describe_error, response_message
from relay.utils.logging import get_logger
from relay.utils.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler, call_maybe_async

logger = get_logger(__name__, category="chat")

HISTORY_PATH = "/chatapi/v1/history"

MessagesCallback = Callable[[List[RawChatMessage]], Union[Awaitable[Any], Any]]
TokenExpiredCallback = Callable[[], Union[Awaitable[Any], Any]]


def _validate_entries(entries: List[Any]) -> List[RawChatMessage]:
    """Validate history entries one by one, dropping those that are malformed."""
    messages: List[RawChatMessage] = []
    for entry in entries:
        try:
            messages.append(RawChatMessage.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed chat history entry: {e.error_count()} validation error(s)")
    return messages


class ChatPoller:
    """Cursor-following chat history poller with rate-limit backoff."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        scheduler: Optional[Scheduler] = None,
        poll_interval: Optional[float] = None,
        max_poll_interval: Optional[float] = None,
        page_limit: Optional[int] = None,
    ):
        """
        Initialize chat poller.

        Args:
            http_client: Client for the history endpoint
            scheduler: Scheduler for the polling job (defaults to asyncio)
            poll_interval: Base interval in seconds (defaults to settings.poll_interval_seconds)
            max_poll_interval: Ceiling for rate-limit doubling
            page_limit: Messages requested per history page
        """
        self.http_client = http_client or create_http_client()
        self.scheduler = scheduler or AsyncioScheduler()
        self.base_interval = poll_interval or settings.poll_interval_seconds
        self.max_interval = max(max_poll_interval or settings.max_poll_interval_seconds, self.base_interval)
        self.page_limit = page_limit or settings.history_page_limit

        self._cursor = ""
        self._current_interval = self.base_interval
        self._handle: Optional[ScheduledHandle] = None
        self._credentials: Optional[ChatCredentials] = None
        self._on_messages: Optional[MessagesCallback] = None
        self._on_token_expired: Optional[TokenExpiredCallback] = None

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    @property
    def current_interval(self) -> float:
        return self._current_interval

    def get_cursor(self) -> str:
        return self._cursor

    def start(
        self,
        credentials: ChatCredentials,
        on_messages: MessagesCallback,
        on_token_expired: Optional[TokenExpiredCallback] = None,
    ) -> None:
        """Begin polling with ``credentials``. Restarting keeps the cursor."""
        if self._handle is not None:
            self.stop()

        self._credentials = credentials
        self._on_messages = on_messages
        self._on_token_expired = on_token_expired
        self._current_interval = self.base_interval
        self._schedule()
        logger.info(
            f"Chat polling started - endpoint: {credentials.endpoint}, "
            f"interval: {self._current_interval}s, cursor: {self._cursor or '(start)'}"
        )

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.info("Chat polling stopped")

    def _schedule(self) -> None:
        self._handle = self.scheduler.schedule_repeating(
            self._current_interval, self.poll_once, name="chat-poll"
        )

    def _request_body(self, credentials: ChatCredentials) -> dict:
        body = {
            "access_token": credentials.access_token,
            "cursor": self._cursor,
            "limit": self.page_limit,
            "quick_get": False,
        }
        if self._cursor == "":
            body["since"] = 0
        return body

    async def poll_once(self) -> None:
        """Run a single polling tick."""
        handle = self._handle
        credentials = self._credentials
        if handle is None or credentials is None:
            return

        url = f"{credentials.endpoint.rstrip('/')}{HISTORY_PATH}"
        try:
            response = await self.http_client.post(url, json=self._request_body(credentials))
        except httpx.RequestError as e:
            logger.error(f"Chat history request failed: {describe_error(e)}")
            return

        # Stopped or restarted while the request was in flight
        if handle is not self._handle:
            return

        if response.status_code == 401:
            logger.warning("Chat access token rejected (401); token refresh required")
            if self._on_token_expired is not None:
                await call_maybe_async(self._on_token_expired)
            return

        if response.status_code == 429:
            self._back_off()
            return

        if not response.is_success:
            logger.warning(
                f"Failed to fetch chat history: {response.status_code} {response_message(response)}"
            )
            return

        try:
            history = ChatHistoryResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Malformed chat history response: {e}")
            return

        # An empty cursor means "no advancement", never "start over"
        if history.cursor:
            self._cursor = history.cursor

        messages = _validate_entries(history.messages or [])
        if messages and self._on_messages is not None:
            logger.debug(f"Fetched {len(messages)} chat messages")
            await call_maybe_async(self._on_messages, messages)

    def _back_off(self) -> None:
        previous = self._current_interval
        self._current_interval = min(previous * 2, self.max_interval)
        logger.warning(
            f"Rate limited (429); polling interval {previous}s -> {self._current_interval}s"
        )
        if self._handle is not None:
            self._handle.cancel()
        self._schedule()
