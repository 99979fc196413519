"""
Broadcast Status Monitor

Periodically re-fetches the broadcast's lifecycle state and reports
transitions. Once the broadcast reaches a terminal state (ENDED or
TIMED_OUT) the monitor notifies and stops itself.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from relay.config import settings
from relay.ingest.broadcast_resolver import fetch_broadcast_record
from relay.result import Err
from relay.schemas.broadcast import STATE_RUNNING, TERMINAL_STATES
from relay.utils.http import create_http_client
from relay.utils.logging import get_logger
from relay.utils.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler, call_maybe_async

logger = get_logger(__name__, category="status")

StateChangeCallback = Callable[[str], Union[Awaitable[Any], Any]]


class StatusMonitor:
    """Polls broadcast state and signals lifecycle changes."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        scheduler: Optional[Scheduler] = None,
        poll_interval: Optional[float] = None,
    ):
        self.http_client = http_client or create_http_client()
        self.scheduler = scheduler or AsyncioScheduler()
        self.poll_interval = poll_interval or settings.status_poll_interval_seconds

        self._state = STATE_RUNNING
        self._broadcast_id: Optional[str] = None
        self._on_state_change: Optional[StateChangeCallback] = None
        self._handle: Optional[ScheduledHandle] = None

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    def get_current_state(self) -> str:
        return self._state

    def start(self, broadcast_id: str, on_state_change: StateChangeCallback) -> None:
        self.stop()
        self._state = STATE_RUNNING
        self._broadcast_id = broadcast_id
        self._on_state_change = on_state_change
        self._handle = self.scheduler.schedule_repeating(
            self.poll_interval, self.check_once, name="status-poll"
        )
        logger.info(f"Monitoring broadcast {broadcast_id} every {self.poll_interval}s")

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def check_once(self) -> None:
        """Run a single status check."""
        handle = self._handle
        broadcast_id = self._broadcast_id
        if handle is None or broadcast_id is None:
            return

        result = await fetch_broadcast_record(self.http_client, broadcast_id)
        if handle is not self._handle:
            return

        if isinstance(result, Err):
            logger.warning(
                f"Failed to fetch broadcast state: {result.error.status} {result.error.message}"
            )
            return

        record = result.value
        if record is None:
            logger.warning(f"Broadcast record missing from status response: {broadcast_id}")
            return

        new_state = record.get("state")
        if not new_state or new_state == self._state:
            return

        logger.info(f"Broadcast state changed: {self._state} → {new_state}")
        self._state = new_state
        try:
            if self._on_state_change is not None:
                await call_maybe_async(self._on_state_change, new_state)
        finally:
            if new_state in TERMINAL_STATES:
                logger.info("Broadcast finished; stopping status monitor")
                self.stop()
