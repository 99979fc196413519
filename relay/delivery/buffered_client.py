"""
Buffered Receiver Client

Wraps a CommentSender with retry/backoff and a bounded FIFO buffer. When
the receiver stays unreachable after all retries, the client switches to
buffer mode: comments queue up locally (oldest evicted at capacity) and the
caller is told the send succeeded. ``flush_buffer`` drains the queue once
the receiver is back.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, List, Optional, Sequence

from relay.config import settings
from relay.delivery.receiver_client import CommentSender
from relay.result import Err, Ok, Result
from relay.schemas.broadcast import ParsedComment
from relay.schemas.errors import NON_RETRYABLE_SEND_ERRORS, SendError
from relay.utils.logging import get_logger

logger = get_logger(__name__, category="delivery")

DelayFn = Callable[[float], Awaitable[None]]


class BufferedReceiverClient:
    def __init__(
        self,
        inner: CommentSender,
        max_buffer_size: Optional[int] = None,
        retry_delays: Optional[Sequence[float]] = None,
        delay: DelayFn = asyncio.sleep,
    ):
        """
        Initialize buffered client.

        Args:
            inner: Unretried sender (normally a ReceiverClient)
            max_buffer_size: Buffer capacity (defaults to settings.delivery_buffer_max_size)
            retry_delays: Seconds to wait before each retry (defaults to 1, 2, 4)
            delay: Awaitable sleep, injectable for tests
        """
        self.inner = inner
        self.max_buffer_size = (
            max_buffer_size if max_buffer_size is not None else settings.delivery_buffer_max_size
        )
        self.retry_delays: List[float] = list(
            retry_delays if retry_delays is not None else settings.delivery_retry_delays_seconds
        )
        self.delay = delay

        self._buffer: Deque[ParsedComment] = deque()
        self._connected = True

    def is_connected(self) -> bool:
        return self._connected

    def get_buffer_size(self) -> int:
        return len(self._buffer)

    def buffered_ids(self) -> List[str]:
        return [comment.id for comment in self._buffer]

    async def send(self, comment: ParsedComment) -> Result[None, SendError]:
        if not self._connected:
            self._enqueue(comment)
            logger.debug(f"Buffer mode: queued {comment.id} (buffer size: {len(self._buffer)})")
            return Ok(None)

        result = await self._send_with_retry(comment)
        if isinstance(result, Ok):
            return result

        if result.error.kind == "connection_refused":
            self._connected = False
            self._enqueue(comment)
            logger.error(
                f"Receiver unreachable; switching to buffer mode (buffer size: {len(self._buffer)})"
            )
            return Ok(None)

        return result

    async def flush_buffer(self) -> None:
        """Drain the buffer in order, stopping at the first failed send."""
        if not self._buffer:
            return

        logger.info(f"Flushing delivery buffer ({len(self._buffer)} comments)")
        while self._buffer:
            result = await self.inner.send(self._buffer[0])
            if isinstance(result, Err):
                self._connected = False
                logger.warning(
                    f"Buffer flush stopped ({result.error.kind}); "
                    f"{len(self._buffer)} comments remain buffered"
                )
                return
            self._buffer.popleft()

        self._connected = True
        logger.info("Buffer flushed; receiver connection restored")

    def _enqueue(self, comment: ParsedComment) -> None:
        self._buffer.append(comment)
        if len(self._buffer) > self.max_buffer_size:
            discarded = self._buffer.popleft()
            logger.warning(
                f"Delivery buffer full; discarded oldest comment {discarded.id} "
                f"(buffer size: {len(self._buffer)})"
            )

    async def _send_with_retry(self, comment: ParsedComment) -> Result[None, SendError]:
        result = await self.inner.send(comment)
        if isinstance(result, Ok) or result.error.kind in NON_RETRYABLE_SEND_ERRORS:
            return result

        attempts = len(self.retry_delays)
        for attempt, delay in enumerate(self.retry_delays, start=1):
            logger.warning(
                f"Send retry {attempt}/{attempts} for {comment.id} in {delay}s "
                f"(last error: {result.error.kind})"
            )
            await self.delay(delay)

            result = await self.inner.send(comment)
            if isinstance(result, Ok) or result.error.kind in NON_RETRYABLE_SEND_ERRORS:
                return result

        return result
