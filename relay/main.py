"""
x-live-relay entrypoint

Wires the relay pipeline into one running session:

- resolves the receiver service (and, when no broadcast URL is given, the
  broadcast configured on it)
- resolves the broadcast and acquires chat credentials
- polls chat, parses, deduplicates and delivers comments to the receiver
- keeps credentials fresh, retries buffered deliveries, logs stats
- serves the viewer count endpoint for the browser extension
- shuts down when the broadcast ends or on SIGINT/SIGTERM

RUNNING:
    x-live-relay https://x.com/i/broadcasts/<id> --service-name "My stream"
    python -m relay.main <id> --service-id <uuid> --port 11180
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import List, Optional, Sequence

import httpx

from relay.cli import CLIConfig, format_config_error, log_config, parse_args
from relay.config import settings
from relay.delivery.buffered_client import BufferedReceiverClient, DelayFn
from relay.delivery.duplicate_filter import DuplicateFilter
from relay.delivery.receiver_client import ReceiverClient
from relay.delivery.service_resolver import ServiceResolver, format_service_resolve_error
from relay.ingest.broadcast_resolver import BroadcastResolver, format_broadcast_error
from relay.ingest.chat_poller import ChatPoller
from relay.ingest.message_parser import parse_messages
from relay.ingest.status_monitor import StatusMonitor
from relay.ingest.token_provider import TokenProvider, format_token_error
from relay.result import Err, Ok, Result
from relay.schemas.broadcast import TERMINAL_STATES, BroadcastInfo, RawChatMessage
from relay.schemas.errors import ServiceUrlNotFound
from relay.utils.http import create_http_client
from relay.utils.logging import configure_logging, get_logger
from relay.utils.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler
from relay.viewer_count import ViewerCountServer

logger = get_logger(__name__, category="system")
token_logger = get_logger(f"{__name__}.token", category="token")
delivery_logger = get_logger(f"{__name__}.delivery", category="delivery")


class RelaySession:
    """One relay session: a single broadcast into a single receiver service."""

    def __init__(
        self,
        config: CLIConfig,
        scheduler: Optional[Scheduler] = None,
        platform_client: Optional[httpx.AsyncClient] = None,
        receiver_client: Optional[httpx.AsyncClient] = None,
        viewer_count_server: Optional[ViewerCountServer] = None,
        delay: Optional[DelayFn] = None,
    ):
        """
        Initialize session.

        Args:
            config: Parsed command-line configuration
            scheduler: Scheduler for every recurring job (defaults to asyncio)
            platform_client: HTTP client for the broadcast platform APIs
            receiver_client: HTTP client for the receiver application
            viewer_count_server: Viewer count server; pass one to override the port/host
            delay: Retry sleep for the buffered client
        """
        self.config = config
        self.scheduler = scheduler or AsyncioScheduler()
        self.platform_http = platform_client or create_http_client()
        self.receiver_http = receiver_client or create_http_client()

        self.service_resolver = ServiceResolver(
            config.receiver_host, config.receiver_port, http_client=self.receiver_http
        )
        self.broadcast_resolver = BroadcastResolver(http_client=self.platform_http)
        self.token_provider = TokenProvider(http_client=self.platform_http)
        self.chat_poller = ChatPoller(
            http_client=self.platform_http,
            scheduler=self.scheduler,
            poll_interval=config.poll_interval_seconds,
        )
        self.status_monitor = StatusMonitor(http_client=self.platform_http, scheduler=self.scheduler)
        self.duplicate_filter = DuplicateFilter()
        self.viewer_count_server = viewer_count_server or ViewerCountServer(port=config.viewer_count_port)
        self._delay = delay

        self.service_id: Optional[str] = None
        self.broadcast: Optional[BroadcastInfo] = None
        self.delivery: Optional[BufferedReceiverClient] = None

        self.total_comments = 0
        self.total_errors = 0
        self.exit_code = 0

        self._jobs: List[ScheduledHandle] = []
        self._shutting_down = False
        self._shutdown_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def prepare(self) -> Result[None, str]:
        """
        Resolve service, broadcast and credentials.

        Returns Err with a user-facing message for any fatal startup error.
        """
        resolved = await self.service_resolver.resolve(self.config.service_target)
        broadcast_url = self.config.broadcast_url
        if isinstance(resolved, Ok):
            self.service_id = resolved.value.service_id
            broadcast_url = broadcast_url or resolved.value.url
        elif isinstance(resolved.error, ServiceUrlNotFound) and broadcast_url:
            # An explicit broadcast URL makes the service's own URL irrelevant
            self.service_id = resolved.error.service_id
        else:
            return Err(format_service_resolve_error(resolved.error))

        log_config(self.config, self.service_id)

        broadcast_result = await self.broadcast_resolver.resolve(broadcast_url)
        if isinstance(broadcast_result, Err):
            return Err(format_broadcast_error(broadcast_result.error))
        self.broadcast = broadcast_result.value

        token_result = await self.token_provider.acquire(self.broadcast.media_key)
        if isinstance(token_result, Err):
            return Err(format_token_error(token_result.error))

        self.delivery = BufferedReceiverClient(
            ReceiverClient(
                self.config.receiver_host,
                self.config.receiver_port,
                self.service_id,
                owner_user_id=self.broadcast.username,
                http_client=self.receiver_http,
            ),
            delay=self._delay or asyncio.sleep,
        )
        return Ok(None)

    async def start(self) -> Result[None, str]:
        prepared = await self.prepare()
        if isinstance(prepared, Err):
            return prepared

        try:
            await self.viewer_count_server.start()
        except (OSError, RuntimeError) as e:
            return Err(f"Error: failed to start the viewer count server: {e}")

        credentials = self.token_provider.get_credentials()
        self.chat_poller.start(credentials, self.handle_messages, self.handle_token_expired)
        self.status_monitor.start(self.broadcast.broadcast_id, self.handle_state_change)

        self._jobs = [
            self.scheduler.schedule_repeating(
                settings.token_check_interval_seconds, self.check_token_expiry, name="token-check"
            ),
            self.scheduler.schedule_repeating(
                settings.buffer_flush_interval_seconds, self.retry_buffer_flush, name="buffer-flush"
            ),
            self.scheduler.schedule_repeating(
                settings.stats_interval_seconds, self.log_stats, name="stats"
            ),
        ]

        logger.info(
            f"Relay started - broadcast: '{self.broadcast.title}', user: @{self.broadcast.username}, "
            f"poll interval: {self.config.poll_interval_ms}ms"
        )
        return Ok(None)

    # ------------------------------------------------------------------
    # Pipeline callbacks
    # ------------------------------------------------------------------

    async def handle_messages(self, raw_messages: List[RawChatMessage]) -> None:
        if self.delivery is None:
            return
        for comment in parse_messages(raw_messages):
            if self.duplicate_filter.is_duplicate(comment.id):
                continue

            result = await self.delivery.send(comment)
            if isinstance(result, Ok):
                self.duplicate_filter.mark_sent(comment.id)
                self.total_comments += 1
            else:
                self.total_errors += 1
                delivery_logger.error(f"Failed to deliver comment {comment.id}: {result.error.kind}")

    async def handle_token_expired(self) -> None:
        """Chat server rejected the token: refresh, then full re-acquire, then give up."""
        token_logger.warning("Chat token rejected; refreshing")
        result = await self.token_provider.refresh()
        if isinstance(result, Ok):
            self._restart_poller()
            return

        token_logger.warning(f"Token refresh failed ({result.error.kind}); re-acquiring")
        if self.broadcast is not None:
            result = await self.token_provider.acquire(self.broadcast.media_key)
            if isinstance(result, Ok):
                self._restart_poller()
                return

        token_logger.error(f"Token re-acquisition failed ({result.error.kind}); ending session")
        self.exit_code = 1
        await self.shutdown()

    async def handle_state_change(self, state: str) -> None:
        if state in TERMINAL_STATES:
            logger.info(f"Broadcast ended ({state}); shutting down")
            await self.shutdown()

    async def check_token_expiry(self) -> None:
        if not self.token_provider.is_expiring_soon():
            return
        token_logger.info("Chat token nearing expiry; refreshing proactively")
        result = await self.token_provider.refresh()
        if isinstance(result, Ok):
            self._restart_poller()
        else:
            token_logger.warning(f"Proactive token refresh failed: {result.error.kind}")

    async def retry_buffer_flush(self) -> None:
        if self.delivery is not None and not self.delivery.is_connected():
            delivery_logger.info("Retrying receiver connection")
            await self.delivery.flush_buffer()

    def log_stats(self) -> None:
        buffered = self.delivery.get_buffer_size() if self.delivery else 0
        connected = self.delivery.is_connected() if self.delivery else False
        logger.info(
            f"Status - delivered: {self.total_comments}, errors: {self.total_errors}, "
            f"duplicate filter: {self.duplicate_filter.size()}, buffered: {buffered}, "
            f"receiver connected: {connected}"
        )

    def _restart_poller(self) -> None:
        if self._shutting_down:
            return
        credentials = self.token_provider.get_credentials()
        if credentials is None:
            return
        self.chat_poller.stop()
        self.chat_poller.start(credentials, self.handle_messages, self.handle_token_expired)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("Shutting down...")

        self.chat_poller.stop()
        self.status_monitor.stop()
        for job in self._jobs:
            job.cancel()
        self._jobs = []

        try:
            await self.viewer_count_server.stop()
        except Exception as e:
            logger.error(f"Error stopping viewer count server: {e}")

        if self.delivery is not None and self.delivery.get_buffer_size() > 0:
            delivery_logger.info(f"Flushing {self.delivery.get_buffer_size()} buffered comments")
            await self.delivery.flush_buffer()

        logger.info(
            f"Final stats - delivered: {self.total_comments}, errors: {self.total_errors}, "
            f"duplicate filter: {self.duplicate_filter.size()}"
        )

        await self.platform_http.aclose()
        await self.receiver_http.aclose()
        self._closed.set()

    def request_shutdown(self) -> asyncio.Task:
        """Schedule shutdown from a synchronous context such as a signal handler."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self.shutdown())
        return self._shutdown_task

    async def wait_closed(self) -> None:
        await self._closed.wait()


def _install_signal_handlers(session: RelaySession) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, session.request_shutdown)
        except NotImplementedError:
            # Windows event loops do not support add_signal_handler
            logger.debug(f"Signal handler for {sig!r} not supported on this platform")


async def run(argv: Sequence[str]) -> int:
    """Run a relay session; returns the process exit code."""
    config_result = parse_args(argv)
    if isinstance(config_result, Err):
        print(format_config_error(config_result.error), file=sys.stderr)
        return 1

    session = RelaySession(config_result.value)
    started = await session.start()
    if isinstance(started, Err):
        print(started.error, file=sys.stderr)
        await session.shutdown()
        return 1

    _install_signal_handlers(session)
    await session.wait_closed()
    return session.exit_code


def main(argv: Optional[Sequence[str]] = None) -> None:
    configure_logging()
    try:
        exit_code = asyncio.run(run(sys.argv[1:] if argv is None else argv))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
