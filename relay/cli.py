"""
Command-line configuration

    x-live-relay [<broadcast-url>] (--service-id <id> | --service-name <name>)
                 [--host <host>] [--port <port>] [--interval <ms>] [--viewer-port <port>]

The broadcast URL may be omitted; the session then relays the broadcast
configured on the selected receiver service.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import NoReturn, Optional, Sequence

from relay.config import settings
from relay.delivery.service_resolver import ServiceById, ServiceByName, ServiceTarget
from relay.ingest.broadcast_resolver import extract_broadcast_id
from relay.result import Err, Ok, Result
from relay.schemas.errors import (
    ConfigError,
    ConflictingServiceOptions,
    InvalidArguments,
    InvalidPort,
    InvalidUrl,
    InvalidViewerPort,
    MissingServiceTarget,
)
from relay.utils.logging import get_logger

logger = get_logger(__name__, category="system")

PROG = "x-live-relay"
USAGE = (
    f"{PROG} [<broadcast-url>] (--service-id <id> | --service-name <name>) "
    "[--host <host>] [--port <port>] [--interval <ms>] [--viewer-port <port>]"
)


@dataclass(frozen=True)
class CLIConfig:
    broadcast_url: Optional[str]
    receiver_host: str
    receiver_port: int
    service_target: ServiceTarget
    poll_interval_ms: int
    viewer_count_port: int

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000


class _ArgumentError(Exception):
    pass


class _ResultArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting on malformed input."""

    def error(self, message: str) -> NoReturn:
        raise _ArgumentError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = _ResultArgumentParser(
        prog=PROG,
        usage=USAGE,
        description="Relay live broadcast chat into a local comment receiver.",
    )
    parser.add_argument("broadcast_url", nargs="?", help="Broadcast URL or bare broadcast id")
    parser.add_argument("--service-id", help="Receiver service id")
    parser.add_argument("--service-name", help="Receiver service name (must be unique)")
    parser.add_argument("--host", help=f"Receiver host (default: {settings.receiver_host})")
    parser.add_argument("--port", help=f"Receiver port (default: {settings.receiver_port})")
    parser.add_argument(
        "--interval",
        help=f"Chat polling interval in milliseconds (default: {int(settings.poll_interval_seconds * 1000)})",
    )
    parser.add_argument(
        "--viewer-port", help=f"Viewer count server port (default: {settings.viewer_count_port})"
    )
    return parser


def _parse_port(raw: str) -> Optional[int]:
    try:
        port = int(raw)
    except ValueError:
        return None
    if 1 <= port <= 65535:
        return port
    return None


def _parse_interval(raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    # Non-positive or non-finite values fall back to the default
    if not value > 0 or value == float("inf"):
        return default
    return int(value)


def parse_args(argv: Sequence[str]) -> Result[CLIConfig, ConfigError]:
    """
    Parse command-line arguments (without the program name).

    Returns Err with a ConfigError for any invalid combination or value.
    """
    parser = _build_parser()
    try:
        args, unknown = parser.parse_known_args(list(argv))
    except _ArgumentError as e:
        return Err(InvalidArguments(message=str(e)))

    if unknown:
        logger.warning(f"Ignoring unrecognized arguments: {' '.join(unknown)}")

    if args.service_id is not None and args.service_name is not None:
        return Err(ConflictingServiceOptions())
    if args.service_id is not None:
        target: ServiceTarget = ServiceById(service_id=args.service_id)
    elif args.service_name is not None:
        target = ServiceByName(service_name=args.service_name)
    else:
        return Err(MissingServiceTarget())

    if args.broadcast_url is not None and isinstance(extract_broadcast_id(args.broadcast_url), Err):
        return Err(InvalidUrl(url=args.broadcast_url))

    port = settings.receiver_port
    if args.port is not None:
        parsed = _parse_port(args.port)
        if parsed is None:
            return Err(InvalidPort(port=args.port))
        port = parsed

    viewer_port = settings.viewer_count_port
    if args.viewer_port is not None:
        parsed = _parse_port(args.viewer_port)
        if parsed is None:
            return Err(InvalidViewerPort(port=args.viewer_port))
        viewer_port = parsed

    return Ok(
        CLIConfig(
            broadcast_url=args.broadcast_url,
            receiver_host=args.host or settings.receiver_host,
            receiver_port=port,
            service_target=target,
            poll_interval_ms=_parse_interval(args.interval, int(settings.poll_interval_seconds * 1000)),
            viewer_count_port=viewer_port,
        )
    )


def log_config(config: CLIConfig, service_id: str) -> None:
    broadcast = config.broadcast_url or "(from service)"
    logger.info(
        f"Configuration - broadcast: {broadcast}, receiver: {config.receiver_host}:{config.receiver_port}, "
        f"service: {service_id}, poll interval: {config.poll_interval_ms}ms, "
        f"viewer port: {config.viewer_count_port}"
    )


def format_config_error(error: ConfigError) -> str:
    """Render a ConfigError as a user-facing message."""
    usage = f"Usage: {USAGE}"
    if isinstance(error, MissingServiceTarget):
        return f"Error: no receiver service selected. Pass --service-name or --service-id.\n{usage}"
    if isinstance(error, ConflictingServiceOptions):
        return f"Error: --service-name and --service-id cannot be used together.\n{usage}"
    if isinstance(error, InvalidUrl):
        return (
            f"Error: invalid broadcast URL: {error.url}\n"
            "Accepted forms: https://x.com/i/broadcasts/{id} or a bare broadcast id"
        )
    if isinstance(error, InvalidPort):
        return f"Error: invalid port: {error.port}\nUse an integer between 1 and 65535."
    if isinstance(error, InvalidViewerPort):
        return f"Error: invalid viewer count port: {error.port}\nUse an integer between 1 and 65535."
    return f"Error: {error.message}\n{usage}"
