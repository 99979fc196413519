"""
Broadcast Resolver

Turns a broadcast URL (or bare broadcast id) into a BroadcastInfo snapshot
using the platform's broadcast lookup endpoint.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from relay.result import Err, Ok, Result
from relay.schemas.broadcast import STATE_ENDED, BroadcastInfo
from relay.schemas.errors import (
    ApiError,
    BroadcastAlreadyEnded,
    BroadcastError,
    BroadcastNotFound,
    InvalidUrl,
)
from relay.utils.http import create_http_client, describe_error, response_message
from relay.utils.logging import get_logger

logger = get_logger(__name__, category="status")

BROADCAST_SHOW_URL = "https://api.x.com/1.1/broadcasts/show.json"

BROADCAST_URL_PATTERN = re.compile(
    r"^https?://(?:x\.com|twitter\.com)/i/broadcasts/([A-Za-z0-9_]+)"
)
BROADCAST_ID_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def extract_broadcast_id(url_or_id: str) -> Result[str, InvalidUrl]:
    """Pull the broadcast id out of a broadcast URL, or accept a bare id."""
    if not url_or_id:
        return Err(InvalidUrl(url=url_or_id))

    match = BROADCAST_URL_PATTERN.match(url_or_id)
    if match:
        return Ok(match.group(1))

    if BROADCAST_ID_PATTERN.fullmatch(url_or_id):
        return Ok(url_or_id)

    return Err(InvalidUrl(url=url_or_id))


def _parse_start(value: Optional[str]) -> int:
    if not value:
        return 0
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        logger.warning(f"Failed to parse broadcast start timestamp '{value}'")
        return 0


async def fetch_broadcast_record(
    http_client: httpx.AsyncClient, broadcast_id: str
) -> Result[Optional[Dict[str, Any]], ApiError]:
    """
    Fetch the raw broadcast record for one id.

    Returns Ok(None) when the lookup succeeded but the broadcast is absent.
    Shared by the resolver and the status monitor.
    """
    params = {"ids": broadcast_id, "include_events": "false"}
    try:
        response = await http_client.get(BROADCAST_SHOW_URL, params=params)
    except httpx.RequestError as e:
        return Err(ApiError(status=0, message=describe_error(e)))

    if not response.is_success:
        return Err(ApiError(status=response.status_code, message=response_message(response)))

    try:
        data = response.json()
    except ValueError as e:
        return Err(ApiError(status=response.status_code, message=f"Invalid JSON: {e}"))

    broadcasts = data.get("broadcasts") if isinstance(data, dict) else None
    if not isinstance(broadcasts, dict):
        return Ok(None)

    record = broadcasts.get(broadcast_id)
    return Ok(record if isinstance(record, dict) else None)


class BroadcastResolver:
    """Resolves broadcast URLs/ids to BroadcastInfo."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client or create_http_client()

    async def resolve(self, url_or_id: str) -> Result[BroadcastInfo, BroadcastError]:
        id_result = extract_broadcast_id(url_or_id)
        if isinstance(id_result, Err):
            return id_result
        broadcast_id = id_result.value

        record_result = await fetch_broadcast_record(self.http_client, broadcast_id)
        if isinstance(record_result, Err):
            logger.error(
                f"Broadcast lookup failed for {broadcast_id}: "
                f"{record_result.error.status} {record_result.error.message}"
            )
            return record_result

        record = record_result.value
        if record is None:
            return Err(BroadcastNotFound(broadcast_id=broadcast_id))

        if record.get("state") == STATE_ENDED:
            return Err(BroadcastAlreadyEnded(broadcast_id=broadcast_id))

        info = BroadcastInfo(
            broadcast_id=record.get("id") or broadcast_id,
            media_key=record.get("media_key") or "",
            title=record.get("title") or "",
            state=record.get("state") or "",
            username=record.get("username") or "",
            display_name=record.get("user_display_name") or "",
            started_at=_parse_start(record.get("start")),
        )

        logger.info(f"Found broadcast: '{info.title}' by @{info.username} ({info.state})")
        return Ok(info)

    async def aclose(self) -> None:
        await self.http_client.aclose()


def format_broadcast_error(error: BroadcastError) -> str:
    """Render a BroadcastError as a user-facing message."""
    if isinstance(error, InvalidUrl):
        return (
            f"Error: invalid broadcast URL: {error.url}\n"
            "Accepted forms: https://x.com/i/broadcasts/{id} or a bare broadcast id"
        )
    if isinstance(error, BroadcastNotFound):
        return f"Error: broadcast not found: {error.broadcast_id}"
    if isinstance(error, BroadcastAlreadyEnded):
        return f"Error: broadcast has already ended: {error.broadcast_id}"
    return f"Error: broadcast lookup failed ({error.status}): {error.message}"
