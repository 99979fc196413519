"""
Receiver Client

Posts normalized comments to the local comment-display application's
``/api/comments`` endpoint and classifies failures into SendError kinds.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol

import httpx

from relay.result import Err, Ok, Result
from relay.schemas.broadcast import ParsedComment
from relay.schemas.errors import (
    ApiError,
    ConnectionRefused,
    InvalidServiceId,
    SendError,
    Timeout,
    ValidationFailed,
)
from relay.schemas.receiver import ReceiverCommentPayload
from relay.utils.http import create_http_client, response_message
from relay.utils.logging import get_logger

logger = get_logger(__name__, category="delivery")


class CommentSender(Protocol):
    async def send(self, comment: ParsedComment) -> Result[None, SendError]:
        ...


def receiver_base_url(host: str, port: int) -> str:
    if host.startswith(("http://", "https://")):
        return f"{host.rstrip('/')}:{port}"
    return f"http://{host}:{port}"


def _error_mentions_service(entry: Any) -> bool:
    if isinstance(entry, dict):
        fields = (
            entry.get("instancePath"),
            entry.get("dataPath"),
            entry.get("path"),
            entry.get("property"),
            entry.get("message"),
        )
        return any(isinstance(f, str) and "service" in f.lower() for f in fields)
    return isinstance(entry, str) and "service" in entry.lower()


def _describe_errors(errors: List[Any]) -> str:
    parts = []
    for entry in errors:
        if isinstance(entry, dict):
            path = entry.get("instancePath") or entry.get("path") or ""
            message = entry.get("message") or str(entry)
            parts.append(f"{path} {message}".strip())
        else:
            parts.append(str(entry))
    return "; ".join(parts)


def classify_bad_request(response: httpx.Response, service_id: str) -> SendError:
    """
    Distinguish a bad service id from a payload validation failure.

    The receiver answers 400 for both; a structured ``errors`` array tells
    them apart. Without one, the service id is assumed to be at fault.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    errors = body.get("errors") if isinstance(body, dict) else None
    if not isinstance(errors, list) or not errors:
        return InvalidServiceId(service_id=service_id)

    if any(_error_mentions_service(entry) for entry in errors):
        return InvalidServiceId(service_id=service_id)
    return ValidationFailed(details=_describe_errors(errors))


class ReceiverClient:
    """Sends one comment per POST, no retries."""

    def __init__(
        self,
        host: str,
        port: int,
        service_id: str,
        owner_user_id: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = receiver_base_url(host, port)
        self.service_id = service_id
        self.owner_user_id = owner_user_id
        self.http_client = http_client or create_http_client()

    async def send(self, comment: ParsedComment) -> Result[None, SendError]:
        payload = ReceiverCommentPayload.from_comment(comment, self.service_id, self.owner_user_id)

        try:
            response = await self.http_client.post(
                f"{self.base_url}/api/comments", json=payload.to_wire()
            )
        except httpx.TimeoutException:
            return Err(Timeout())
        except httpx.RequestError as e:
            logger.debug(f"Receiver unreachable: {e!r}")
            return Err(ConnectionRefused())

        if response.is_success:
            logger.info(f"Comment delivered - id: {comment.id}, user: {comment.display_name}")
            return Ok(None)

        if response.status_code == 400:
            error = classify_bad_request(response, self.service_id)
            if isinstance(error, InvalidServiceId):
                logger.error(
                    f"Receiver rejected service id {self.service_id}; check the service configuration"
                )
            else:
                logger.error(f"Receiver rejected comment {comment.id}: {error.details}")
            return Err(error)

        return Err(ApiError(status=response.status_code, message=response_message(response)))

    async def aclose(self) -> None:
        await self.http_client.aclose()
