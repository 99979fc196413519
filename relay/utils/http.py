"""
Shared HTTP client utilities
"""

from typing import Any, Optional

import httpx

from relay.config import settings


def create_http_client(**kwargs: Any) -> httpx.AsyncClient:
    """Build an AsyncClient with the configured timeouts."""
    timeout = httpx.Timeout(
        settings.http_timeout_seconds,
        connect=settings.http_connect_timeout_seconds,
    )
    kwargs.setdefault("timeout", timeout)
    return httpx.AsyncClient(**kwargs)


def describe_error(exc: BaseException) -> str:
    """Readable message for a transport exception (httpx messages can be empty)."""
    message = str(exc)
    return message or exc.__class__.__name__


def response_message(response: httpx.Response, fallback: Optional[str] = None) -> str:
    """Reason phrase for a non-success response, like ``statusText`` in a browser."""
    return response.reason_phrase or fallback or f"HTTP {response.status_code}"
