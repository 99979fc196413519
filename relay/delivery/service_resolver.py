"""
Receiver Service Resolver

Looks up a receiver-side service (channel) by id or by name through
``GET /api/services`` and returns its id plus the broadcast URL configured
on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Union

import httpx
from pydantic import TypeAdapter, ValidationError

from relay.delivery.receiver_client import receiver_base_url
from relay.result import Err, Ok, Result
from relay.schemas.errors import (
    AmbiguousService,
    ApiError,
    ConnectionRefused,
    ServiceIdNotFound,
    ServiceMatch,
    ServiceNotFound,
    ServiceResolveError,
    ServiceUrlNotFound,
    Timeout,
)
from relay.schemas.receiver import ReceiverService, ResolvedService
from relay.utils.http import create_http_client
from relay.utils.logging import get_logger

logger = get_logger(__name__, category="delivery")

_services_adapter = TypeAdapter(List[ReceiverService])


@dataclass(frozen=True)
class ServiceById:
    service_id: str


@dataclass(frozen=True)
class ServiceByName:
    service_name: str


ServiceTarget = Union[ServiceById, ServiceByName]


class ServiceResolver:
    def __init__(self, host: str, port: int, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = receiver_base_url(host, port)
        self.http_client = http_client or create_http_client()

    async def list_services(self) -> Result[List[ReceiverService], ServiceResolveError]:
        try:
            response = await self.http_client.get(f"{self.base_url}/api/services")
        except httpx.TimeoutException:
            return Err(Timeout())
        except httpx.RequestError:
            return Err(ConnectionRefused())

        if not response.is_success:
            return Err(ApiError(status=response.status_code, message=response.text))

        try:
            return Ok(_services_adapter.validate_python(response.json()))
        except (ValueError, ValidationError) as e:
            return Err(ApiError(status=response.status_code, message=f"Unexpected service list: {e}"))

    async def resolve(self, target: ServiceTarget) -> Result[ResolvedService, ServiceResolveError]:
        listing = await self.list_services()
        if isinstance(listing, Err):
            return listing
        services = listing.value

        if isinstance(target, ServiceById):
            found = next((s for s in services if s.id == target.service_id), None)
            if found is None:
                return Err(ServiceIdNotFound(service_id=target.service_id))
            return self._with_url(found)

        matches = [s for s in services if s.name == target.service_name]
        if not matches:
            return Err(
                ServiceNotFound(
                    service_name=target.service_name,
                    available_services=[s.name for s in services],
                )
            )
        if len(matches) > 1:
            return Err(
                AmbiguousService(
                    service_name=target.service_name,
                    matches=[ServiceMatch(id=s.id, name=s.name) for s in matches],
                )
            )
        return self._with_url(matches[0])

    def _with_url(self, service: ReceiverService) -> Result[ResolvedService, ServiceResolveError]:
        if not service.url:
            return Err(ServiceUrlNotFound(service_id=service.id, service_name=service.name))
        logger.info(f"Resolved receiver service '{service.name}' ({service.id}) -> {service.url}")
        return Ok(ResolvedService(service_id=service.id, url=service.url))

    async def aclose(self) -> None:
        await self.http_client.aclose()


def format_service_resolve_error(error: ServiceResolveError) -> str:
    """Render a ServiceResolveError as a user-facing message."""
    if isinstance(error, ServiceNotFound):
        available = ", ".join(error.available_services) if error.available_services else "(none)"
        return (
            f"Error: no receiver service named '{error.service_name}'.\n"
            f"Available services: {available}"
        )
    if isinstance(error, ServiceIdNotFound):
        return f"Error: no receiver service with id '{error.service_id}'."
    if isinstance(error, ServiceUrlNotFound):
        return (
            f"Error: receiver service '{error.service_name}' (ID: {error.service_id}) "
            "has no broadcast URL configured.\n"
            "Set the URL on the service or pass the broadcast URL explicitly."
        )
    if isinstance(error, AmbiguousService):
        lines = "\n".join(f"  - {m.name} (ID: {m.id})" for m in error.matches)
        return (
            f"Error: several receiver services are named '{error.service_name}'. "
            f"Select one with --service-id.\n{lines}"
        )
    if isinstance(error, ConnectionRefused):
        return "Error: connection to the receiver API was refused. Is the receiver application running?"
    if isinstance(error, Timeout):
        return "Error: connection to the receiver API timed out."
    return f"Error: the receiver API returned an error ({error.status}): {error.message}"
