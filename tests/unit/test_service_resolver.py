"""Unit tests for ServiceResolver."""
import httpx
import pytest

from relay.delivery.service_resolver import (
    ServiceById,
    ServiceByName,
    ServiceResolver,
    format_service_resolve_error,
)
from relay.result import Err, Ok
from relay.schemas.errors import (
    AmbiguousService,
    ConnectionRefused,
    ServiceIdNotFound,
    ServiceMatch,
    ServiceNotFound,
    ServiceUrlNotFound,
)
from relay.schemas.receiver import ResolvedService

SERVICES = [
    {"id": "svc-1", "name": "Main", "url": "https://x.com/i/broadcasts/1abc", "enabled": True},
    {"id": "svc-2", "name": "Dup", "url": "https://x.com/i/broadcasts/2"},
    {"id": "svc-3", "name": "Dup", "url": ""},
    {"id": "svc-4", "name": "NoUrl"},
]


@pytest.fixture
def resolver(mock_http):
    client, handler = mock_http(lambda request: httpx.Response(200, json=SERVICES))
    resolver = ServiceResolver("localhost", 11180, http_client=client)
    resolver.handler = handler
    return resolver


@pytest.mark.unit
@pytest.mark.asyncio
class TestServiceResolver:
    async def test_resolve_by_name(self, resolver):
        result = await resolver.resolve(ServiceByName(service_name="Main"))
        assert result == Ok(ResolvedService(service_id="svc-1", url="https://x.com/i/broadcasts/1abc"))
        assert str(resolver.handler.requests[0].url) == "http://localhost:11180/api/services"

    async def test_resolve_by_id(self, resolver):
        result = await resolver.resolve(ServiceById(service_id="svc-2"))
        assert result == Ok(ResolvedService(service_id="svc-2", url="https://x.com/i/broadcasts/2"))

    async def test_unknown_name_lists_available(self, resolver):
        result = await resolver.resolve(ServiceByName(service_name="Missing"))
        assert result == Err(
            ServiceNotFound(service_name="Missing", available_services=["Main", "Dup", "Dup", "NoUrl"])
        )

    async def test_unknown_id(self, resolver):
        result = await resolver.resolve(ServiceById(service_id="svc-9"))
        assert result == Err(ServiceIdNotFound(service_id="svc-9"))

    async def test_ambiguous_name(self, resolver):
        result = await resolver.resolve(ServiceByName(service_name="Dup"))
        assert result == Err(
            AmbiguousService(
                service_name="Dup",
                matches=[ServiceMatch(id="svc-2", name="Dup"), ServiceMatch(id="svc-3", name="Dup")],
            )
        )

    async def test_service_without_url(self, resolver):
        result = await resolver.resolve(ServiceByName(service_name="NoUrl"))
        assert result == Err(ServiceUrlNotFound(service_id="svc-4", service_name="NoUrl"))

    async def test_receiver_down(self, mock_http):
        def responder(request):
            raise httpx.ConnectError("refused", request=request)

        client, _ = mock_http(responder)
        result = await ServiceResolver("localhost", 11180, http_client=client).resolve(ServiceById(service_id="x"))
        assert result == Err(ConnectionRefused())

    async def test_unexpected_listing_is_api_error(self, mock_http):
        client, _ = mock_http(lambda request: httpx.Response(200, json={"services": []}))
        result = await ServiceResolver("localhost", 11180, http_client=client).list_services()
        assert isinstance(result, Err)
        assert result.error.kind == "api_error"


@pytest.mark.unit
def test_format_errors_are_actionable():
    ambiguous = AmbiguousService(
        service_name="Dup",
        matches=[ServiceMatch(id="svc-2", name="Dup"), ServiceMatch(id="svc-3", name="Dup")],
    )
    message = format_service_resolve_error(ambiguous)
    assert "svc-2" in message and "svc-3" in message
    assert "--service-id" in message

    message = format_service_resolve_error(ServiceNotFound(service_name="X", available_services=["A", "B"]))
    assert "A, B" in message

    assert "running" in format_service_resolve_error(ConnectionRefused())
