"""HttpBackendClient envelope handling."""

from __future__ import annotations

import json

import httpx
import pytest

from voxelcraft.backend.client import HttpBackendClient
from voxelcraft.models.errors import ErrorKind, OperationError

BASE = "http://backend.test/api"


def _client(handler, **kwargs) -> HttpBackendClient:
    return HttpBackendClient(BASE, transport=httpx.MockTransport(handler), **kwargs)


async def test_success_returns_data():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"success": True, "data": {"listingId": 3}})

    client = _client(handler, auth_token="tok")
    assert await client.post("/marketplace/prepare-listing", {"tokenId": 1}) == {"listingId": 3}
    await client.close()

    request = seen[0]
    assert request.url == "http://backend.test/api/marketplace/prepare-listing"
    assert request.headers["Authorization"] == "Bearer tok"
    assert json.loads(request.content) == {"tokenId": 1}
    assert "Idempotency-Key" not in request.headers


async def test_idempotency_key_header():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"success": True, "data": None})

    client = _client(handler)
    await client.post("/nft/prepare-mint", {}, idempotency_key="abc:prepare_mint")
    await client.close()

    assert seen[0].headers["Idempotency-Key"] == "abc:prepare_mint"


async def test_failure_envelope_error_is_verbatim():
    def handler(request):
        return httpx.Response(400, json={"success": False, "error": "Listing already sold"})

    client = _client(handler)
    with pytest.raises(OperationError) as exc_info:
        await client.get("/marketplace/listings/1")
    await client.close()

    assert exc_info.value.kind == ErrorKind.UPSTREAM_FAILURE
    assert exc_info.value.message == "Listing already sold"


@pytest.mark.parametrize("response", [
    httpx.Response(502, text="<html>Bad Gateway</html>"),
    httpx.Response(200, json=["not", "an", "envelope"]),
    httpx.Response(200, json={"data": 1}),
])
async def test_malformed_responses(response):
    client = _client(lambda request: response)
    with pytest.raises(OperationError) as exc_info:
        await client.get("/rewards/1")
    await client.close()
    assert exc_info.value.kind == ErrorKind.UPSTREAM_FAILURE


async def test_unreachable_is_network_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    with pytest.raises(OperationError) as exc_info:
        await client.get("/game/world/1")
    assert exc_info.value.kind == ErrorKind.NETWORK_UNAVAILABLE
    assert await client.status() is None
    await client.close()


async def test_timeout_is_network_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client = _client(handler)
    with pytest.raises(OperationError) as exc_info:
        await client.post("/tokens/prepare-transfer", {})
    await client.close()
    assert exc_info.value.kind == ErrorKind.NETWORK_UNAVAILABLE


async def test_status_endpoint():
    def handler(request):
        assert request.url.path == "/api/system/status"
        return httpx.Response(
            200, json={"success": True, "data": {"healthy": True, "lastSync": "2026-05-01T10:00:00Z"}},
        )

    client = _client(handler)
    assert await client.status() == {"healthy": True, "lastSync": "2026-05-01T10:00:00Z"}
    await client.close()
