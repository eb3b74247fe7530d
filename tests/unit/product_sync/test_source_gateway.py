import asyncio

import httpx
import pytest

from src.core.product_sync.gateway import SourceResponseShapeError
from src.infrastructure.source_gateway import DEFAULT_SOURCE_BASE_URL, HttpProductSourceGateway


def _gateway(handler, base_url="http://source.test"):
    return HttpProductSourceGateway(
        base_url=base_url,
        timeout_seconds=5.0,
        transport=httpx.MockTransport(handler),
    )


def test_gateway_reads_both_collections(product_payload, allocation_payload):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.path == "/products":
            return httpx.Response(200, json=[product_payload])
        return httpx.Response(200, json=[allocation_payload])

    gateway = _gateway(handler, base_url="http://source.test/")

    products = asyncio.run(gateway.fetch_products())
    allocations = asyncio.run(gateway.fetch_allocations())

    assert products == [product_payload]
    assert allocations == [allocation_payload]
    assert seen == ["http://source.test/products", "http://source.test/allocations"]


def test_gateway_returns_empty_collections():
    gateway = _gateway(lambda request: httpx.Response(200, json=[]))

    assert asyncio.run(gateway.fetch_products()) == []


def test_gateway_raises_status_error_unchanged():
    gateway = _gateway(lambda request: httpx.Response(503, json={"detail": "down"}))

    with pytest.raises(httpx.HTTPStatusError) as exc:
        asyncio.run(gateway.fetch_allocations())
    assert exc.value.response.status_code == 503


def test_gateway_raises_connect_error_unchanged():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(httpx.ConnectError):
        asyncio.run(_gateway(handler).fetch_products())


@pytest.mark.parametrize(
    "body",
    [{"items": []}, ["p1", "p2"], [{"id": "p1"}, None]],
)
def test_gateway_rejects_payloads_that_are_not_lists_of_objects(body):
    gateway = _gateway(lambda request: httpx.Response(200, json=body))

    with pytest.raises(SourceResponseShapeError) as exc:
        asyncio.run(gateway.fetch_products())
    assert str(exc.value) == "SOURCE_RESPONSE_NOT_A_LIST_OF_OBJECTS:products"


def test_gateway_defaults_to_local_source():
    assert DEFAULT_SOURCE_BASE_URL == "http://localhost:3000"
