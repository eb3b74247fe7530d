import httpx
import pytest
from fastapi.testclient import TestClient

import src.api.routers.product_sync as product_sync_router
from src.api.main import app
from src.core.product_sync import SourceResponseShapeError


class _StaticGateway:
    def __init__(self, products=None, allocations=None, *, error=None):
        self.products = products or []
        self.allocations = allocations or []
        self.error = error

    async def fetch_products(self):
        if self.error is not None:
            raise self.error
        return list(self.products)

    async def fetch_allocations(self):
        return list(self.allocations)


@pytest.fixture
def gateway(monkeypatch):
    stub = _StaticGateway()
    monkeypatch.setattr(product_sync_router, "build_gateway", lambda: stub)
    return stub


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def test_sync_then_list_products(client, gateway, product_payload, allocation_payload):
    gateway.products = [product_payload]
    gateway.allocations = [allocation_payload]

    response = client.post("/sync", headers={"X-Correlation-Id": "corr-sync-001"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["products_processed"] == 1
    assert body["allocations_processed"] == 1
    assert body["errors"] == []
    assert body["skipped_products"] == 0
    assert body["sync_run_id"].startswith("ps_")
    assert response.headers["X-Correlation-Id"] == "corr-sync-001"

    listed = client.get("/products")
    assert listed.status_code == 200
    assert listed.json() == [
        {
            "id": "p1",
            "product_type": "WEALTH",
            "profit": 1000.0,
            "current_amount": 5000.0,
            "invested_amount": 4000.0,
            "allocations": [
                {
                    "product_id": "p1",
                    "asset_class": "Stocks",
                    "region": "US",
                    "security_isin": "US123",
                    "security_count": 100,
                }
            ],
        }
    ]


def test_list_products_is_empty_before_first_sync(client, gateway):
    response = client.get("/products")

    assert response.status_code == 200
    assert response.json() == []


def test_sync_without_surviving_products_returns_422(client, gateway, product_payload):
    gateway.products = [product_payload]

    response = client.post("/sync")

    assert response.status_code == 422
    assert response.json()["detail"] == "PRODUCT_SYNC_NO_DATA"


def test_sync_maps_source_transport_failure_to_502(client, gateway):
    request = httpx.Request("GET", "http://source.test/products")
    gateway.error = httpx.ConnectError("connection refused", request=request)

    response = client.post("/sync")

    assert response.status_code == 502
    assert response.json()["detail"] == "PRODUCT_SOURCE_UNAVAILABLE"


def test_sync_maps_source_status_failure_to_502(client, gateway):
    request = httpx.Request("GET", "http://source.test/products")
    gateway.error = httpx.HTTPStatusError(
        "upstream failed", request=request, response=httpx.Response(500, request=request)
    )

    response = client.post("/sync")

    assert response.status_code == 502
    assert response.json()["detail"] == "PRODUCT_SOURCE_UNAVAILABLE"


def test_sync_maps_invalid_source_payload_to_502(client, gateway):
    gateway.error = SourceResponseShapeError("SOURCE_RESPONSE_NOT_A_LIST_OF_OBJECTS:products")

    response = client.post("/sync")

    assert response.status_code == 502
    assert response.json()["detail"] == "PRODUCT_SOURCE_RESPONSE_INVALID"


def test_sync_maps_persistence_failure_to_500(
    client, gateway, monkeypatch, product_payload, allocation_payload
):
    gateway.products = [product_payload]
    gateway.allocations = [allocation_payload]
    service = product_sync_router.get_product_sync_service()

    def _fail(_products):
        raise RuntimeError("disk full")

    monkeypatch.setattr(service._persister, "replace_all", _fail)

    response = client.post("/sync")

    assert response.status_code == 500
    assert response.json()["detail"] == "PRODUCT_SYNC_PERSISTENCE_FAILED"


def test_failed_sync_keeps_previous_snapshot(
    client, gateway, product_payload, allocation_payload
):
    gateway.products = [product_payload]
    gateway.allocations = [allocation_payload]
    assert client.post("/sync").status_code == 200

    request = httpx.Request("GET", "http://source.test/products")
    gateway.error = httpx.ReadTimeout("timed out", request=request)
    assert client.post("/sync").status_code == 502

    assert [product["id"] for product in client.get("/products").json()] == ["p1"]


def test_sync_apis_can_be_disabled(client, gateway, monkeypatch):
    monkeypatch.setenv("PRODUCT_SYNC_APIS_ENABLED", "false")

    sync_response = client.post("/sync")
    list_response = client.get("/products")

    assert sync_response.status_code == 404
    assert sync_response.json()["detail"] == "PRODUCT_SYNC_APIS_DISABLED"
    assert list_response.status_code == 404


def test_sync_is_not_exposed_as_get(client, gateway):
    assert client.get("/sync").status_code == 405


def test_service_unavailable_when_postgres_dsn_missing(client, monkeypatch):
    monkeypatch.delenv("PRODUCT_SYNC_POSTGRES_DSN", raising=False)

    response = client.get("/products")

    assert response.status_code == 503
    assert response.json()["detail"] == "PRODUCT_SYNC_POSTGRES_DSN_REQUIRED"


def test_service_unavailable_when_postgres_connection_fails(client, monkeypatch):
    def _refuse(**_kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(
        "src.api.routers.product_sync_config.PostgresProductSyncRepository", _refuse
    )

    response = client.get("/products")

    assert response.status_code == 503
    assert response.json()["detail"] == "PRODUCT_SYNC_POSTGRES_CONNECTION_FAILED"


def test_health_endpoints(client):
    assert client.get("/health").json() == {"status": "running"}
    assert client.get("/health/live").json() == {"status": "live"}
    ready = client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json() == {"status": "ready"}


def test_readiness_reports_unavailable_backend(client, monkeypatch):
    monkeypatch.delenv("PRODUCT_SYNC_POSTGRES_DSN", raising=False)

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["detail"] == "PRODUCT_SYNC_POSTGRES_DSN_REQUIRED"


def test_metrics_endpoint_is_exposed(client):
    client.get("/health")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
