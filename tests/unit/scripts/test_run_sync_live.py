import httpx
import pytest

import scripts.run_sync_live as run_sync_live

_PRODUCTS = [
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


def _install_transport(monkeypatch, handler):
    real_client = httpx.Client

    def _client(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(run_sync_live.httpx, "Client", _client)


def _sync_body(products_processed=1, allocations_processed=1):
    return {
        "success": True,
        "products_processed": products_processed,
        "allocations_processed": allocations_processed,
        "errors": [],
        "skipped_products": 0,
    }


def test_run_live_sync_checks_counts_and_repeatability(monkeypatch):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "running"})
        if request.url.path == "/sync":
            return httpx.Response(200, json=_sync_body())
        return httpx.Response(200, json=_PRODUCTS)

    _install_transport(monkeypatch, handler)

    run_sync_live.run_live_sync("http://service.test", repeat=2)

    assert calls == [
        ("GET", "/health"),
        ("POST", "/sync"),
        ("GET", "/products"),
        ("POST", "/sync"),
        ("GET", "/products"),
    ]


def test_run_live_sync_rejects_count_mismatch(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "running"})
        if request.url.path == "/sync":
            return httpx.Response(200, json=_sync_body(products_processed=2))
        return httpx.Response(200, json=_PRODUCTS)

    _install_transport(monkeypatch, handler)

    with pytest.raises(run_sync_live.LiveSyncError) as exc:
        run_sync_live.run_live_sync("http://service.test", repeat=1)
    assert "stored 1 products, reported 2" in str(exc.value)


def test_run_live_sync_rejects_unexpected_status(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "running"})
        return httpx.Response(502, json={"detail": "PRODUCT_SOURCE_UNAVAILABLE"})

    _install_transport(monkeypatch, handler)

    with pytest.raises(run_sync_live.LiveSyncError) as exc:
        run_sync_live.run_live_sync("http://service.test", repeat=1)
    assert str(exc.value).startswith("sync-1: expected HTTP 200, got 502")
