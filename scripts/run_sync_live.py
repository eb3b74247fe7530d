import argparse
from typing import Any

import httpx


class LiveSyncError(RuntimeError):
    pass


def _assert(condition: bool, message: str) -> None:
    if not condition:
        raise LiveSyncError(message)


def _request(
    client: httpx.Client,
    *,
    name: str,
    method: str,
    path: str,
    expected_http: int,
) -> Any:
    response = client.request(method, path, headers={"X-Correlation-Id": f"live-{name}"})
    _assert(
        response.status_code == expected_http,
        f"{name}: expected HTTP {expected_http}, got {response.status_code}, body={response.text}",
    )
    return response.json() if response.content else None


def run_live_sync(base_url: str, *, repeat: int) -> None:
    timeout = httpx.Timeout(60.0)
    with httpx.Client(base_url=base_url, timeout=timeout) as client:
        health = _request(client, name="health", method="GET", path="/health", expected_http=200)
        _assert(health == {"status": "running"}, f"health: unexpected body {health}")

        snapshots = []
        for attempt in range(1, repeat + 1):
            result = _request(
                client, name=f"sync-{attempt}", method="POST", path="/sync", expected_http=200
            )
            _assert(result["success"] is True, f"sync-{attempt}: success flag not set")
            _assert(result["errors"] == [], f"sync-{attempt}: unexpected errors {result['errors']}")

            products = _request(
                client,
                name=f"products-{attempt}",
                method="GET",
                path="/products",
                expected_http=200,
            )
            _assert(
                len(products) == result["products_processed"],
                f"sync-{attempt}: stored {len(products)} products, "
                f"reported {result['products_processed']}",
            )
            stored_rows = sum(len(product["allocations"]) for product in products)
            _assert(
                stored_rows == result["allocations_processed"],
                f"sync-{attempt}: stored {stored_rows} rows, "
                f"reported {result['allocations_processed']}",
            )
            ids = [product["id"] for product in products]
            _assert(ids == sorted(ids), f"products-{attempt}: not ordered by id")
            snapshots.append(products)
            print(
                f"sync-{attempt}: products={result['products_processed']} "
                f"allocations={result['allocations_processed']} "
                f"skipped={result['skipped_products']}"
            )

        for index, snapshot in enumerate(snapshots[1:], start=2):
            _assert(snapshot == snapshots[0], f"sync-{index}: snapshot differs from sync-1")


def main() -> int:
    parser = argparse.ArgumentParser(description="Run syncs against a live product sync service")
    parser.add_argument("--base-url", default="http://127.0.0.1:4000")
    parser.add_argument("--repeat", type=int, default=2, help="Number of consecutive syncs")
    args = parser.parse_args()
    run_live_sync(args.base_url, repeat=max(args.repeat, 1))
    print("Live sync checks passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
