import logging
from typing import Any, Optional

import httpx

from src.core.product_sync.gateway import SourceResponseShapeError
from src.core.product_sync.models import SourceAllocationPayload, SourceProductPayload

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_BASE_URL = "http://localhost:3000"


class HttpProductSourceGateway:
    """Reads the product and allocation collections from the upstream source API.

    Non-success responses raise ``httpx.HTTPStatusError`` and connectivity
    problems raise ``httpx.RequestError``; both are re-raised unchanged.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_SOURCE_BASE_URL,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    async def fetch_products(self) -> list[SourceProductPayload]:
        return await self._fetch_collection("/products", name="products")

    async def fetch_allocations(self) -> list[SourceAllocationPayload]:
        return await self._fetch_collection("/allocations", name="allocations")

    async def _fetch_collection(self, path: str, *, name: str) -> list[dict[str, Any]]:
        logger.info("Fetching %s from source. base_url=%s", name, self._base_url)
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(path)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError:
            logger.exception("Error fetching %s from source", name)
            raise

        if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
            raise SourceResponseShapeError(f"SOURCE_RESPONSE_NOT_A_LIST_OF_OBJECTS:{name}")
        logger.info("Fetched %s from source. count=%s", name, len(payload))
        return payload
