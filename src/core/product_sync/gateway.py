from typing import Protocol

from src.core.product_sync.models import SourceAllocationPayload, SourceProductPayload


class SourceResponseShapeError(ValueError):
    pass


class ProductSourceGateway(Protocol):
    async def fetch_products(self) -> list[SourceProductPayload]: ...

    async def fetch_allocations(self) -> list[SourceAllocationPayload]: ...
