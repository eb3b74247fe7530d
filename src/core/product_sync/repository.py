from contextlib import AbstractContextManager
from typing import Protocol

from src.core.product_sync.models import FlattenedAllocation, ReconciledProduct


class ProductSyncUnitOfWork(Protocol):
    def delete_all_allocations(self) -> int: ...

    def delete_all_products(self) -> int: ...

    def insert_product(self, product: ReconciledProduct) -> None: ...

    def insert_allocation(self, *, row_id: str, allocation: FlattenedAllocation) -> None: ...


class ProductSyncRepository(Protocol):
    def unit_of_work(self) -> AbstractContextManager[ProductSyncUnitOfWork]: ...

    def list_products_with_allocations(self) -> list[ReconciledProduct]: ...
