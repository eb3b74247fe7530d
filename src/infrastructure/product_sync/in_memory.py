from contextlib import contextmanager
from copy import deepcopy
from threading import Lock
from typing import Iterator

from src.core.product_sync.models import FlattenedAllocation, ReconciledProduct
from src.core.product_sync.repository import ProductSyncRepository


class _InMemoryUnitOfWork:
    def __init__(
        self,
        *,
        products: dict[str, ReconciledProduct],
        allocations: dict[str, FlattenedAllocation],
    ) -> None:
        self.products = products
        self.allocations = allocations

    def delete_all_allocations(self) -> int:
        deleted = len(self.allocations)
        self.allocations.clear()
        return deleted

    def delete_all_products(self) -> int:
        if self.allocations:
            raise ValueError("PRODUCT_DELETE_BLOCKED_BY_ALLOCATIONS")
        deleted = len(self.products)
        self.products.clear()
        return deleted

    def insert_product(self, product: ReconciledProduct) -> None:
        if product.id in self.products:
            raise ValueError(f"PRODUCT_ALREADY_EXISTS:{product.id}")
        self.products[product.id] = product.model_copy(update={"allocations": []})

    def insert_allocation(self, *, row_id: str, allocation: FlattenedAllocation) -> None:
        if allocation.product_id not in self.products:
            raise ValueError(f"ALLOCATION_PRODUCT_NOT_FOUND:{allocation.product_id}")
        if row_id in self.allocations:
            raise ValueError(f"ALLOCATION_ALREADY_EXISTS:{row_id}")
        self.allocations[row_id] = allocation


class InMemoryProductSyncRepository(ProductSyncRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._products: dict[str, ReconciledProduct] = {}
        self._allocations: dict[str, FlattenedAllocation] = {}

    @contextmanager
    def unit_of_work(self) -> Iterator[_InMemoryUnitOfWork]:
        with self._lock:
            unit_of_work = _InMemoryUnitOfWork(
                products=deepcopy(self._products),
                allocations=deepcopy(self._allocations),
            )
            yield unit_of_work
            self._products = unit_of_work.products
            self._allocations = unit_of_work.allocations

    def list_products_with_allocations(self) -> list[ReconciledProduct]:
        with self._lock:
            products = sorted(self._products.values(), key=lambda product: product.id)
            rows_by_product: dict[str, list[FlattenedAllocation]] = {}
            for allocation in self._allocations.values():
                rows_by_product.setdefault(allocation.product_id, []).append(allocation)
            return [
                product.model_copy(
                    update={"allocations": deepcopy(rows_by_product.get(product.id, []))}
                )
                for product in products
            ]
