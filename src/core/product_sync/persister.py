import logging
from typing import Sequence

from src.core.product_sync.models import ReconciledProduct, SyncResult
from src.core.product_sync.repository import ProductSyncRepository

logger = logging.getLogger(__name__)


class ProductSyncPersister:
    def __init__(self, *, repository: ProductSyncRepository) -> None:
        self._repository = repository

    def replace_all(self, products: Sequence[ReconciledProduct]) -> SyncResult:
        """Replace the stored snapshot with ``products`` in a single unit of work.

        Existing allocation rows are removed before their products. Any failure
        rolls the whole unit of work back and is re-raised, so callers either get
        a successful result with exact counts or an exception.
        """
        result = SyncResult(success=False)
        logger.info("Starting to save products. count=%s", len(products))

        try:
            with self._repository.unit_of_work() as unit_of_work:
                deleted_allocations = unit_of_work.delete_all_allocations()
                deleted_products = unit_of_work.delete_all_products()
                logger.info(
                    "Cleared existing data. products=%s allocations=%s",
                    deleted_products,
                    deleted_allocations,
                )

                for product in products:
                    try:
                        unit_of_work.insert_product(product)
                        result.products_processed += 1
                        for allocation in product.allocations:
                            unit_of_work.insert_allocation(
                                row_id=allocation.row_id, allocation=allocation
                            )
                            result.allocations_processed += 1
                    except Exception as exc:
                        message = f"Failed to save product {product.id}: {exc}"
                        logger.error(
                            message,
                            extra={"extra_fields": {"product_id": product.id}},
                        )
                        result.errors.append(message)
                        raise
                    logger.debug(
                        "Created product %s with %s allocations",
                        product.id,
                        len(product.allocations),
                    )
        except Exception as exc:
            result.errors.append(f"Transaction failed: {exc}")
            logger.exception(
                "Failed to save products; transaction rolled back",
                extra={"extra_fields": {"errors": list(result.errors)}},
            )
            raise

        result.success = True
        logger.info(
            "product_sync.persisted",
            extra={
                "extra_fields": {
                    "products_processed": result.products_processed,
                    "allocations_processed": result.allocations_processed,
                }
            },
        )
        return result

    def fetch_all(self) -> list[ReconciledProduct]:
        products = self._repository.list_products_with_allocations()
        logger.info("Fetched products from store. count=%s", len(products))
        return products
