import asyncio
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import AbstractSet, Optional

from src.core.product_sync.gateway import ProductSourceGateway
from src.core.product_sync.models import (
    ReconciledProduct,
    SourceAllocationPayload,
    SourceProductPayload,
    SyncResult,
)
from src.core.product_sync.persister import ProductSyncPersister
from src.core.product_sync.reconciliation import reconcile_products

logger = logging.getLogger(__name__)

sync_run_id_var: ContextVar[str] = ContextVar("sync_run_id", default="")


class ProductSyncError(Exception):
    pass


class ProductSyncNoDataError(ProductSyncError):
    pass


class ProductSyncPersistenceError(ProductSyncError):
    pass


class ProductSyncService:
    def __init__(
        self,
        *,
        gateway: ProductSourceGateway,
        persister: ProductSyncPersister,
        allowed_product_types: Optional[AbstractSet[str]] = None,
    ) -> None:
        self._gateway = gateway
        self._persister = persister
        self._allowed_product_types = allowed_product_types

    async def run_sync(
        self,
        *,
        correlation_id: Optional[str] = None,
        fetch_timeout_seconds: Optional[float] = None,
    ) -> SyncResult:
        """Fetch both source collections, reconcile them and replace the stored snapshot.

        Source transport errors propagate unchanged. Persistence failures are
        raised as ``ProductSyncPersistenceError`` after the store rolled back.
        """
        sync_run_id = f"ps_{uuid.uuid4().hex[:12]}"
        token = sync_run_id_var.set(sync_run_id)
        try:
            return await self._run_sync(
                sync_run_id=sync_run_id,
                correlation_id=correlation_id,
                fetch_timeout_seconds=fetch_timeout_seconds,
            )
        finally:
            sync_run_id_var.reset(token)

    async def _run_sync(
        self,
        *,
        sync_run_id: str,
        correlation_id: Optional[str],
        fetch_timeout_seconds: Optional[float],
    ) -> SyncResult:
        logger.info(f"Starting product sync. RunID={sync_run_id} CID={correlation_id}")

        fetch = self._fetch_sources()
        if fetch_timeout_seconds is not None:
            products, allocations = await asyncio.wait_for(fetch, timeout=fetch_timeout_seconds)
        else:
            products, allocations = await fetch

        reconciled = reconcile_products(
            products,
            allocations,
            allowed_product_types=self._allowed_product_types,
        )
        skipped = len(products) - len(reconciled)
        if not reconciled:
            logger.warning(
                "product_sync.no_data",
                extra={
                    "extra_fields": {
                        "sync_run_id": sync_run_id,
                        "products_count": len(products),
                        "allocations_count": len(allocations),
                    }
                },
            )
            raise ProductSyncNoDataError("PRODUCT_SYNC_NO_DATA")

        try:
            result = await asyncio.to_thread(self._persister.replace_all, reconciled)
        except Exception as exc:
            raise ProductSyncPersistenceError("PRODUCT_SYNC_PERSISTENCE_FAILED") from exc

        result.sync_run_id = sync_run_id
        result.skipped_products = skipped
        result.completed_at = datetime.now(timezone.utc)
        logger.info(
            "product_sync.completed",
            extra={
                "extra_fields": {
                    "sync_run_id": sync_run_id,
                    "products_processed": result.products_processed,
                    "allocations_processed": result.allocations_processed,
                    "skipped_products": skipped,
                }
            },
        )
        return result

    def list_products(self) -> list[ReconciledProduct]:
        return self._persister.fetch_all()

    async def _fetch_sources(
        self,
    ) -> tuple[list[SourceProductPayload], list[SourceAllocationPayload]]:
        products_task = asyncio.create_task(self._gateway.fetch_products())
        allocations_task = asyncio.create_task(self._gateway.fetch_allocations())
        try:
            products, allocations = await asyncio.gather(products_task, allocations_task)
        except BaseException:
            # cancel the sibling fetch so it never outlives the join
            for task in (products_task, allocations_task):
                task.cancel()
            await asyncio.gather(products_task, allocations_task, return_exceptions=True)
            raise
        logger.info(
            "Fetched source data. products=%s allocations=%s",
            len(products),
            len(allocations),
        )
        return products, allocations
