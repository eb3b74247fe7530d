from src.core.product_sync.gateway import ProductSourceGateway, SourceResponseShapeError
from src.core.product_sync.models import (
    FlattenedAllocation,
    PairingResult,
    PairingVerdict,
    ReconciledProduct,
    SyncResult,
    ValidationResult,
)
from src.core.product_sync.persister import ProductSyncPersister
from src.core.product_sync.reconciliation import flatten_allocations, reconcile_products
from src.core.product_sync.repository import ProductSyncRepository, ProductSyncUnitOfWork
from src.core.product_sync.service import (
    ProductSyncError,
    ProductSyncNoDataError,
    ProductSyncPersistenceError,
    ProductSyncService,
)

__all__ = [
    "FlattenedAllocation",
    "PairingResult",
    "PairingVerdict",
    "ProductSourceGateway",
    "ProductSyncError",
    "ProductSyncNoDataError",
    "ProductSyncPersistenceError",
    "ProductSyncPersister",
    "ProductSyncRepository",
    "ProductSyncService",
    "ProductSyncUnitOfWork",
    "ReconciledProduct",
    "SourceResponseShapeError",
    "SyncResult",
    "ValidationResult",
    "flatten_allocations",
    "reconcile_products",
]
