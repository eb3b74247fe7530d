from src.infrastructure.product_sync.in_memory import InMemoryProductSyncRepository
from src.infrastructure.product_sync.postgres import PostgresProductSyncRepository
from src.infrastructure.product_sync.sqlite import SqliteProductSyncRepository

__all__ = [
    "InMemoryProductSyncRepository",
    "PostgresProductSyncRepository",
    "SqliteProductSyncRepository",
]
