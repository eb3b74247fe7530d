import os
import warnings
from typing import cast

from src.api.routers.runtime_utils import env_csv_set, env_positive_float
from src.core.product_sync.models import DEFAULT_PRODUCT_TYPES
from src.core.product_sync.repository import ProductSyncRepository
from src.infrastructure.product_sync import (
    InMemoryProductSyncRepository,
    PostgresProductSyncRepository,
    SqliteProductSyncRepository,
)
from src.infrastructure.source_gateway import DEFAULT_SOURCE_BASE_URL, HttpProductSourceGateway

DEFAULT_SOURCE_TIMEOUT_SECONDS = 30.0


def product_sync_store_backend_name() -> str:
    backend = os.getenv("PRODUCT_SYNC_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend == "POSTGRES":
        return "POSTGRES"
    warnings.warn(
        (
            "PRODUCT_SYNC_STORE_BACKEND legacy runtime backends "
            "(IN_MEMORY/SQL/SQLITE) are deprecated; use POSTGRES."
        ),
        DeprecationWarning,
        stacklevel=2,
    )
    return "SQL" if backend in {"SQL", "SQLITE"} else "IN_MEMORY"


def product_sync_sql_path() -> str:
    return os.getenv("PRODUCT_SYNC_SQL_PATH", ".data/product_sync.db")


def product_sync_postgres_dsn() -> str:
    return os.getenv("PRODUCT_SYNC_POSTGRES_DSN", "").strip()


def product_source_base_url() -> str:
    return os.getenv("PRODUCT_SOURCE_BASE_URL", DEFAULT_SOURCE_BASE_URL).strip()


def product_source_timeout_seconds() -> float:
    return env_positive_float("PRODUCT_SOURCE_TIMEOUT_SECONDS", DEFAULT_SOURCE_TIMEOUT_SECONDS)


def allowed_product_types() -> set[str]:
    return env_csv_set("PRODUCT_SYNC_PRODUCT_TYPES", set(DEFAULT_PRODUCT_TYPES))


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        TypeError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


def build_repository() -> ProductSyncRepository:
    backend = product_sync_store_backend_name()
    if backend == "SQL":
        return cast(
            ProductSyncRepository,
            SqliteProductSyncRepository(database_path=product_sync_sql_path()),
        )
    if backend == "POSTGRES":
        dsn = product_sync_postgres_dsn()
        if not dsn:
            raise RuntimeError("PRODUCT_SYNC_POSTGRES_DSN_REQUIRED")
        try:
            return cast(ProductSyncRepository, PostgresProductSyncRepository(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("PRODUCT_SYNC_POSTGRES_CONNECTION_FAILED") from exc
    return cast(ProductSyncRepository, InMemoryProductSyncRepository())


def build_gateway() -> HttpProductSourceGateway:
    return HttpProductSourceGateway(
        base_url=product_source_base_url(),
        timeout_seconds=product_source_timeout_seconds(),
    )
