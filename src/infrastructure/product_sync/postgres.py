from contextlib import closing, contextmanager
from importlib.util import find_spec
from typing import Any, Iterator

from src.core.product_sync.models import FlattenedAllocation, ReconciledProduct
from src.core.product_sync.repository import ProductSyncRepository
from src.infrastructure.postgres_migrations import apply_postgres_migrations
from src.infrastructure.product_sync.rows import products_from_rows


class _PostgresUnitOfWork:
    def __init__(self, connection: Any) -> None:
        self._connection = connection

    def delete_all_allocations(self) -> int:
        cursor = self._connection.execute("DELETE FROM product_allocations")
        return int(cursor.rowcount)

    def delete_all_products(self) -> int:
        cursor = self._connection.execute("DELETE FROM products")
        return int(cursor.rowcount)

    def insert_product(self, product: ReconciledProduct) -> None:
        query = """
            INSERT INTO products (
                id,
                product_type,
                profit,
                current_amount,
                invested_amount
            ) VALUES (%s, %s, %s, %s, %s)
        """
        self._connection.execute(
            query,
            (
                product.id,
                product.product_type,
                product.profit,
                product.current_amount,
                product.invested_amount,
            ),
        )

    def insert_allocation(self, *, row_id: str, allocation: FlattenedAllocation) -> None:
        query = """
            INSERT INTO product_allocations (
                id,
                product_id,
                asset_class,
                region,
                security_isin,
                security_count
            ) VALUES (%s, %s, %s, %s, %s, %s)
        """
        self._connection.execute(
            query,
            (
                row_id,
                allocation.product_id,
                allocation.asset_class,
                allocation.region,
                allocation.security_isin,
                allocation.security_count,
            ),
        )


class PostgresProductSyncRepository(ProductSyncRepository):
    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("PRODUCT_SYNC_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("PRODUCT_SYNC_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    @contextmanager
    def unit_of_work(self) -> Iterator[_PostgresUnitOfWork]:
        with closing(self._connect()) as connection:
            try:
                yield _PostgresUnitOfWork(connection)
            except BaseException:
                connection.rollback()
                raise
            connection.commit()

    def list_products_with_allocations(self) -> list[ReconciledProduct]:
        products_query = """
            SELECT
                id,
                product_type,
                profit,
                current_amount,
                invested_amount
            FROM products
            ORDER BY id ASC
        """
        allocations_query = """
            SELECT
                product_id,
                asset_class,
                region,
                security_isin,
                security_count
            FROM product_allocations
            ORDER BY product_id ASC, seq ASC
        """
        with closing(self._connect()) as connection:
            product_rows = connection.execute(products_query).fetchall()
            allocation_rows = connection.execute(allocations_query).fetchall()
        return products_from_rows(product_rows, allocation_rows)

    def _connect(self) -> Any:
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def _init_db(self) -> None:
        with closing(self._connect()) as connection:
            apply_postgres_migrations(connection=connection, namespace="products")


def _import_psycopg() -> tuple[Any, Any]:
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row
