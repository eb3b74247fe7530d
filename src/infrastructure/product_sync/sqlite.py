import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from threading import Lock
from typing import Iterator

from src.core.product_sync.models import FlattenedAllocation, ReconciledProduct
from src.core.product_sync.repository import ProductSyncRepository
from src.infrastructure.product_sync.rows import products_from_rows


class _SqliteUnitOfWork:
    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def delete_all_allocations(self) -> int:
        cursor = self._connection.execute("DELETE FROM product_allocations")
        return cursor.rowcount

    def delete_all_products(self) -> int:
        cursor = self._connection.execute("DELETE FROM products")
        return cursor.rowcount

    def insert_product(self, product: ReconciledProduct) -> None:
        query = """
            INSERT INTO products (
                id,
                product_type,
                profit,
                current_amount,
                invested_amount
            ) VALUES (?, ?, ?, ?, ?)
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
            ) VALUES (?, ?, ?, ?, ?, ?)
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


class SqliteProductSyncRepository(ProductSyncRepository):
    def __init__(self, *, database_path: str) -> None:
        self._lock = Lock()
        self._database_path = database_path
        self._init_db()

    @contextmanager
    def unit_of_work(self) -> Iterator[_SqliteUnitOfWork]:
        with self._lock, closing(self._connect()) as connection:
            try:
                yield _SqliteUnitOfWork(connection)
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
            ORDER BY product_id ASC, rowid ASC
        """
        with closing(self._connect()) as connection:
            product_rows = connection.execute(products_query).fetchall()
            allocation_rows = connection.execute(allocations_query).fetchall()
        return products_from_rows(product_rows, allocation_rows)

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def _init_db(self) -> None:
        Path(self._database_path).parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as connection:
            connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS products (
                    id TEXT PRIMARY KEY,
                    product_type TEXT NOT NULL,
                    profit REAL NOT NULL,
                    current_amount REAL NOT NULL,
                    invested_amount REAL NOT NULL
                );

                CREATE TABLE IF NOT EXISTS product_allocations (
                    id TEXT PRIMARY KEY,
                    product_id TEXT NOT NULL REFERENCES products(id),
                    asset_class TEXT NOT NULL,
                    region TEXT NOT NULL,
                    security_isin TEXT NOT NULL,
                    security_count INTEGER NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_product_allocations_product_id
                    ON product_allocations (product_id);
                """
            )
            connection.commit()
