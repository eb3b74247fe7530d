from typing import Any, Iterable

from src.core.product_sync.models import FlattenedAllocation, ReconciledProduct


def products_from_rows(
    product_rows: Iterable[Any], allocation_rows: Iterable[Any]
) -> list[ReconciledProduct]:
    """Build products from ordered rows of any driver exposing column access by name."""
    rows_by_product: dict[str, list[FlattenedAllocation]] = {}
    for row in allocation_rows:
        rows_by_product.setdefault(row["product_id"], []).append(
            FlattenedAllocation(
                product_id=row["product_id"],
                asset_class=row["asset_class"],
                region=row["region"],
                security_isin=row["security_isin"],
                security_count=int(row["security_count"]),
            )
        )
    return [
        ReconciledProduct(
            id=row["id"],
            product_type=row["product_type"],
            profit=float(row["profit"]),
            current_amount=float(row["current_amount"]),
            invested_amount=float(row["invested_amount"]),
            allocations=rows_by_product.get(row["id"], []),
        )
        for row in product_rows
    ]
