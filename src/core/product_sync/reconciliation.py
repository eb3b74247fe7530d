import logging
from typing import AbstractSet, Iterator, Optional, Sequence

from pydantic import ValidationError

from src.core.product_sync.models import (
    AllocationTree,
    FlattenedAllocation,
    ProductSummary,
    ReconciledProduct,
    SourceAllocationPayload,
    SourceProductPayload,
)
from src.core.product_sync.validation import (
    validate_allocation,
    validate_pairing,
    validate_product,
)

logger = logging.getLogger(__name__)


def flatten_allocations(tree: AllocationTree) -> Iterator[FlattenedAllocation]:
    """Yield one row per region holding a security, in asset class then region order."""
    for asset_class in tree.allocation.asset_class:
        for region in asset_class.region:
            if region.security is None:
                continue
            yield FlattenedAllocation(
                product_id=tree.id,
                asset_class=asset_class.name,
                region=region.name,
                security_isin=region.security.isin,
                security_count=region.security.count,
            )


def _duplicate_row_ids(rows: Sequence[FlattenedAllocation]) -> list[str]:
    seen: set[str] = set()
    duplicates: list[str] = []
    for row in rows:
        if row.row_id in seen and row.row_id not in duplicates:
            duplicates.append(row.row_id)
        seen.add(row.row_id)
    return duplicates


def _skip(product_id: Optional[str], reason: str, errors: Optional[list[str]] = None) -> None:
    logger.warning(
        "product.skipped",
        extra={
            "extra_fields": {
                "product_id": product_id,
                "reason": reason,
                "errors": errors or [],
            }
        },
    )


def reconcile_products(
    products: Sequence[SourceProductPayload],
    allocations: Sequence[SourceAllocationPayload],
    *,
    allowed_product_types: Optional[AbstractSet[str]] = None,
) -> list[ReconciledProduct]:
    pairing = validate_pairing(products, allocations)
    allocations_by_id = {
        payload["id"]: payload for payload in allocations if isinstance(payload.get("id"), str)
    }

    reconciled: list[ReconciledProduct] = []
    for payload in products:
        product_id = payload.get("id")

        pairing_result = pairing.get(product_id) if isinstance(product_id, str) else None
        if pairing_result is None or not pairing_result.is_valid:
            _skip(
                product_id,
                "PAIRING_FAILED",
                pairing_result.errors if pairing_result is not None else ["Product ID is missing"],
            )
            continue

        product_validation = validate_product(
            payload, allowed_product_types=allowed_product_types
        )
        if not product_validation.is_valid:
            _skip(product_id, "PRODUCT_INVALID", product_validation.errors)
            continue

        allocation_payload = allocations_by_id.get(product_id)
        if allocation_payload is None:
            _skip(product_id, "ALLOCATION_NOT_FOUND")
            continue

        allocation_validation = validate_allocation(allocation_payload)
        if not allocation_validation.is_valid:
            _skip(product_id, "ALLOCATION_INVALID", allocation_validation.errors)
            continue

        try:
            summary = ProductSummary.model_validate(payload)
            tree = AllocationTree.model_validate(allocation_payload)
        except ValidationError as exc:
            _skip(
                product_id,
                "PAYLOAD_NOT_PARSEABLE",
                [f"{'.'.join(map(str, error['loc']))}: {error['msg']}" for error in exc.errors()],
            )
            continue

        rows = list(flatten_allocations(tree))
        if not rows:
            _skip(product_id, "NO_ALLOCATION_ROWS")
            continue

        duplicate_row_ids = _duplicate_row_ids(rows)
        if duplicate_row_ids:
            _skip(
                product_id,
                "DUPLICATE_ALLOCATION_ROW",
                [f"Allocation row {row_id} appears more than once" for row_id in duplicate_row_ids],
            )
            continue

        reconciled.append(
            ReconciledProduct(
                id=summary.id,
                product_type=summary.product_type,
                profit=summary.profit,
                current_amount=summary.current_amount,
                invested_amount=summary.invested_amount,
                allocations=rows,
            )
        )
        logger.info(
            "product.reconciled",
            extra={"extra_fields": {"product_id": product_id, "allocations_count": len(rows)}},
        )

    return reconciled
