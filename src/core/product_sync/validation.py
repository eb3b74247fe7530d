"""
Structural and business-rule checks for source product and allocation payloads.

All checks run on the raw JSON objects returned by the source so that a
malformed payload is reported instead of failing at parse time.
"""

import logging
import math
from collections import Counter
from typing import AbstractSet, Any, Iterable, Optional

from src.core.product_sync.models import (
    DEFAULT_PRODUCT_TYPES,
    SECURITY_COUNT_MAX,
    SECURITY_COUNT_MIN,
    PairingResult,
    PairingVerdict,
    SourceAllocationPayload,
    SourceProductPayload,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _is_present_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def validate_product_type(
    value: Any, *, allowed_product_types: Optional[AbstractSet[str]] = None
) -> bool:
    if not _is_present_text(value):
        return False
    allowed = DEFAULT_PRODUCT_TYPES if allowed_product_types is None else allowed_product_types
    return value in allowed


def validate_product(
    payload: SourceProductPayload,
    *,
    allowed_product_types: Optional[AbstractSet[str]] = None,
) -> ValidationResult:
    allowed = DEFAULT_PRODUCT_TYPES if allowed_product_types is None else allowed_product_types
    errors: list[str] = []

    if not _is_present_text(payload.get("id")):
        errors.append("Product ID is missing")

    product_type = payload.get("productType")
    if not validate_product_type(product_type, allowed_product_types=allowed):
        errors.append(
            f"Invalid or missing product type: {product_type}. "
            f"Must be one of: {', '.join(sorted(allowed))}"
        )

    if not _is_number(payload.get("profit")):
        errors.append("Profit must be a number")
    if not _is_number(payload.get("currentAmount")):
        errors.append("Current amount must be a number")
    if not _is_number(payload.get("investedAmount")):
        errors.append("Invested amount must be a number")

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_allocation(payload: SourceAllocationPayload) -> ValidationResult:
    if not _is_present_text(payload.get("id")):
        return ValidationResult(is_valid=False, errors=["Allocation ID is missing"])

    allocation = payload.get("allocation")
    if not isinstance(allocation, dict):
        return ValidationResult(is_valid=False, errors=["Allocation data is missing"])

    errors: list[str] = []
    name = allocation.get("name")
    if name is not None and not isinstance(name, str):
        errors.append("Allocation name is invalid")

    asset_classes = allocation.get("assetClass")
    if not isinstance(asset_classes, list):
        errors.append("Asset class data is missing or invalid")
        return ValidationResult(is_valid=False, errors=errors)

    for asset_index, asset_class in enumerate(asset_classes):
        if not isinstance(asset_class, dict):
            errors.append(f"Asset class data is invalid at index {asset_index}")
            continue
        errors.extend(_asset_class_errors(asset_class, asset_index))

    return ValidationResult(is_valid=not errors, errors=errors)


def _asset_class_errors(asset_class: dict[str, Any], asset_index: int) -> list[str]:
    errors: list[str] = []
    if not _is_present_text(asset_class.get("name")):
        errors.append(f"Asset class name is missing at index {asset_index}")

    regions = asset_class.get("region")
    if not isinstance(regions, list):
        errors.append(f"Region data is missing or invalid for asset class at index {asset_index}")
        return errors

    for region_index, region in enumerate(regions):
        position = f"asset class {asset_index}, region {region_index}"
        if not isinstance(region, dict):
            errors.append(f"Region data is invalid at {position}")
            continue
        if not _is_present_text(region.get("name")):
            errors.append(f"Region name is missing at {position}")

        security = region.get("security")
        if not isinstance(security, dict):
            errors.append(f"Security data is missing at {position}")
            continue
        if not _is_present_text(security.get("isin")):
            errors.append(f"Security ISIN is missing at {position}")
        count = security.get("count")
        if not _is_number(count) or (isinstance(count, float) and not count.is_integer()):
            errors.append(f"Security count must be a number at {position}")
        elif not SECURITY_COUNT_MIN <= count <= SECURITY_COUNT_MAX:
            errors.append(f"Security count is out of range at {position}")
    return errors


def _collect_ids(payloads: Iterable[dict[str, Any]]) -> Counter:
    return Counter(
        payload.get("id") for payload in payloads if _is_present_text(payload.get("id"))
    )


def validate_pairing(
    products: Iterable[SourceProductPayload],
    allocations: Iterable[SourceAllocationPayload],
) -> dict[str, PairingResult]:
    """Classify every product and allocation id by its presence in both collections.

    Comparison is set based, so the resulting mapping does not depend on the
    order of either collection. Ids repeated inside one collection are
    rejected with ``DUPLICATE_ID`` rather than resolved by position.
    """
    product_counts = _collect_ids(products)
    allocation_counts = _collect_ids(allocations)
    product_ids = set(product_counts)
    allocation_ids = set(allocation_counts)

    results: dict[str, PairingResult] = {}
    for product_id in sorted(product_ids | allocation_ids):
        if product_counts[product_id] > 1 or allocation_counts[product_id] > 1:
            results[product_id] = PairingResult(
                product_id=product_id,
                verdict=PairingVerdict.DUPLICATE_ID,
                errors=[
                    f"Product {product_id} appears {product_counts[product_id]} time(s) in "
                    f"product data and {allocation_counts[product_id]} time(s) in "
                    "allocation data"
                ],
            )
            logger.warning(
                "pairing.duplicate_id",
                extra={"extra_fields": {"product_id": product_id}},
            )
        elif product_id not in allocation_ids:
            results[product_id] = PairingResult(
                product_id=product_id,
                verdict=PairingVerdict.ORPHAN_PRODUCT,
                errors=[f"Product {product_id} has no corresponding allocation data"],
            )
            logger.warning(
                "pairing.orphan_product",
                extra={"extra_fields": {"product_id": product_id}},
            )
        elif product_id not in product_ids:
            results[product_id] = PairingResult(
                product_id=product_id,
                verdict=PairingVerdict.ORPHAN_ALLOCATION,
                errors=[f"Allocation {product_id} has no corresponding product data"],
            )
            logger.warning(
                "pairing.orphan_allocation",
                extra={"extra_fields": {"allocation_id": product_id}},
            )
        else:
            results[product_id] = PairingResult(
                product_id=product_id, verdict=PairingVerdict.PAIRED
            )
    return results
