from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SourceProductPayload = dict[str, Any]
SourceAllocationPayload = dict[str, Any]

DEFAULT_PRODUCT_TYPES = frozenset({"WEALTH", "PRIVATE_EQUITY"})

SECURITY_COUNT_MIN = -(2**63)
SECURITY_COUNT_MAX = 2**63 - 1

ROW_ID_SEPARATOR = "_"


def _escape_row_id_part(value: str) -> str:
    return value.replace("\\", "\\\\").replace(ROW_ID_SEPARATOR, "\\" + ROW_ID_SEPARATOR)


class _SourceModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ProductSummary(_SourceModel):
    id: str = Field(description="Source product identifier.", examples=["p1"])
    product_type: str = Field(
        description="Product category from the configured closed set.",
        examples=["WEALTH"],
    )
    profit: float = Field(description="Realised plus unrealised profit.", examples=[1000])
    current_amount: float = Field(description="Current market amount.", examples=[5000])
    invested_amount: float = Field(description="Total amount invested.", examples=[4000])


class SecurityHolding(_SourceModel):
    isin: str = Field(description="Security ISIN.", examples=["US0378331005"])
    count: int = Field(
        description="Number of units held.",
        examples=[100],
        ge=SECURITY_COUNT_MIN,
        le=SECURITY_COUNT_MAX,
    )


class AllocationRegion(_SourceModel):
    name: str = Field(description="Region label.", examples=["US"])
    security: Optional[SecurityHolding] = Field(
        default=None,
        description="Security held for the region, absent when nothing is held.",
    )


class AllocationAssetClass(_SourceModel):
    name: str = Field(description="Asset class label.", examples=["Stocks"])
    region: List[AllocationRegion] = Field(default_factory=list)


class AllocationBreakdown(_SourceModel):
    name: Optional[str] = Field(default=None, description="Allocation label.")
    asset_class: List[AllocationAssetClass] = Field(default_factory=list)


class AllocationTree(_SourceModel):
    id: str = Field(description="Source product identifier.", examples=["p1"])
    allocation: AllocationBreakdown


class FlattenedAllocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str = Field(examples=["p1"])
    asset_class: str = Field(examples=["Stocks"])
    region: str = Field(examples=["US"])
    security_isin: str = Field(examples=["US123"])
    security_count: int = Field(examples=[100], ge=SECURITY_COUNT_MIN, le=SECURITY_COUNT_MAX)

    @property
    def row_id(self) -> str:
        """Stable row key with the separator backslash-escaped inside each part."""
        return ROW_ID_SEPARATOR.join(
            _escape_row_id_part(part)
            for part in (self.product_id, self.asset_class, self.region, self.security_isin)
        )


class ReconciledProduct(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Product identifier.", examples=["p1"])
    product_type: str = Field(examples=["WEALTH"])
    profit: float = Field(examples=[1000])
    current_amount: float = Field(examples=[5000])
    invested_amount: float = Field(examples=[4000])
    allocations: List[FlattenedAllocation] = Field(
        default_factory=list,
        description="Leaf-level allocation rows in source document order.",
    )


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


class PairingVerdict(str, Enum):
    PAIRED = "PAIRED"
    ORPHAN_PRODUCT = "ORPHAN_PRODUCT"
    ORPHAN_ALLOCATION = "ORPHAN_ALLOCATION"
    DUPLICATE_ID = "DUPLICATE_ID"


class PairingResult(BaseModel):
    product_id: str
    verdict: PairingVerdict
    errors: List[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.verdict is PairingVerdict.PAIRED


class SyncResult(BaseModel):
    success: bool = Field(description="True when the snapshot was committed.")
    products_processed: int = Field(default=0, description="Products written to the store.")
    allocations_processed: int = Field(
        default=0, description="Allocation rows written to the store."
    )
    errors: List[str] = Field(default_factory=list)
    sync_run_id: Optional[str] = Field(default=None, examples=["ps_3f9a0c1d2e4b"])
    skipped_products: int = Field(
        default=0,
        description="Source products excluded by pairing or validation.",
    )
    completed_at: Optional[datetime] = None
