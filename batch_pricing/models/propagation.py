from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

class PropagationTrigger(str, Enum):
    ADDITIONAL_COSTS = "ADDITIONAL_COSTS"
    LINE_ITEM_PRICES = "LINE_ITEM_PRICES"
    MANUAL_RESYNC = "MANUAL_RESYNC"

    @property
    def reason(self) -> str:
        """Value stamped into the batch's lastPriceUpdateReason."""
        return {
            PropagationTrigger.ADDITIONAL_COSTS: "PO additional costs update",
            PropagationTrigger.LINE_ITEM_PRICES: "PO line item price update",
            PropagationTrigger.MANUAL_RESYNC: "Manual batch price resync",
        }[self]

class MatchStrategy(str, Enum):
    ITEM_PO_ID = "ITEM_PO_ID"
    CATALOG_ID = "CATALOG_ID"
    NAME = "NAME"
    SINGLE_ITEM = "SINGLE_ITEM"

class PriceChange(BaseModel):
    """A purchase order line whose (effective) unit price moved."""
    item_id: str
    inventory_item_id: Optional[str] = None
    name: Optional[str] = None
    new_unit_price: float

class BatchPriceUpdate(BaseModel):
    """Computed price fields for one batch."""
    batch_id: str
    base_unit_price: float
    additional_cost_per_unit: float
    unit_price: float
    matched_by: Optional[MatchStrategy] = None
    item_id: Optional[str] = None

    def to_update_fields(self) -> dict:
        return {
            "baseUnitPrice": self.base_unit_price,
            "additionalCostPerUnit": self.additional_cost_per_unit,
            "unitPrice": self.unit_price,
        }

class FailedWrite(BaseModel):
    batch_id: str
    error: str
    attempts: int = 1

class SkippedWrite(BaseModel):
    batch_id: str
    reason: str

class BatchWriteResult(BaseModel):
    """
    Outcome of persisting a set of batch updates. Writes are independent:
    a partial failure leaves succeeded batches written.
    """
    succeeded: List[str] = []
    failed: List[FailedWrite] = []
    skipped: List[SkippedWrite] = []

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def failed_batch_ids(self) -> List[str]:
        return [f.batch_id for f in self.failed]

    def merge(self, other: "BatchWriteResult") -> "BatchWriteResult":
        return BatchWriteResult(
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
        )

class PropagationResult(BaseModel):
    order_id: str
    trigger: PropagationTrigger
    batches_located: int = 0
    noop_reason: Optional[str] = None
    updates: List[BatchPriceUpdate] = []
    unmatched_batch_ids: List[str] = []
    writes: BatchWriteResult = Field(default_factory=BatchWriteResult)

    @property
    def ok(self) -> bool:
        return self.writes.ok
