from datetime import datetime
from enum import Enum
from typing import Optional, Set
from pydantic import BaseModel, ConfigDict
from batch_pricing.models.base import MongoModel, StoreValue, Number, PyObjectId

class LinkKind(str, Enum):
    PURCHASE_ORDER = "PURCHASE_ORDER"   # purchaseOrderDetails
    LEGACY_SOURCE = "LEGACY_SOURCE"     # sourceDetails

class BatchLinkage(BaseModel):
    """Normalized reference from a batch back to its order (and order line)."""
    model_config = ConfigDict(frozen=True)

    kind: LinkKind
    order_id: str
    item_po_id: Optional[str] = None

class PurchaseOrderDetails(StoreValue):
    """Current linkage shape, stamped by the receiving flow."""
    id: Optional[PyObjectId] = None
    number: Optional[str] = None
    item_po_id: Optional[PyObjectId] = None

    def to_linkage(self) -> Optional[BatchLinkage]:
        if not self.id:
            return None
        return BatchLinkage(kind=LinkKind.PURCHASE_ORDER, order_id=self.id, item_po_id=self.item_po_id or None)

class SourceDetails(StoreValue):
    """Legacy linkage shape. Untyped or 'purchase' sources point at an order."""
    source_type: Optional[str] = None
    order_id: Optional[PyObjectId] = None
    order_number: Optional[str] = None
    item_po_id: Optional[PyObjectId] = None

    def to_linkage(self) -> Optional[BatchLinkage]:
        if self.source_type not in (None, "purchase") or not self.order_id:
            return None
        return BatchLinkage(kind=LinkKind.LEGACY_SOURCE, order_id=self.order_id, item_po_id=self.item_po_id or None)

class InventoryBatch(MongoModel):
    """
    Inventory batch document. `unit_price` is derived and must equal
    `base_unit_price + additional_cost_per_unit` after any propagation run.
    """
    batch_number: Optional[str] = None
    lot_number: Optional[str] = None
    warehouse_id: Optional[str] = None

    # Catalog references, populated differently by old and new receiving flows
    item_id: Optional[str] = None
    inventory_item_id: Optional[str] = None
    material_id: Optional[str] = None
    item_name: Optional[str] = None

    quantity: Number = 0.0
    initial_quantity: Optional[Number] = None

    unit_price: Number = 0.0
    base_unit_price: Optional[Number] = None
    additional_cost_per_unit: Number = 0.0

    purchase_order_details: Optional[PurchaseOrderDetails] = None
    source_details: Optional[SourceDetails] = None

    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    last_price_update_reason: Optional[str] = None
    last_price_update_from: Optional[str] = None

    @property
    def weight(self) -> float:
        """Allocation weight: the received quantity, or the current one when it was never recorded."""
        return self.initial_quantity or self.quantity or 0.0

    @property
    def current_base_unit_price(self) -> float:
        """Stored base price, initialized from `unit_price` on first touch."""
        if self.base_unit_price is None:
            return self.unit_price
        return self.base_unit_price

    @property
    def linkage(self) -> Optional[BatchLinkage]:
        return resolve_linkage(self)

    @property
    def catalog_ids(self) -> Set[str]:
        return {ref for ref in (self.inventory_item_id, self.item_id, self.material_id) if ref}

def resolve_linkage(batch: InventoryBatch) -> Optional[BatchLinkage]:
    """
    Single resolver for both linkage shapes. The current shape wins; a
    legacy-linked batch may still carry its line id under sourceDetails.
    """
    if batch.purchase_order_details:
        linkage = batch.purchase_order_details.to_linkage()
        if linkage:
            if not linkage.item_po_id and batch.source_details and batch.source_details.item_po_id:
                return linkage.model_copy(update={"item_po_id": batch.source_details.item_po_id})
            return linkage
    if batch.source_details:
        return batch.source_details.to_linkage()
    return None
