from datetime import datetime
from typing import List, Optional, Union
from batch_pricing.models.base import MongoModel, StoreValue, Number, PyObjectId

VatRate = Union[float, str, None]

def vat_percent(rate: VatRate) -> float:
    """Numeric VAT rate in percent. Markers such as "ZW" (exempt) or "NP" count as 0."""
    if isinstance(rate, bool) or not isinstance(rate, (int, float)):
        return 0.0
    return float(rate)

class POItem(StoreValue):
    """Line item of a purchase order. `id` is stable within the order."""
    id: PyObjectId
    inventory_item_id: Optional[str] = None
    name: Optional[str] = None
    quantity: Number = 0.0
    unit: Optional[str] = None
    unit_price: Number = 0.0
    discount: Number = 0.0
    vat_rate: VatRate = 0.0

    @property
    def effective_unit_price(self) -> float:
        """Unit price net of the line discount."""
        return self.unit_price * (100 - self.discount) / 100

class AdditionalCostItem(StoreValue):
    """Freight, customs and similar costs not attributable to a single line."""
    id: Optional[PyObjectId] = None
    description: Optional[str] = None
    value: Number = 0.0
    vat_rate: VatRate = 0.0

    @property
    def gross(self) -> float:
        net = self.value
        return net + net * vat_percent(self.vat_rate) / 100

class PurchaseOrder(MongoModel):
    """
    Purchase order document. Only the fields the batch price propagation
    reads are modelled; everything else stays untouched in the store.
    """
    number: Optional[str] = None
    status: Optional[str] = None
    currency: Optional[str] = None

    items: List[POItem] = []
    additional_costs_items: List[AdditionalCostItem] = []
    # Legacy flat amount, already gross
    additional_costs: Optional[Number] = None

    updated_at: Optional[datetime] = None

    @property
    def total_additional_costs_gross(self) -> float:
        """
        Gross additional costs. Itemised costs are net plus VAT; the legacy
        flat field is taken as already gross.
        """
        if self.additional_costs_items:
            return sum(cost.gross for cost in self.additional_costs_items)
        if self.additional_costs:
            return self.additional_costs
        return 0.0
