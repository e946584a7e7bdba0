from datetime import datetime
from typing import List, Optional
from batch_pricing.repositories.base import BaseRepository
from batch_pricing.models.purchase_order import PurchaseOrder, POItem, AdditionalCostItem

class PurchaseOrderRepository(BaseRepository[PurchaseOrder]):

    async def replace_pricing(self,
                              order_id: str,
                              items: Optional[List[POItem]] = None,
                              additional_costs_items: Optional[List[AdditionalCostItem]] = None,
                              additional_costs: Optional[float] = None) -> Optional[PurchaseOrder]:
        """Whole-array replacement of the priced parts of an order."""
        update = {"updatedAt": datetime.utcnow()}
        if items is not None:
            update["items"] = [item.model_dump(by_alias=True) for item in items]
        if additional_costs_items is not None:
            update["additionalCostsItems"] = [cost.model_dump(by_alias=True) for cost in additional_costs_items]
        if additional_costs is not None:
            update["additionalCosts"] = additional_costs
        return await self.update(order_id, update)
