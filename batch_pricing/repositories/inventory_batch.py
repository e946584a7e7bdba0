from datetime import datetime
from typing import List
from batch_pricing.repositories.base import BaseRepository
from batch_pricing.models.inventory_batch import InventoryBatch

SYSTEM_USER = "system"

class InventoryBatchRepository(BaseRepository[InventoryBatch]):

    async def find_by_purchase_order(self, order_id: str) -> List[InventoryBatch]:
        """Batches linked through purchaseOrderDetails (current model)."""
        return await self.find_by_field("purchaseOrderDetails.id", order_id)

    async def find_by_legacy_source(self, order_id: str) -> List[InventoryBatch]:
        """Batches linked through sourceDetails (legacy model)."""
        return await self.find_by_field("sourceDetails.orderId", order_id)

    async def update_prices(self, batch_id: str, fields: dict, reason: str, order_id: str) -> bool:
        """Write price fields and stamp who/why for the change."""
        return await self.update_fields(batch_id, {
            **fields,
            "updatedAt": datetime.utcnow(),
            "updatedBy": SYSTEM_USER,
            "lastPriceUpdateReason": reason,
            "lastPriceUpdateFrom": order_id,
        })
