from typing import List
from batch_pricing.repositories.base import BaseRepository
from batch_pricing.models.system_event import SystemEvent

class SystemEventRepository(BaseRepository[SystemEvent]):

    async def emit_batch_price_update(self, batch_ids: List[str], order_id: str) -> SystemEvent:
        """Queue downstream cost recalculation for re-priced batches."""
        event = SystemEvent(batch_ids=batch_ids, source_id=order_id)
        return await self.create(event)
