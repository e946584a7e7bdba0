from datetime import datetime
from typing import List, Optional
from pydantic import Field
from batch_pricing.models.base import MongoModel

class SystemEvent(MongoModel):
    """
    Event document consumed by downstream cost recalculation.
    type "batchPriceUpdate" lists the batches whose unitPrice changed.
    """
    type: str = "batchPriceUpdate"
    batch_ids: List[str] = []
    source_type: str = "purchaseOrder"
    source_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    processed: bool = False
