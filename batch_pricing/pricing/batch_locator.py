import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from batch_pricing.database import db
from batch_pricing.models.inventory_batch import InventoryBatch

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

def _timestamp(batch: InventoryBatch) -> Optional[datetime]:
    ts = batch.updated_at
    if ts is not None and ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts

def _rank(batch: InventoryBatch) -> Tuple[bool, datetime, float, str]:
    ts = _timestamp(batch)
    return (
        ts is not None,
        ts or _EPOCH,
        batch.quantity,
        batch.model_dump_json(by_alias=True),
    )

def _is_newer(candidate: InventoryBatch, current: InventoryBatch) -> bool:
    return _rank(candidate) > _rank(current)

def deduplicate_batches(batches: List[InventoryBatch]) -> List[InventoryBatch]:
    """
    Collapse records sharing an id (residue of warehouse transfers).
    The copy with the newest updatedAt wins. Ties go to the larger quantity,
    then to the record's serialized form, so query order never decides.
    """
    unique: Dict[str, InventoryBatch] = {}
    for batch in batches:
        if not batch.id:
            continue
        current = unique.get(batch.id)
        if current is None or _is_newer(batch, current):
            unique[batch.id] = batch
    return list(unique.values())

class BatchLocator:
    """Resolves the inventory batches created by a purchase order."""

    async def locate(self, order_id: str) -> List[InventoryBatch]:
        batches = await db.batches.find_by_purchase_order(order_id)
        if not batches:
            # Legacy linkage is a fallback, never merged with the current one
            batches = await db.batches.find_by_legacy_source(order_id)
            if batches:
                logger.info(f"PO {order_id}: resolved {len(batches)} batch records via legacy sourceDetails")

        unique = deduplicate_batches(batches)
        if len(unique) < len(batches):
            logger.info(f"PO {order_id}: dropped {len(batches) - len(unique)} duplicate batch records")
        if not unique:
            logger.info(f"PO {order_id}: no linked batches")
        return unique

batch_locator = BatchLocator()
