import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Response, status

from batch_pricing.cache.order_cache import order_cache
from batch_pricing.database import db
from batch_pricing.models.base import StoreValue
from batch_pricing.models.purchase_order import POItem, AdditionalCostItem
from batch_pricing.models.propagation import PropagationResult
from batch_pricing.pricing.batch_locator import batch_locator
from batch_pricing.pricing.propagation import price_propagation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/purchase-orders", tags=["Purchase Orders"])

# Request Models
class PurchaseOrderPricingUpdate(StoreValue):
    """Whole-array replacement of the priced parts of an order."""
    items: Optional[List[POItem]] = None
    additional_costs_items: Optional[List[AdditionalCostItem]] = None
    additional_costs: Optional[float] = None

def _serialize(result: PropagationResult) -> Dict[str, Any]:
    data = result.model_dump(mode="json")
    data["ok"] = result.ok
    data["failed_batch_ids"] = result.writes.failed_batch_ids
    return data

@router.put("/{order_id}")
async def update_purchase_order_pricing(order_id: str, update: PurchaseOrderPricingUpdate, response: Response):
    before = await db.purchase_orders.get(order_id)
    if not before:
        raise HTTPException(status_code=404, detail="Purchase order not found")

    after = await db.purchase_orders.replace_pricing(
        order_id,
        items=update.items,
        additional_costs_items=update.additional_costs_items,
        additional_costs=update.additional_costs,
    )
    if not after:
        raise HTTPException(status_code=404, detail="Purchase order not found")

    try:
        results = await price_propagation.on_purchase_order_updated(before, after)
    except Exception as e:
        logger.error(f"PO {order_id}: batch price propagation failed: {e}")
        raise HTTPException(status_code=500, detail=f"Order saved but batch price propagation failed: {str(e)}")

    if any(not r.ok for r in results):
        response.status_code = status.HTTP_207_MULTI_STATUS
    return {"order_id": order_id, "propagation": [_serialize(r) for r in results]}

@router.post("/{order_id}/resync-batch-prices")
async def resync_batch_prices(order_id: str, response: Response):
    try:
        result = await price_propagation.resync_batch_prices(order_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Purchase order not found")

    if not result.ok:
        response.status_code = status.HTTP_207_MULTI_STATUS
    return _serialize(result)

@router.get("/{order_id}/batches")
async def list_order_batches(order_id: str):
    cached = order_cache.get(order_id, kind="batches")
    if cached is not None:
        return cached

    batches = await batch_locator.locate(order_id)
    payload = [batch.model_dump(mode="json", by_alias=True) for batch in batches]
    order_cache.set(order_id, payload, kind="batches")
    return payload
