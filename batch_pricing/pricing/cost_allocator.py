import logging
import math
from typing import Dict, List, Optional

from batch_pricing.models.inventory_batch import InventoryBatch
from batch_pricing.models.purchase_order import PurchaseOrder
from batch_pricing.models.propagation import BatchPriceUpdate, PropagationResult, PropagationTrigger
from batch_pricing.pricing.batch_locator import batch_locator
from batch_pricing.pricing.batch_writer import batch_writer

logger = logging.getLogger(__name__)

# Below this, two stored prices are the same price
PRICE_EPSILON = 1e-9

def compute_cost_allocation(batches: List[InventoryBatch],
                            total_additional_cost_gross: float,
                            base_prices: Optional[Dict[str, float]] = None) -> List[BatchPriceUpdate]:
    """
    Apportion the order's gross additional costs across its batches by
    received quantity. Each batch's share divided by its own quantity gives
    the per-unit surcharge on top of its base price.

    `base_prices` overrides the stored base price per batch id (used when the
    base is being rewritten in the same run). Otherwise the stored base is
    reused, or `unit_price` on first touch.
    """
    total_weight = sum(batch.weight for batch in batches)
    updates = []
    for batch in batches:
        weight = batch.weight
        additional_cost_per_unit = 0.0
        if total_additional_cost_gross > 0 and total_weight > 0 and weight > 0:
            proportion = weight / total_weight
            batch_share = total_additional_cost_gross * proportion
            additional_cost_per_unit = batch_share / weight

        if base_prices and batch.id in base_prices:
            base_unit_price = base_prices[batch.id]
        else:
            base_unit_price = batch.current_base_unit_price

        updates.append(BatchPriceUpdate(
            batch_id=batch.id,
            base_unit_price=base_unit_price,
            additional_cost_per_unit=additional_cost_per_unit,
            unit_price=base_unit_price + additional_cost_per_unit,
        ))
    return updates

def price_fields_differ(batch: InventoryBatch, update: BatchPriceUpdate) -> bool:
    if batch.base_unit_price is None:
        return True
    return any(
        abs(stored - computed) > PRICE_EPSILON
        for stored, computed in (
            (batch.base_unit_price, update.base_unit_price),
            (batch.additional_cost_per_unit, update.additional_cost_per_unit),
            (batch.unit_price, update.unit_price),
        )
    )

class CostAllocator:
    """Spreads a purchase order's additional costs over the batches it produced."""

    async def allocate(self, order: PurchaseOrder) -> PropagationResult:
        result = PropagationResult(order_id=order.id, trigger=PropagationTrigger.ADDITIONAL_COSTS)

        total_gross = order.total_additional_costs_gross
        if not math.isfinite(total_gross):
            logger.error(f"PO {order.id}: additional costs total is not finite ({total_gross}), skipping allocation")
            result.noop_reason = "additional costs total is not finite"
            return result
        if total_gross <= 0:
            logger.info(f"PO {order.id}: no additional costs to allocate")
            result.noop_reason = "no additional costs"
            return result

        batches = await batch_locator.locate(order.id)
        result.batches_located = len(batches)
        if not batches:
            result.noop_reason = "no linked batches"
            return result

        total_weight = sum(batch.weight for batch in batches)
        if total_weight <= 0:
            logger.info(f"PO {order.id}: linked batches have zero total initial quantity, skipping allocation")
            result.noop_reason = "zero total initial quantity"
            return result

        logger.info(
            f"PO {order.id}: allocating {total_gross:.4f} gross additional costs "
            f"over {len(batches)} batches (total initial quantity {total_weight})"
        )
        by_id = {batch.id: batch for batch in batches}
        updates = compute_cost_allocation(batches, total_gross)
        result.updates = [u for u in updates if price_fields_differ(by_id[u.batch_id], u)]
        if not result.updates:
            logger.info(f"PO {order.id}: batch prices already reflect additional costs")
            return result

        result.writes = await batch_writer.write(result.updates, result.trigger, order.id)
        return result

cost_allocator = CostAllocator()
