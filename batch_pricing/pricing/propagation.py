import logging
import math
from typing import List, Optional, Tuple

from batch_pricing.cache.order_cache import OrderCache, order_cache
from batch_pricing.config import settings
from batch_pricing.database import db
from batch_pricing.models.purchase_order import POItem, PurchaseOrder
from batch_pricing.models.propagation import PropagationResult, PropagationTrigger
from batch_pricing.pricing.batch_locator import batch_locator
from batch_pricing.pricing.batch_writer import batch_writer
from batch_pricing.pricing.cost_allocator import compute_cost_allocation, cost_allocator, price_fields_differ
from batch_pricing.pricing.price_reconciler import plan_base_price_updates, price_changes_from_items, price_reconciler

logger = logging.getLogger(__name__)

def detect_changes(before: PurchaseOrder, after: PurchaseOrder) -> Tuple[bool, bool]:
    """(items_changed, additional_costs_changed) between two snapshots of an order."""
    items_changed = [i.model_dump() for i in before.items] != [i.model_dump() for i in after.items]
    costs_changed = (
        [c.model_dump() for c in before.additional_costs_items] != [c.model_dump() for c in after.additional_costs_items]
        or before.additional_costs != after.additional_costs
    )
    return items_changed, costs_changed

class PricePropagationService:
    """
    Entry points called after a purchase order is persisted. Each run reads
    the current store state, so re-running is safe. The order's cache entries
    are invalidated when a run ends, whether or not every write succeeded.
    """

    def __init__(self, cache: Optional[OrderCache] = None):
        self.cache = cache

    async def on_additional_costs_changed(self, order: PurchaseOrder) -> PropagationResult:
        try:
            result = await cost_allocator.allocate(order)
            await self._emit_price_event(result)
            return result
        finally:
            self._invalidate(order.id)

    async def on_line_item_prices_changed(self, order_id: str, old_items: List[POItem], new_items: List[POItem]) -> PropagationResult:
        try:
            result = await price_reconciler.reconcile(order_id, old_items, new_items)
            await self._emit_price_event(result)
            return result
        finally:
            self._invalidate(order_id)

    async def on_purchase_order_updated(self, before: PurchaseOrder, after: PurchaseOrder) -> List[PropagationResult]:
        """
        Runs the paths a purchase order update calls for. Base prices are
        written first so the allocation adds its surcharge to the new base.
        """
        items_changed, costs_changed = detect_changes(before, after)
        if not items_changed and not costs_changed:
            logger.info(f"PO {after.id}: no price relevant changes, skipping batch update")
            return []

        logger.info(f"PO {after.id}: price changes detected (items: {items_changed}, additional costs: {costs_changed})")
        results = []
        if items_changed:
            results.append(await self.on_line_item_prices_changed(after.id, before.items, after.items))
        if costs_changed or after.total_additional_costs_gross > 0:
            results.append(await self.on_additional_costs_changed(after))
        return results

    async def resync_batch_prices(self, order_id: str) -> PropagationResult:
        """
        Recompute every linked batch from the order as it stands: base price
        from its line, surcharge from the additional costs. Bypasses change
        detection; repeated runs write nothing new.
        """
        try:
            order = await db.purchase_orders.get(order_id)
            if order is None:
                raise LookupError(f"Purchase order {order_id} not found")

            result = PropagationResult(order_id=order_id, trigger=PropagationTrigger.MANUAL_RESYNC)
            batches = await batch_locator.locate(order_id)
            result.batches_located = len(batches)
            if not batches:
                result.noop_reason = "no linked batches"
                return result

            base_updates, result.unmatched_batch_ids = plan_base_price_updates(
                batches, price_changes_from_items(order.items), order.items
            )
            for batch_id in result.unmatched_batch_ids:
                logger.warning(f"PO {order_id}: batch {batch_id} matches no line, keeping its stored base price")

            total_gross = order.total_additional_costs_gross
            if not math.isfinite(total_gross):
                logger.error(f"PO {order_id}: additional costs total is not finite ({total_gross}), resync aborted")
                result.noop_reason = "additional costs total is not finite"
                return result

            by_id = {batch.id: batch for batch in batches}
            if total_gross > 0 and sum(batch.weight for batch in batches) <= 0:
                logger.info(f"PO {order_id}: linked batches have zero total initial quantity, keeping stored surcharges")
                result.noop_reason = "zero total initial quantity"
                updates = base_updates
            else:
                matches = {u.batch_id: u for u in base_updates}
                updates = compute_cost_allocation(
                    batches, total_gross, {u.batch_id: u.base_unit_price for u in base_updates}
                )
                for update in updates:
                    if update.batch_id in matches:
                        update.matched_by = matches[update.batch_id].matched_by
                        update.item_id = matches[update.batch_id].item_id
            result.updates = [u for u in updates if price_fields_differ(by_id[u.batch_id], u)]
            if not result.updates:
                logger.info(f"PO {order_id}: batch prices already in sync")
                return result

            result.writes = await batch_writer.write(result.updates, result.trigger, order_id)
            await self._emit_price_event(result)
            return result
        finally:
            self._invalidate(order_id)

    async def _emit_price_event(self, result: PropagationResult):
        if not settings.EMIT_BATCH_PRICE_EVENTS or not result.writes.succeeded:
            return
        try:
            await db.events.emit_batch_price_update(result.writes.succeeded, result.order_id)
            logger.info(f"PO {result.order_id}: batch price update event queued for {len(result.writes.succeeded)} batches")
        except Exception as e:
            logger.error(f"PO {result.order_id}: failed to queue batch price update event: {e}")

    def _invalidate(self, order_id: str):
        if self.cache is not None:
            self.cache.invalidate(order_id)

price_propagation = PricePropagationService(cache=order_cache)
