import logging
from typing import Dict, List, Optional, Set, Tuple

from batch_pricing.config import settings
from batch_pricing.models.inventory_batch import InventoryBatch
from batch_pricing.models.purchase_order import POItem
from batch_pricing.models.propagation import (
    BatchPriceUpdate, MatchStrategy, PriceChange, PropagationResult, PropagationTrigger
)
from batch_pricing.pricing.batch_locator import batch_locator
from batch_pricing.pricing.batch_writer import batch_writer

logger = logging.getLogger(__name__)

def pair_previous_items(old_items: List[POItem], new_items: List[POItem]) -> Dict[str, POItem]:
    """
    Map each new line id to its previous version. Lines pair by id first;
    a re-keyed line falls back to catalog id plus name, but only against old
    lines whose id is gone from the order. Each old line pairs at most once.
    """
    old_by_id = {old.id: old for old in old_items}
    new_ids = {item.id for item in new_items}
    pairs: Dict[str, POItem] = {}
    for item in new_items:
        if item.id in old_by_id:
            pairs[item.id] = old_by_id[item.id]

    orphans = [old for old in old_items if old.id not in new_ids]
    for item in new_items:
        if item.id in pairs or not item.inventory_item_id:
            continue
        previous = next(
            (old for old in orphans
             if old.inventory_item_id == item.inventory_item_id and old.name == item.name),
            None,
        )
        if previous is not None:
            orphans.remove(previous)
            pairs[item.id] = previous
    return pairs

def diff_item_prices(old_items: List[POItem], new_items: List[POItem],
                     tolerance: Optional[float] = None) -> List[PriceChange]:
    """
    Lines whose effective unit price moved by more than `tolerance`.
    Lines without a previous counterpart are new, not changed.
    """
    tolerance = settings.PRICE_CHANGE_TOLERANCE if tolerance is None else tolerance
    pairs = pair_previous_items(old_items, new_items)
    changes = []
    for item in new_items:
        previous = pairs.get(item.id)
        if previous is None:
            continue
        if abs(item.effective_unit_price - previous.effective_unit_price) > tolerance:
            changes.append(PriceChange(
                item_id=item.id,
                inventory_item_id=item.inventory_item_id,
                name=item.name,
                new_unit_price=item.effective_unit_price,
            ))
    return changes

def price_changes_from_items(items: List[POItem]) -> List[PriceChange]:
    """Treat every current line as changed (used by the manual resync)."""
    return [
        PriceChange(item_id=item.id, inventory_item_id=item.inventory_item_id,
                    name=item.name, new_unit_price=item.effective_unit_price)
        for item in items
    ]

def match_price_change(batch: InventoryBatch,
                       changes: List[PriceChange],
                       order_items: List[POItem],
                       used_item_ids: Optional[Set[str]] = None) -> Optional[Tuple[PriceChange, MatchStrategy]]:
    """
    Strict-to-loose matching of a batch to the line that produced it:
    the recorded line id, then catalog id or name, then the single-line
    shortcut. A batch whose recorded line still exists on the order is
    matched by that line only.
    """
    used_item_ids = used_item_ids if used_item_ids is not None else set()
    linkage = batch.linkage
    item_po_id = linkage.item_po_id if linkage else None

    if item_po_id:
        change = next((c for c in changes if c.item_id == item_po_id), None)
        if change:
            return change, MatchStrategy.ITEM_PO_ID
        if any(item.id == item_po_id for item in order_items):
            return None

    catalog_ids = batch.catalog_ids
    candidates = [
        (c, MatchStrategy.CATALOG_ID) for c in changes
        if (c.inventory_item_id and c.inventory_item_id in catalog_ids) or c.item_id in catalog_ids
    ]
    if not candidates and batch.item_name:
        candidates = [(c, MatchStrategy.NAME) for c in changes if c.name and c.name == batch.item_name]
    if candidates:
        # Spread batches over equally matching lines before reusing one
        return next((m for m in candidates if m[0].item_id not in used_item_ids), candidates[0])

    if len(order_items) == 1 and len(changes) == 1:
        return changes[0], MatchStrategy.SINGLE_ITEM
    return None

def plan_base_price_updates(batches: List[InventoryBatch],
                            changes: List[PriceChange],
                            order_items: List[POItem]) -> Tuple[List[BatchPriceUpdate], List[str]]:
    """New base prices for matched batches; the surcharge is carried over unchanged."""
    updates, unmatched = [], []
    used_item_ids: Set[str] = set()
    for batch in batches:
        match = match_price_change(batch, changes, order_items, used_item_ids)
        if match is None:
            unmatched.append(batch.id)
            continue
        change, strategy = match
        used_item_ids.add(change.item_id)
        updates.append(BatchPriceUpdate(
            batch_id=batch.id,
            base_unit_price=change.new_unit_price,
            additional_cost_per_unit=batch.additional_cost_per_unit,
            unit_price=change.new_unit_price + batch.additional_cost_per_unit,
            matched_by=strategy,
            item_id=change.item_id,
        ))
    return updates, unmatched

class PriceReconciler:
    """Rewrites batch base prices after purchase order line prices change."""

    async def reconcile(self, order_id: str, old_items: List[POItem], new_items: List[POItem]) -> PropagationResult:
        result = PropagationResult(order_id=order_id, trigger=PropagationTrigger.LINE_ITEM_PRICES)

        changes = diff_item_prices(old_items, new_items)
        if not changes:
            logger.info(f"PO {order_id}: no line item price changes")
            result.noop_reason = "no price changes"
            return result
        logger.info(f"PO {order_id}: {len(changes)} line item price changes: {[c.item_id for c in changes]}")

        batches = await batch_locator.locate(order_id)
        result.batches_located = len(batches)
        if not batches:
            result.noop_reason = "no linked batches"
            return result

        result.updates, result.unmatched_batch_ids = plan_base_price_updates(batches, changes, new_items)
        for batch_id in result.unmatched_batch_ids:
            logger.warning(f"PO {order_id}: batch {batch_id} matches no changed line, left untouched")
        if not result.updates:
            return result

        result.writes = await batch_writer.write(result.updates, result.trigger, order_id)
        return result

price_reconciler = PriceReconciler()
