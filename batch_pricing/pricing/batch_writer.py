import asyncio
import logging
import math
from typing import List, Optional

from batch_pricing.config import settings
from batch_pricing.database import db
from batch_pricing.models.propagation import (
    BatchPriceUpdate, BatchWriteResult, FailedWrite, PropagationTrigger, SkippedWrite
)

logger = logging.getLogger(__name__)

def rejection_reason(update: BatchPriceUpdate) -> Optional[str]:
    """Why an update must not be written, or None when it is safe."""
    fields = update.to_update_fields()
    for name, value in fields.items():
        if not math.isfinite(value):
            return f"{name} is not finite ({value})"
    if update.unit_price < 0:
        return f"unitPrice is negative ({update.unit_price})"
    return None

class BatchPriceWriter:
    """
    Persists batch price updates. Every batch is an independent write; all
    outcomes are collected so a partial failure is visible to the caller.
    There is no rollback of writes that already succeeded.
    """

    def __init__(self, max_retries: Optional[int] = None, backoff_seconds: Optional[float] = None):
        self.max_retries = settings.BATCH_WRITE_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_seconds = settings.BATCH_WRITE_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds

    async def write(self, updates: List[BatchPriceUpdate], trigger: PropagationTrigger, order_id: str) -> BatchWriteResult:
        result = BatchWriteResult()
        writable = []
        for update in updates:
            reason = rejection_reason(update)
            if reason:
                logger.error(f"Batch {update.batch_id}: refusing price write from PO {order_id}: {reason}")
                result.skipped.append(SkippedWrite(batch_id=update.batch_id, reason=reason))
            else:
                writable.append(update)

        outcomes = await asyncio.gather(
            *(self._write_one(update, trigger, order_id) for update in writable)
        )
        for update, failure in zip(writable, outcomes):
            if failure is None:
                result.succeeded.append(update.batch_id)
            else:
                result.failed.append(failure)

        if result.failed:
            logger.error(
                f"PO {order_id}: {len(result.failed)} of {len(writable)} batch writes failed "
                f"({', '.join(result.failed_batch_ids)}); {len(result.succeeded)} were written and are not rolled back"
            )
        return result

    async def _write_one(self, update: BatchPriceUpdate, trigger: PropagationTrigger, order_id: str) -> Optional[FailedWrite]:
        attempts = 0
        while True:
            attempts += 1
            try:
                found = await db.batches.update_prices(
                    update.batch_id, update.to_update_fields(), trigger.reason, order_id
                )
                if not found:
                    # Deleted between locate and write; retrying cannot help
                    return FailedWrite(batch_id=update.batch_id, error="batch not found", attempts=attempts)
                logger.info(
                    f"Batch {update.batch_id} price updated: base {update.base_unit_price:.4f} "
                    f"+ additional {update.additional_cost_per_unit:.4f} = {update.unit_price:.4f}"
                )
                return None
            except Exception as e:
                if attempts > self.max_retries:
                    logger.error(f"Batch {update.batch_id}: price write failed after {attempts} attempts: {e}")
                    return FailedWrite(batch_id=update.batch_id, error=str(e), attempts=attempts)
                delay = self.backoff_seconds * (2 ** (attempts - 1))
                logger.warning(f"Batch {update.batch_id}: price write failed ({e}), retrying in {delay:.2f}s")
                await asyncio.sleep(delay)

batch_writer = BatchPriceWriter()
