import asyncio
import argparse
import logging
import sys
from batch_pricing.database import db
from batch_pricing.pricing.propagation import price_propagation

async def resync(order_ids):
    failures = 0
    for order_id in order_ids:
        try:
            result = await price_propagation.resync_batch_prices(order_id)
        except LookupError as e:
            print(f"{order_id}: {e}")
            failures += 1
            continue

        if result.noop_reason:
            print(f"{order_id}: nothing to do ({result.noop_reason})")
            continue
        print(f"{order_id}: {len(result.writes.succeeded)} batches updated, "
              f"{len(result.writes.failed)} failed, {len(result.writes.skipped)} skipped, "
              f"{len(result.unmatched_batch_ids)} unmatched")
        for failed in result.writes.failed:
            print(f"  FAILED {failed.batch_id}: {failed.error}")
        if not result.ok:
            failures += 1
    return failures

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Recompute inventory batch prices from their purchase orders")
    parser.add_argument("order_ids", nargs="+", help="Purchase order IDs to resync")
    parser.add_argument("--log-level", type=str, default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level)
    db.connect()
    try:
        failed = asyncio.run(resync(args.order_ids))
    finally:
        db.close()
    sys.exit(1 if failed else 0)
