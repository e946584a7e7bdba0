import copy
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, patch

from batch_pricing.database import db
from batch_pricing.models.inventory_batch import InventoryBatch
from batch_pricing.models.purchase_order import PurchaseOrder


class FakeBatchRepository:
    """In-memory stand-in for InventoryBatchRepository. Duplicate _id records are allowed."""

    def __init__(self, docs=None):
        self.docs = [copy.deepcopy(d) for d in (docs or [])]
        self.writes = []
        self.failures = {}  # batch_id -> number of upcoming writes that raise

    def _matching(self, predicate):
        return [InventoryBatch.from_mongo(copy.deepcopy(d)) for d in self.docs if predicate(d)]

    async def find_by_purchase_order(self, order_id):
        return self._matching(lambda d: (d.get("purchaseOrderDetails") or {}).get("id") == order_id)

    async def find_by_legacy_source(self, order_id):
        return self._matching(lambda d: (d.get("sourceDetails") or {}).get("orderId") == order_id)

    async def update_prices(self, batch_id, fields, reason, order_id):
        if self.failures.get(batch_id, 0) > 0:
            self.failures[batch_id] -= 1
            raise ConnectionError(f"write to {batch_id} rejected")
        found = False
        for doc in self.docs:
            if doc["_id"] == batch_id:
                doc.update(fields)
                doc["lastPriceUpdateReason"] = reason
                doc["lastPriceUpdateFrom"] = order_id
                found = True
        self.writes.append((batch_id, dict(fields)))
        return found

    def doc(self, batch_id):
        return next(d for d in self.docs if d["_id"] == batch_id)


def make_batch(batch_id, order_id="PO-1", item_po_id=None, legacy=False, **fields):
    doc = {"_id": batch_id, "quantity": fields.pop("quantity", 0)}
    if legacy:
        doc["sourceDetails"] = {"sourceType": "purchase", "orderId": order_id, "itemPoId": item_po_id}
    else:
        doc["purchaseOrderDetails"] = {"id": order_id, "itemPoId": item_po_id}
    doc.update(fields)
    return doc


@pytest.fixture
def make_batch_doc():
    return make_batch


@pytest.fixture
def fake_db():
    """Swap the repositories on the shared Database object for fakes."""
    with patch.object(db, "batches", FakeBatchRepository()), \
         patch.object(db, "purchase_orders", AsyncMock()), \
         patch.object(db, "events", AsyncMock()), \
         patch("batch_pricing.pricing.batch_writer.asyncio.sleep", AsyncMock()):
        yield db


@pytest.fixture
def sample_order():
    return PurchaseOrder.from_mongo({
        "_id": "PO-1",
        "number": "PO/2024/001",
        "items": [
            {"id": "line-1", "inventoryItemId": "INV-A", "name": "Vitamin C", "quantity": 100, "unitPrice": 10.0, "vatRate": 23},
            {"id": "line-2", "inventoryItemId": "INV-B", "name": "Magnesium", "quantity": 50, "unitPrice": 4.0, "vatRate": 23},
        ],
        "additionalCostsItems": [
            {"id": "cost-1", "description": "Freight", "value": 100.0, "vatRate": 23},
        ],
        "updatedAt": datetime(2024, 1, 1),
    })
