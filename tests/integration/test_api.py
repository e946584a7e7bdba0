import sys
import os
sys.path.append(os.getcwd())
import pytest
from httpx import ASGITransport, AsyncClient
from unittest.mock import AsyncMock, patch

from batch_pricing.main import app
from batch_pricing.cache.order_cache import order_cache
from batch_pricing.models.purchase_order import PurchaseOrder
from batch_pricing.pricing.batch_locator import BatchLocator


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture(autouse=True)
def clear_order_cache():
    order_cache.clear()
    yield
    order_cache.clear()


@pytest.mark.asyncio
async def test_health_check():
    async with _client() as ac:
        response = await ac.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_update_propagates_to_batches(fake_db, make_batch_doc, sample_order):
    fake_db.batches.docs = [
        make_batch_doc("B1", item_po_id="line-1", initialQuantity=100, unitPrice=10.0),
        make_batch_doc("B2", item_po_id="line-2", initialQuantity=50, unitPrice=4.0),
    ]
    # Freight was already allocated once: 123 gross over 150 units
    for doc in fake_db.batches.docs:
        doc["baseUnitPrice"] = doc["unitPrice"]
        doc["additionalCostPerUnit"] = 0.82
        doc["unitPrice"] = doc["baseUnitPrice"] + 0.82

    after = sample_order.model_copy(deep=True)
    after.items[0].unit_price = 11.0
    fake_db.purchase_orders.get = AsyncMock(return_value=sample_order)
    fake_db.purchase_orders.replace_pricing = AsyncMock(return_value=after)

    payload = {"items": [item.model_dump(by_alias=True) for item in after.items]}
    async with _client() as ac:
        response = await ac.put("/api/purchase-orders/PO-1", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["propagation"][0]["trigger"] == "LINE_ITEM_PRICES"
    assert body["propagation"][0]["writes"]["succeeded"] == ["B1"]
    assert fake_db.batches.doc("B1")["baseUnitPrice"] == 11.0
    assert fake_db.batches.doc("B1")["unitPrice"] == pytest.approx(11.82)
    assert fake_db.batches.doc("B2")["unitPrice"] == pytest.approx(4.82)

    sent = fake_db.purchase_orders.replace_pricing.call_args.kwargs
    assert [item.unit_price for item in sent["items"]] == [11.0, 4.0]
    assert sent["additional_costs_items"] is None


@pytest.mark.asyncio
async def test_update_unknown_order_returns_404(fake_db):
    fake_db.purchase_orders.get = AsyncMock(return_value=None)
    async with _client() as ac:
        response = await ac.put("/api/purchase-orders/PO-404", json={"additionalCosts": 10})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_of_order_deleted_mid_request_returns_404(fake_db, sample_order):
    fake_db.purchase_orders.get = AsyncMock(return_value=sample_order)
    fake_db.purchase_orders.replace_pricing = AsyncMock(return_value=None)
    with patch("batch_pricing.api.purchase_orders.price_propagation") as propagation:
        propagation.on_purchase_order_updated = AsyncMock()
        async with _client() as ac:
            response = await ac.put("/api/purchase-orders/PO-1", json={"additionalCosts": 10})

    assert response.status_code == 404
    propagation.on_purchase_order_updated.assert_not_awaited()


@pytest.mark.asyncio
async def test_partial_write_failure_returns_207(fake_db, make_batch_doc):
    fake_db.batches.docs = [
        make_batch_doc("B1", initialQuantity=10, unitPrice=1.0),
        make_batch_doc("B2", initialQuantity=10, unitPrice=1.0),
    ]
    fake_db.batches.failures = {"B2": 100}
    before = PurchaseOrder(id="PO-1")
    after = PurchaseOrder(id="PO-1", additional_costs=20.0)
    fake_db.purchase_orders.get = AsyncMock(return_value=before)
    fake_db.purchase_orders.replace_pricing = AsyncMock(return_value=after)

    async with _client() as ac:
        response = await ac.put("/api/purchase-orders/PO-1", json={"additionalCosts": 20.0})

    assert response.status_code == 207
    [result] = response.json()["propagation"]
    assert result["ok"] is False
    assert result["failed_batch_ids"] == ["B2"]
    assert result["writes"]["succeeded"] == ["B1"]


@pytest.mark.asyncio
async def test_resync_endpoint(fake_db, make_batch_doc, sample_order):
    fake_db.batches.docs = [make_batch_doc("B1", item_po_id="line-2", initialQuantity=50, unitPrice=1.0)]
    fake_db.purchase_orders.get = AsyncMock(return_value=sample_order)

    async with _client() as ac:
        response = await ac.post("/api/purchase-orders/PO-1/resync-batch-prices")

    assert response.status_code == 200
    assert response.json()["trigger"] == "MANUAL_RESYNC"
    doc = fake_db.batches.doc("B1")
    assert doc["baseUnitPrice"] == 4.0
    assert doc["unitPrice"] == pytest.approx(4.0 + 123.0 / 50)


@pytest.mark.asyncio
async def test_resync_unknown_order_returns_404(fake_db):
    fake_db.purchase_orders.get = AsyncMock(return_value=None)
    async with _client() as ac:
        response = await ac.post("/api/purchase-orders/PO-404/resync-batch-prices")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_batches_endpoint_reads_through_cache(fake_db, make_batch_doc):
    fake_db.batches.docs = [make_batch_doc("B1", unitPrice=3.0)]

    with patch("batch_pricing.api.purchase_orders.batch_locator") as mock_locator:
        mock_locator.locate = AsyncMock(side_effect=BatchLocator().locate)
        async with _client() as ac:
            first = await ac.get("/api/purchase-orders/PO-1/batches")
            second = await ac.get("/api/purchase-orders/PO-1/batches")

    assert first.json() == second.json()
    assert first.json()[0]["_id"] == "B1"
    assert mock_locator.locate.await_count == 1
