"""Mongo-backed stores. Needs a running MongoDB: ORDERPAY_MONGO_TESTS=1."""

import os
import uuid

import pytest

from conftest import make_order, make_settings
from orderpay.models.order import PaymentStatus
from orderpay.models.payment_event import ProcessedWebhook
from orderpay.stores.base import get_stores

pytestmark = [
    pytest.mark.asyncio,
    pytest.mark.skipif(os.environ.get("ORDERPAY_MONGO_TESTS") != "1", reason="MongoDB tests disabled"),
]


async def mongo():
    settings = make_settings(
        store_backend="mongo",
        mongodb_uri=os.environ.get("MONGODB_URI", "mongodb://localhost:27017"),
        mongodb_db_name="orderpay_test",
    )
    return await get_stores(settings)


async def test_order_round_trip_keeps_decimal_totals():
    stores = await mongo()
    order = await stores.orders.insert(make_order())
    loaded = await stores.orders.get(order.id)
    assert loaded.total == order.total
    assert loaded.items[0].unit_price == order.items[0].unit_price
    assert (await stores.orders.get_by_order_number(order.order_number)).id == order.id


async def test_compare_and_set_on_payment_status():
    stores = await mongo()
    order = await stores.orders.insert(make_order())
    moved = await stores.orders.update_if_payment_status(order.id, PaymentStatus.PENDING, {
        "payment_status": PaymentStatus.PAID,
        "transaction_id": f"tx_{order.id}",
    })
    assert moved.payment_status is PaymentStatus.PAID
    lost = await stores.orders.update_if_payment_status(order.id, PaymentStatus.PENDING, {
        "payment_status": PaymentStatus.FAILED,
    })
    assert lost is None
    found = await stores.orders.find_by_payment_ref(transaction_id=f"tx_{order.id}")
    assert found.id == order.id


async def test_idempotency_key_is_unique():
    stores = await mongo()
    key = f"event:{uuid.uuid4()}"
    assert await stores.idempotency.claim(ProcessedWebhook(key=key)) is True
    assert await stores.idempotency.claim(ProcessedWebhook(key=key)) is False
    await stores.idempotency.set_outcome(key, "applied", "order-1")
    assert (await stores.idempotency.get(key)).outcome == "applied"
    await stores.idempotency.release(key)
    assert await stores.idempotency.get(key) is None


async def test_payment_ref_prefers_transaction_id():
    stores = await mongo()
    suffix = uuid.uuid4().hex
    await stores.orders.insert(make_order(session_id=f"sess_{suffix}"))
    by_transaction = await stores.orders.insert(make_order(transaction_id=f"tx_{suffix}"))
    found = await stores.orders.find_by_payment_ref(transaction_id=f"tx_{suffix}", session_id=f"sess_{suffix}")
    assert found.id == by_transaction.id
