"""Server-side cart pricing and order creation."""

from decimal import Decimal

import pytest

from conftest import make_settings
from orderpay.core.exceptions import BadRequestError
from orderpay.models.cart import Cart, CartItem, Product
from orderpay.models.order import OrderStatus, PaymentStatus
from orderpay.services.checkout import validate_checkout

pytestmark = pytest.mark.asyncio


async def seed_catalog(stores):
    await stores.catalog.upsert(Product(id="p-filter", title="Oil filter", price=Decimal("75.00")))
    await stores.catalog.upsert(Product(id="p-belt", title="Fan belt", price=Decimal("19.99")))
    await stores.catalog.upsert(Product(id="p-old", title="Discontinued pump", price=Decimal("10"), active=False))


async def test_prices_cart_from_catalog(stores):
    await seed_catalog(stores)
    # cart carries a stale display price; the catalog wins
    await stores.carts.save(Cart(user_id="user-1", items=[
        CartItem(product_id="p-filter", quantity=2, unit_price=Decimal("1.00")),
        CartItem(product_id="p-belt", quantity=3),
    ]))
    settings = make_settings(tax_rate=Decimal("0.16"), shipping_flat=Decimal("25"))

    order = await validate_checkout(stores, settings, user_id="user-1", customer_email="farmer@example.com")

    assert order.subtotal == Decimal("209.97")
    assert order.tax == Decimal("33.60")
    assert order.shipping == Decimal("25.00")
    assert order.total == Decimal("268.57")
    assert order.currency == "ZMW"
    assert order.order_status is OrderStatus.AWAITING_PAYMENT
    assert order.payment_status is PaymentStatus.PENDING
    assert [i.unit_price for i in order.items] == [Decimal("75.00"), Decimal("19.99")]
    assert await stores.orders.get(order.id) is not None
    audit = await stores.audit.list_for_entity("order", order.id)
    assert [a.event_type for a in audit] == ["ORDER_CREATED"]


async def test_guest_checkout_sets_guest_token(stores, settings):
    await seed_catalog(stores)
    await stores.carts.save(Cart(guest_session_id="guest-1", items=[CartItem(product_id="p-belt", quantity=1)]))
    order = await validate_checkout(stores, settings, guest_session_id="guest-1")
    assert order.user_id is None
    assert order.guest_token == "guest-1"
    assert order.total == Decimal("19.99")


async def test_empty_cart_rejected(stores, settings):
    with pytest.raises(BadRequestError):
        await validate_checkout(stores, settings, user_id="user-1")
    await stores.carts.save(Cart(user_id="user-1", items=[]))
    with pytest.raises(BadRequestError):
        await validate_checkout(stores, settings, user_id="user-1")


async def test_unknown_or_inactive_products_rejected(stores, settings):
    await seed_catalog(stores)
    await stores.carts.save(Cart(user_id="user-1", items=[
        CartItem(product_id="p-old", quantity=1),
        CartItem(product_id="p-ghost", quantity=1),
    ]))
    with pytest.raises(BadRequestError) as exc:
        await validate_checkout(stores, settings, user_id="user-1")
    assert exc.value.details == {"product_ids": ["p-old", "p-ghost"]}
