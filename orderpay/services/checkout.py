"""Checkout: price the cart server-side and create the order."""

from decimal import Decimal

from orderpay.core.audit import log_event
from orderpay.core.config import Settings
from orderpay.core.exceptions import BadRequestError
from orderpay.core.logging import get_logger
from orderpay.core.money import quantize
from orderpay.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from orderpay.stores.base import Stores

log = get_logger(__name__)


async def validate_checkout(
    stores: Stores,
    settings: Settings,
    user_id: str | None = None,
    guest_session_id: str | None = None,
    customer_email: str | None = None,
    customer_name: str | None = None,
) -> Order:
    """Build an awaiting_payment order from the caller's cart. Prices come from the catalog, never the cart."""
    if not user_id and not guest_session_id:
        raise BadRequestError("A user or guest session is required")
    cart = await stores.carts.get(user_id=user_id, guest_session_id=guest_session_id)
    if cart is None or not cart.items:
        raise BadRequestError("Cart is empty")

    products = await stores.catalog.get_products([item.product_id for item in cart.items])
    items: list[OrderItem] = []
    unavailable: list[str] = []
    for line in cart.items:
        product = products.get(line.product_id)
        if product is None or not product.active:
            unavailable.append(line.product_id)
            continue
        if line.quantity < 1:
            raise BadRequestError("Quantity must be at least 1", details={"product_id": line.product_id})
        unit_price = quantize(product.price)
        items.append(
            OrderItem(
                product_id=product.id,
                title=product.title,
                unit_price=unit_price,
                quantity=line.quantity,
                subtotal=quantize(unit_price * line.quantity),
            )
        )
    if unavailable:
        raise BadRequestError("Some products are unavailable", details={"product_ids": unavailable})

    subtotal = quantize(sum((i.subtotal for i in items), Decimal("0")))
    tax = quantize(subtotal * settings.tax_rate)
    shipping = quantize(settings.shipping_flat)
    order = Order(
        user_id=user_id,
        guest_token=None if user_id else guest_session_id,
        customer_email=customer_email,
        customer_name=customer_name,
        items=items,
        currency=settings.default_currency.upper(),
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=quantize(subtotal + tax + shipping),
        order_status=OrderStatus.AWAITING_PAYMENT,
        payment_status=PaymentStatus.PENDING,
    )
    await stores.orders.insert(order)
    await log_event(
        stores.audit,
        "ORDER_CREATED",
        "order",
        order.id,
        {"order_number": order.order_number, "total": str(order.total), "currency": order.currency,
         "items": len(items)},
        user_id=user_id,
    )
    log.info("order_created", order_id=order.id, order_number=order.order_number, total=str(order.total))
    return order
