"""Admin refund requests and processor transaction lookup.

A refund request does not touch the order: the processor confirms it with a
refund webhook, which goes through the reconciler like any other status.
"""

from decimal import Decimal
from typing import Any

from orderpay.core.audit import log_event
from orderpay.core.exceptions import BadRequestError, NotFoundError, ProcessorError
from orderpay.core.logging import get_logger
from orderpay.core.money import quantize, to_minor_units
from orderpay.models.order import PaymentStatus
from orderpay.services.processor import ProcessorCallError, ProcessorClient
from orderpay.stores.base import Stores

log = get_logger(__name__)

REFUNDABLE = {PaymentStatus.PAID, PaymentStatus.AUTHORISED}


async def request_refund(
    stores: Stores,
    processor: ProcessorClient,
    order_id: str,
    admin_id: str,
    amount: Decimal | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    order = await stores.orders.get(order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if order.payment_status not in REFUNDABLE or not order.transaction_id:
        raise BadRequestError(
            "Order has no captured payment to refund",
            details={"payment_status": order.payment_status.value},
        )
    amount_minor = None
    if amount is not None:
        amount = quantize(amount)
        if amount <= 0 or amount > order.total:
            raise BadRequestError("Refund amount must be positive and at most the order total")
        amount_minor = to_minor_units(amount)
    reason = reason or "requested_by_admin"
    try:
        result = await processor.refund(order.transaction_id, amount_minor, reason)
    except ProcessorCallError as e:
        log.error("refund_failed", order_id=order.id, transaction_id=order.transaction_id, error=str(e))
        await log_event(
            stores.audit,
            "REFUND_FAILED",
            "order",
            order.id,
            {
                "order_number": order.order_number,
                "transaction_id": order.transaction_id,
                "amount": str(amount) if amount is not None else str(order.total),
                "error": str(e),
                "status_code": e.status_code,
            },
            user_id=admin_id,
            risk_score=6,
        )
        raise ProcessorError("Refund request failed") from e
    await log_event(
        stores.audit,
        "REFUND_REQUESTED",
        "order",
        order.id,
        {
            "order_number": order.order_number,
            "transaction_id": order.transaction_id,
            "amount": str(amount) if amount is not None else str(order.total),
            "partial": amount is not None and amount != order.total,
            "reason": reason,
        },
        user_id=admin_id,
    )
    log.info("refund_requested", order_id=order.id, transaction_id=order.transaction_id, amount_minor=amount_minor)
    return {"success": True, "order_id": order.id, "transaction_id": order.transaction_id, "processor": result}


async def lookup_transaction(processor: ProcessorClient, transaction_id: str) -> dict[str, Any]:
    try:
        return await processor.lookup_transaction(transaction_id)
    except ProcessorCallError as e:
        if e.status_code == 404:
            raise NotFoundError("Transaction not found") from e
        log.error("transaction_lookup_failed", transaction_id=transaction_id, error=str(e))
        raise ProcessorError("Transaction lookup failed") from e
