"""Side effects after a committed payment transition.

Each action runs on its own: a failing email never stops the audit write and
nothing here can undo the order update. Attempts per action come from
SIDE_EFFECT_MAX_ATTEMPTS (default 1, no retry).
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from orderpay.core.audit import log_event
from orderpay.core.config import Settings
from orderpay.core.logging import get_logger
from orderpay.models.email import EmailMessage
from orderpay.models.notification import Notification
from orderpay.models.order import Order, OrderStatus, PaymentStatus
from orderpay.models.webhook import WebhookPayload
from orderpay.services.email import Mailer
from orderpay.services.status_map import MappedStatus, StatusKind
from orderpay.stores.base import Stores

log = get_logger(__name__)

Action = tuple[str, Callable[[], Awaitable[Any]]]

AUDIT_EVENT_BY_KIND = {
    StatusKind.SETTLED: "PAYMENT_SUCCESS",
    StatusKind.AUTHORISED: "PAYMENT_SUCCESS",
    StatusKind.FAILED: "PAYMENT_FAILED",
    StatusKind.CANCELLED: "PAYMENT_CANCELLED",
    StatusKind.REFUNDED: "PAYMENT_REFUNDED",
    StatusKind.UNRECOGNIZED: "PAYMENT_STATUS_UNKNOWN",
}


@dataclass
class AppliedTransition:
    order: Order  # state after the write
    previous_order_status: OrderStatus
    previous_payment_status: PaymentStatus
    mapped: MappedStatus
    payload: WebhookPayload
    amount_mismatch: bool = False

    @property
    def changed(self) -> bool:
        return self.order.payment_status != self.previous_payment_status


class SideEffectDispatcher:
    def __init__(self, stores: Stores, mailer: Mailer, settings: Settings):
        self._stores = stores
        self._mailer = mailer
        self._settings = settings

    async def run(self, actions: list[Action], **context) -> dict[str, bool]:
        """Run every action; return name -> succeeded."""
        attempts = max(1, self._settings.side_effect_max_attempts)
        results: dict[str, bool] = {}
        for name, action in actions:
            results[name] = False
            for attempt in range(1, attempts + 1):
                try:
                    await action()
                    results[name] = True
                    break
                except Exception as e:
                    if attempt < attempts:
                        log.warning("side_effect_retry", action=name, attempt=attempt, error=str(e), **context)
                    else:
                        log.error("side_effect_failed", action=name, attempts=attempts, error=str(e), **context)
        return results

    async def dispatch(self, t: AppliedTransition) -> dict[str, bool]:
        actions = self.actions_for(t)
        return await self.run(actions, order_id=t.order.id, transaction_id=t.payload.transaction_id)

    def actions_for(self, t: AppliedTransition) -> list[Action]:
        order = t.order
        kind = t.mapped.kind
        actions: list[Action] = []
        if kind in (StatusKind.SETTLED, StatusKind.AUTHORISED):
            actions.append(("clear_cart", lambda: self._clear_cart(order)))
            if order.user_id:
                actions.append(("notify_user", lambda: self._notify(
                    order,
                    "Payment Confirmed",
                    f"Your payment for order {order.order_number} has been processed successfully.",
                    "payment",
                )))
            actions.append(("audit_payment", lambda: self._audit_payment(t)))
            if order.customer_email:
                actions.append(("email_customer", lambda: self._email_customer(t, "Payment received")))
            if self._settings.admin_alert_email:
                actions.append(("email_admin", lambda: self._email_admin(t, f"Order {order.order_number} paid")))
        elif kind is StatusKind.FAILED:
            if order.user_id:
                actions.append(("notify_user", lambda: self._notify(
                    order,
                    "Payment Failed",
                    f"Your payment for order {order.order_number} failed. Please try again or contact support.",
                    "error",
                )))
            actions.append(("audit_payment", lambda: self._audit_payment(t)))
            if self._settings.admin_alert_email:
                actions.append((
                    "email_admin",
                    lambda: self._email_admin(t, f"Payment failed for order {order.order_number}", "high"),
                ))
        elif kind is StatusKind.CANCELLED:
            if order.user_id:
                actions.append(("notify_user", lambda: self._notify(
                    order,
                    "Payment Cancelled",
                    f"Payment for order {order.order_number} was cancelled. "
                    "You can retry payment from your orders page.",
                    "warning",
                )))
            actions.append(("audit_payment", lambda: self._audit_payment(t)))
        elif kind is StatusKind.REFUNDED:
            if order.user_id:
                actions.append(("notify_user", lambda: self._notify(
                    order,
                    "Refund Processed",
                    f"Your refund for order {order.order_number} has been processed successfully.",
                    "info",
                )))
            actions.append(("audit_payment", lambda: self._audit_payment(t)))
            if order.customer_email:
                actions.append(("email_customer", lambda: self._email_customer(t, "Refund processed")))
        else:
            actions.append(("audit_payment", lambda: self._audit_payment(t)))
        actions.append(("audit_order_updated", lambda: self._audit_order_updated(t)))
        return actions

    async def _clear_cart(self, order: Order) -> None:
        if not order.user_id and not order.guest_token:
            return
        removed = await self._stores.carts.clear(user_id=order.user_id, guest_session_id=order.guest_token)
        log.info("cart_cleared", order_id=order.id, removed=removed)

    async def _notify(self, order: Order, title: str, message: str, type_: str) -> None:
        await self._stores.notifications.insert(
            Notification(
                user_id=order.user_id,
                title=title,
                message=message,
                type=type_,
                action_url=f"/orders/{order.id}",
                data={"order_id": order.id, "transaction_id": order.transaction_id},
            )
        )

    async def _audit_payment(self, t: AppliedTransition) -> None:
        p = t.payload
        metadata = {
            "order_number": t.order.order_number,
            "amount": p.amount,
            "currency": p.currency,
            "transaction_id": p.transaction_id,
            "payment_type": p.payment_type,
            "raw_status": t.mapped.raw,
        }
        if p.response_text:
            metadata["response_text"] = p.response_text
        if t.amount_mismatch:
            metadata["amount_mismatch"] = True
        await log_event(
            self._stores.audit,
            AUDIT_EVENT_BY_KIND[t.mapped.kind],
            "order",
            t.order.id,
            metadata,
            user_id=t.order.user_id,
            actor="webhook",
        )

    async def _audit_order_updated(self, t: AppliedTransition) -> None:
        await log_event(
            self._stores.audit,
            "ORDER_UPDATED",
            "order",
            t.order.id,
            {
                "order_number": t.order.order_number,
                "old_status": t.previous_order_status.value,
                "new_status": t.order.order_status.value,
                "old_payment_status": t.previous_payment_status.value,
                "new_payment_status": t.order.payment_status.value,
                "transaction_id": t.payload.transaction_id,
            },
            user_id=t.order.user_id,
            actor="webhook",
        )

    def _payment_data(self, t: AppliedTransition) -> dict[str, Any]:
        order = t.order
        return {
            "order_number": order.order_number,
            "transaction_id": t.payload.transaction_id,
            "amount": str(order.total),
            "total_amount": str(order.total),
            "currency": order.currency,
            "status": order.payment_status.value,
            "customer_name": order.customer_name,
            "customer_email": order.customer_email,
            "updated_at": order.updated_at.isoformat(),
        }

    async def _email_customer(self, t: AppliedTransition, subject: str) -> None:
        await self._mailer.send(
            EmailMessage(
                to=t.order.customer_email,
                subject=f"{subject}: {t.order.order_number}",
                type="payment_notification",
                data=self._payment_data(t),
            )
        )

    async def _email_admin(self, t: AppliedTransition, subject: str, priority: str = "medium") -> None:
        await self._mailer.send(
            EmailMessage(
                to=self._settings.admin_alert_email,
                subject=subject,
                type="order_update",
                data=self._payment_data(t),
                priority=priority,
            )
        )
