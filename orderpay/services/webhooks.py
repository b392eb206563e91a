"""Processor status webhooks -> order state.

Order of operations per call: verify, parse, locate the order, log the raw
event, claim the idempotency key, hold settlements that did not pay the order,
guard the transition, compare-and-set the order, then hand off to the
side-effect dispatcher. Only one delivery of an event ever reaches the
write; the claim is released whenever the write did not happen so the
processor can retry.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import orjson
from pydantic import ValidationError

from orderpay.core.audit import log_event
from orderpay.core.config import Settings
from orderpay.core.exceptions import BadRequestError, InvalidSignatureError
from orderpay.core.logging import get_logger, payment_log_context
from orderpay.core.money import to_minor_units
from orderpay.core.security import verify_webhook_signature
from orderpay.models.order import Order
from orderpay.models.payment_event import PaymentEvent, ProcessedWebhook
from orderpay.models.webhook import WebhookPayload
from orderpay.services.dispatcher import AppliedTransition, SideEffectDispatcher
from orderpay.services.references import ReferenceCodec
from orderpay.services.status_map import MappedStatus, StatusKind, can_transition, map_status
from orderpay.stores.base import Stores

log = get_logger(__name__)

MAX_APPLY_ATTEMPTS = 3


class OrderWriteConflict(Exception):
    """The order kept changing under the compare-and-set."""


@dataclass
class WebhookResult:
    status: str  # applied | duplicate | unmatched | stale | held
    reason: str | None = None
    order_id: str | None = None
    payment_status: str | None = None
    order_status: str | None = None
    side_effects: dict[str, bool] | None = None

    def as_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": True, "status": self.status}
        if self.reason:
            body["reason"] = self.reason
        if self.order_id:
            body["order_id"] = self.order_id
        if self.payment_status:
            body["payment_status"] = self.payment_status
        if self.order_status:
            body["order_status"] = self.order_status
        return body


class WebhookReconciler:
    def __init__(
        self,
        stores: Stores,
        codec: ReferenceCodec,
        dispatcher: SideEffectDispatcher,
        settings: Settings,
    ):
        self._stores = stores
        self._codec = codec
        self._dispatcher = dispatcher
        self._settings = settings

    def authenticate(self, raw_body: bytes, signature: str | None) -> None:
        secret = self._settings.webhook_secret
        if secret is None:
            log.warning("webhook_unverified", reason="TJ_WEBHOOK_SECRET not set")
            return
        if not signature or not verify_webhook_signature(raw_body, signature, secret):
            log.warning("webhook_invalid_signature", has_signature=bool(signature))
            raise InvalidSignatureError()

    @staticmethod
    def parse(raw_body: bytes) -> tuple[dict[str, Any], WebhookPayload]:
        try:
            data = orjson.loads(raw_body)
        except orjson.JSONDecodeError as e:
            raise BadRequestError("Webhook body is not valid JSON") from e
        if not isinstance(data, dict):
            raise BadRequestError("Webhook body must be a JSON object")
        try:
            payload = WebhookPayload.model_validate(data)
        except ValidationError as e:
            raise BadRequestError(
                "Webhook payload is invalid",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e
        if payload.idempotency_key is None:
            raise BadRequestError("Webhook has no transactionId or event ID")
        return data, payload

    async def locate_order(self, payload: WebhookPayload) -> Order | None:
        """Stored processor IDs, then the merchant reference, then a raw order ID."""
        orders = self._stores.orders
        if payload.transaction_id or payload.session_id or payload.payment_intent_id:
            order = await orders.find_by_payment_ref(
                transaction_id=payload.transaction_id,
                session_id=payload.session_id,
                payment_intent_id=payload.payment_intent_id,
            )
            if order:
                return order
        order_number = self._codec.decode(payload.merchant_ref)
        if order_number:
            order = await orders.get_by_order_number(order_number)
            if order:
                return order
            # bare order ID passed as reference
            order = await orders.get(order_number)
            if order:
                return order
        order_id = self._codec.extract_order_id(payload.merchant_ref)
        if order_id:
            return await orders.get(order_id)
        return None

    async def handle(self, raw_body: bytes, signature: str | None) -> WebhookResult:
        self.authenticate(raw_body, signature)
        data, payload = self.parse(raw_body)
        with payment_log_context(
            transaction_id=payload.transaction_id,
            event_id=payload.event_id,
            raw_status=payload.transaction_status,
        ):
            return await self._reconcile(data, payload)

    async def _reconcile(self, data: dict[str, Any], payload: WebhookPayload) -> WebhookResult:
        mapped = map_status(payload.transaction_status)
        key = payload.idempotency_key

        order = await self.locate_order(payload)
        await self._stores.events.append(
            PaymentEvent(
                kind="webhook_received",
                order_id=order.id if order else None,
                transaction_id=payload.transaction_id,
                session_id=payload.session_id,
                payment_intent_id=payload.payment_intent_id,
                event_id=payload.event_id,
                raw_status=payload.transaction_status,
                payload=data,
            )
        )

        claimed = await self._stores.idempotency.claim(
            ProcessedWebhook(key=key, transaction_id=payload.transaction_id, order_id=order.id if order else None)
        )
        if not claimed:
            log.info("webhook_duplicate", key=key)
            return WebhookResult(status="duplicate")

        if order is None:
            log.warning("webhook_unmatched", merchant_ref=payload.merchant_ref, payload=data)
            try:
                await log_event(
                    self._stores.audit,
                    "WEBHOOK_UNMATCHED",
                    "payment",
                    payload.transaction_id,
                    {"merchant_ref": payload.merchant_ref, "session_id": payload.session_id,
                     "raw_status": mapped.raw},
                    actor="webhook",
                )
            finally:
                await self._stores.idempotency.release(key)
            return WebhookResult(status="unmatched")

        if not mapped.recognized:
            log.warning("webhook_status_unrecognized", order_id=order.id)

        try:
            hold = self.settlement_hold(order, mapped, payload)
            if hold is not None:
                held = await self._record_held(order, mapped, payload, data, hold)
            else:
                applied = await self._apply(order, mapped, payload, data)
        except Exception as e:
            log.error("webhook_apply_failed", order_id=order.id, error=str(e))
            try:
                await log_event(
                    self._stores.audit,
                    "WEBHOOK_ERROR",
                    "order",
                    order.id,
                    {"error": str(e)[:500], "raw_status": mapped.raw, "transaction_id": payload.transaction_id},
                    user_id=order.user_id,
                    actor="webhook",
                )
            except Exception as audit_error:
                log.error("webhook_error_audit_failed", order_id=order.id, error=str(audit_error))
            await self._stores.idempotency.release(key)
            raise

        if hold is not None:
            await self._stores.idempotency.set_outcome(key, hold, order.id)
            return WebhookResult(
                status="held",
                reason=hold,
                order_id=held.id,
                payment_status=held.payment_status.value,
                order_status=held.order_status.value,
            )

        if applied is None:
            current = await self._stores.orders.get(order.id) or order
            log.info(
                "webhook_stale",
                order_id=order.id,
                current=current.payment_status.value,
                incoming=mapped.payment_status.value,
            )
            await self._stores.idempotency.set_outcome(key, "stale", order.id)
            return WebhookResult(
                status="stale",
                order_id=order.id,
                payment_status=current.payment_status.value,
                order_status=current.order_status.value,
            )

        await self._stores.idempotency.set_outcome(key, "applied", order.id)
        log.info(
            "webhook_applied",
            order_id=applied.order.id,
            payment_status=applied.order.payment_status.value,
            order_status=applied.order.order_status.value,
        )
        # a repeated status refreshed the snapshot; effects already ran for it
        results = await self._dispatcher.dispatch(applied) if applied.changed else {}
        return WebhookResult(
            status="applied",
            order_id=applied.order.id,
            payment_status=applied.order.payment_status.value,
            order_status=applied.order.order_status.value,
            side_effects=results,
        )

    @staticmethod
    def settlement_hold(order: Order, mapped: MappedStatus, payload: WebhookPayload) -> str | None:
        """Why a successful status must not mark the order paid, or None.

        "tokenized": the session only saved a payment method.
        "underpaid": the processor settled less than the order total.
        """
        if mapped.kind not in (StatusKind.SETTLED, StatusKind.AUTHORISED):
            return None
        if order.payment_session is not None and order.payment_session.purpose == "tokenize":
            return "tokenized"
        if payload.amount is not None and payload.amount < to_minor_units(order.total):
            return "underpaid"
        return None

    async def _record_held(
        self,
        order: Order,
        mapped: MappedStatus,
        payload: WebhookPayload,
        data: dict[str, Any],
        hold: str,
    ) -> Order:
        """Keep the snapshot of a held settlement; status fields stay as they are."""
        snapshot = self._snapshot(mapped, payload)
        snapshot["held"] = hold
        if payload.payment_method_token:
            snapshot["payment_method_token"] = payload.payment_method_token
        updated = await self._stores.orders.update(order.id, {"provider": snapshot, "raw_payload": data})
        expected = to_minor_units(order.total)
        if hold == "tokenized":
            log.info("webhook_payment_method_tokenized", order_id=order.id)
            await log_event(
                self._stores.audit,
                "PAYMENT_METHOD_TOKENIZED",
                "order",
                order.id,
                {"order_number": order.order_number, "transaction_id": payload.transaction_id,
                 "has_token": bool(payload.payment_method_token)},
                user_id=order.user_id,
                actor="webhook",
            )
        else:
            log.warning("webhook_underpaid", order_id=order.id, expected=expected, received=payload.amount)
            await log_event(
                self._stores.audit,
                "PAYMENT_UNDERPAID",
                "order",
                order.id,
                {"order_number": order.order_number, "transaction_id": payload.transaction_id,
                 "expected": expected, "received": payload.amount, "currency": payload.currency},
                user_id=order.user_id,
                actor="webhook",
                risk_score=7,
            )
        return updated or order

    def _amount_mismatch(self, order: Order, mapped: MappedStatus, payload: WebhookPayload) -> bool:
        if payload.amount is None or mapped.kind not in (StatusKind.SETTLED, StatusKind.AUTHORISED):
            return False
        expected = to_minor_units(order.total)
        if payload.amount == expected:
            return False
        log.warning("webhook_amount_mismatch", order_id=order.id, expected=expected, received=payload.amount)
        return True

    @staticmethod
    def _snapshot(mapped: MappedStatus, payload: WebhookPayload) -> dict[str, Any]:
        return {
            "transaction_id": payload.transaction_id,
            "status": mapped.raw,
            "amount": payload.amount,
            "currency": payload.currency,
            "payment_type": payload.payment_type,
            "response_text": payload.response_text,
            "customer_info": payload.customer_info,
            "received_at": datetime.utcnow().isoformat(),
        }

    async def _apply(
        self,
        order: Order,
        mapped: MappedStatus,
        payload: WebhookPayload,
        data: dict[str, Any],
    ) -> AppliedTransition | None:
        """Compare-and-set the new status. None when the transition is stale."""
        for _ in range(MAX_APPLY_ATTEMPTS):
            if not can_transition(order.payment_status, mapped.payment_status):
                return None
            changes: dict[str, Any] = {
                "payment_status": mapped.payment_status,
                "transaction_id": payload.transaction_id or order.transaction_id,
                "payment_intent_id": payload.payment_intent_id or order.payment_intent_id,
                "provider": self._snapshot(mapped, payload),
                "raw_payload": data,
            }
            # a repeated status only refreshes the snapshot
            if mapped.order_status is not None and mapped.payment_status != order.payment_status:
                changes["order_status"] = mapped.order_status
            updated = await self._stores.orders.update_if_payment_status(order.id, order.payment_status, changes)
            if updated is not None:
                return AppliedTransition(
                    order=updated,
                    previous_order_status=order.order_status,
                    previous_payment_status=order.payment_status,
                    mapped=mapped,
                    payload=payload,
                    amount_mismatch=self._amount_mismatch(updated, mapped, payload),
                )
            fresh = await self._stores.orders.get(order.id)
            if fresh is None:
                raise OrderWriteConflict(f"Order {order.id} disappeared during update")
            order = fresh
        raise OrderWriteConflict(f"Order {order.id} kept changing; gave up after {MAX_APPLY_ATTEMPTS} attempts")
