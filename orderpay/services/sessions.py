"""Hosted payment sessions: validate the order, get a token, open a session."""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel

from orderpay.core.audit import log_event
from orderpay.core.config import Settings
from orderpay.core.exceptions import BadRequestError, ForbiddenError, NotFoundError, PaymentSessionError
from orderpay.core.logging import get_logger
from orderpay.core.money import quantize, to_minor_units
from orderpay.models.order import Order, OrderStatus, PaymentSession
from orderpay.models.payment_event import PaymentEvent
from orderpay.services.processor import ProcessorCallError, ProcessorClient
from orderpay.services.references import ReferenceCodec
from orderpay.stores.base import Stores

log = get_logger(__name__)

SOURCE = "massrides-ecommerce"


class SessionRequest(BaseModel):
    order_id: str
    amount: Decimal | None = None  # must equal the order total when sent
    currency: str | None = None
    return_success_url: str
    return_failed_url: str
    customer_email: str | None = None
    customer_name: str | None = None
    purpose: Literal["charge", "tokenize"] = "charge"


class SessionInitiator:
    def __init__(self, stores: Stores, processor: ProcessorClient, codec: ReferenceCodec, settings: Settings):
        self._stores = stores
        self._processor = processor
        self._codec = codec
        self._settings = settings

    async def _load_payable(self, req: SessionRequest, user_id, guest_token, is_admin) -> tuple[Order, str]:
        order = await self._stores.orders.get(req.order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if not is_admin and not order.owned_by(user_id, guest_token):
            raise ForbiddenError("Order does not belong to this session")
        if not order.is_payable:
            raise BadRequestError(
                "Order is not payable",
                details={"order_status": order.order_status.value, "payment_status": order.payment_status.value},
            )
        currency = (req.currency or order.currency).upper()
        if currency != order.currency.upper():
            raise BadRequestError(
                "Currency does not match order",
                details={"currency": currency, "order_currency": order.currency.upper()},
            )
        if currency not in self._settings.supported_currencies:
            raise BadRequestError(
                f"Unsupported currency: {currency}",
                details={"supported": self._settings.supported_currencies},
            )
        if req.amount is not None and quantize(req.amount) != quantize(order.total):
            raise BadRequestError(
                "Amount does not match order total",
                details={"amount": str(quantize(req.amount)), "total": str(quantize(order.total))},
            )
        return order, currency

    def build_payload(self, order: Order, req: SessionRequest, currency: str, merchant_ref: str) -> dict[str, Any]:
        tokenize = req.purpose == "tokenize"
        customer_name = req.customer_name or order.customer_name
        return {
            "amount": 0 if tokenize else to_minor_units(order.total),
            "currency": currency,
            "merchantRef": merchant_ref,
            "returnSuccessUrl": req.return_success_url,
            "returnFailedUrl": req.return_failed_url,
            "customerEmail": req.customer_email or order.customer_email,
            "customerName": customer_name,
            "description": (
                f"Tokenize payment method for customer {customer_name or ''}".rstrip()
                if tokenize
                else f"Payment for order {order.order_number}"
            ),
            "expiresIn": self._settings.tj_session_expires_in,
            "webhookUrl": self._settings.webhook_url,
            "paymentMethods": self._settings.tj_payment_methods,
            "threeDSecure": "required",
            "savePaymentMethod": tokenize,
            "metadata": {"source": SOURCE, "order_id": order.id, "purpose": req.purpose},
        }

    async def create(
        self,
        req: SessionRequest,
        user_id: str | None = None,
        guest_token: str | None = None,
        is_admin: bool = False,
    ) -> dict[str, Any]:
        """Open a hosted payment session for an order. Returns redirect_url and session_id."""
        order, currency = await self._load_payable(req, user_id, guest_token, is_admin)

        missing = self._settings.missing_processor_settings()
        if missing:
            log.error("payment_processor_not_configured", order_id=order.id, missing=missing)
            raise PaymentSessionError()

        # a webhook may have settled the order since it was loaded
        started = await self._stores.orders.update_if_payment_status(
            order.id, order.payment_status, {"order_status": OrderStatus.AWAITING_PAYMENT}
        )
        if started is None:
            raise BadRequestError("Order is not payable")
        await log_event(
            self._stores.audit,
            "PAYMENT_SESSION_REQUESTED",
            "order",
            order.id,
            {"order_number": order.order_number, "amount": str(order.total), "currency": currency,
             "purpose": req.purpose},
            user_id=order.user_id,
        )

        try:
            token = await self._processor.get_access_token()
        except ProcessorCallError as e:
            log.error("payment_auth_failed", order_id=order.id, error=str(e), status_code=e.status_code)
            await log_event(
                self._stores.audit,
                "PAYMENT_AUTH_FAILED",
                "order",
                order.id,
                {"order_number": order.order_number, "error": str(e), "response": e.body},
                user_id=order.user_id,
                risk_score=8,
            )
            raise PaymentSessionError() from e

        merchant_ref = self._codec.encode(order.order_number)
        payload = self.build_payload(order, req, currency, merchant_ref)
        try:
            data = await self._processor.create_session(token, payload)
        except ProcessorCallError as e:
            log.error("payment_session_failed", order_id=order.id, error=str(e), status_code=e.status_code)
            await log_event(
                self._stores.audit,
                "PAYMENT_SESSION_FAILED",
                "order",
                order.id,
                {"order_number": order.order_number, "error": str(e), "response": e.body},
                user_id=order.user_id,
                risk_score=7,
            )
            raise PaymentSessionError() from e

        session_id = str(data["sessionId"])
        payment_intent_id = data.get("paymentIntentId")
        redirect_url = data.get("redirectUrl")
        now = datetime.utcnow()
        session = PaymentSession(
            session_id=session_id,
            payment_intent_id=payment_intent_id,
            redirect_url=redirect_url,
            merchant_ref=merchant_ref,
            amount=order.total,
            currency=currency,
            purpose=req.purpose,
            created_at=now,
            expires_at=now + timedelta(seconds=self._settings.tj_session_expires_in),
        )
        await self._stores.orders.update(
            order.id,
            {
                "payment_session": session,
                "session_id": session_id,
                "payment_intent_id": payment_intent_id,
                "merchant_ref": merchant_ref,
            },
        )
        await self._stores.events.append(
            PaymentEvent(
                kind="session_created",
                order_id=order.id,
                session_id=session_id,
                payment_intent_id=payment_intent_id,
                payload={"request": payload, "response": data},
            )
        )
        await log_event(
            self._stores.audit,
            "PAYMENT_SESSION_CREATED",
            "order",
            order.id,
            {"order_number": order.order_number, "session_id": session_id, "amount": str(order.total),
             "currency": currency, "purpose": req.purpose},
            user_id=order.user_id,
        )
        log.info("payment_session_created", order_id=order.id, session_id=session_id, purpose=req.purpose)
        return {"success": True, "redirect_url": redirect_url, "session_id": session_id}
