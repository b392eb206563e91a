import secrets
import string
import time
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal

from bson import Decimal128
from pydantic import BaseModel, BeforeValidator, Field


def _from_decimal128(v: Any) -> Any:
    return v.to_decimal() if isinstance(v, Decimal128) else v


# Mongo hands back Decimal128 for Decimal fields
Money = Annotated[Decimal, BeforeValidator(_from_decimal128)]

_ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def new_id() -> str:
    return str(uuid.uuid4())


def generate_order_number() -> str:
    """ORD-<unix millis>-<6 uppercase alphanumerics>."""
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(6))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


class OrderStatus(str, Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    AUTHORISED = "authorised"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    UNKNOWN = "unknown"


PAYABLE_ORDER_STATUSES = {OrderStatus.AWAITING_PAYMENT, OrderStatus.FAILED, OrderStatus.CANCELLED}
PAYABLE_PAYMENT_STATUSES = {
    PaymentStatus.PENDING,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
    PaymentStatus.UNKNOWN,
}


class OrderItem(BaseModel):
    product_id: str
    title: str = ""
    unit_price: Money
    quantity: int
    subtotal: Money


class PaymentSession(BaseModel):
    """Pending hosted-payment session kept for reconciliation re-matching."""
    session_id: str
    payment_intent_id: str | None = None
    redirect_url: str | None = None
    merchant_ref: str
    amount: Money
    currency: str
    purpose: Literal["charge", "tokenize"] = "charge"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: datetime | None = None


class Order(BaseModel):
    id: str = Field(default_factory=new_id)
    order_number: str = Field(default_factory=generate_order_number)
    user_id: str | None = None
    guest_token: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None
    items: list[OrderItem] = Field(default_factory=list)
    currency: str = "ZMW"
    subtotal: Money = Decimal("0.00")
    tax: Money = Decimal("0.00")
    shipping: Money = Decimal("0.00")
    total: Money = Decimal("0.00")
    order_status: OrderStatus = OrderStatus.AWAITING_PAYMENT
    payment_status: PaymentStatus = PaymentStatus.PENDING
    merchant_ref: str | None = None
    session_id: str | None = None
    payment_intent_id: str | None = None
    transaction_id: str | None = None
    payment_session: PaymentSession | None = None
    provider: dict[str, Any] = Field(default_factory=dict)  # last transaction snapshot
    raw_payload: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_payable(self) -> bool:
        return self.order_status in PAYABLE_ORDER_STATUSES and self.payment_status in PAYABLE_PAYMENT_STATUSES

    def owned_by(self, user_id: str | None, guest_token: str | None) -> bool:
        if user_id and self.user_id == user_id:
            return True
        return bool(guest_token and self.guest_token == guest_token)
