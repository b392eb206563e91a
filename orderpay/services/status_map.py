"""Processor status vocabulary -> internal payment/order status.

Every raw string lands in exactly one StatusKind; anything not in the table
is UNRECOGNIZED, which sets payment_status=unknown and leaves the order
lifecycle alone.
"""

from dataclasses import dataclass
from enum import Enum

from orderpay.models.order import OrderStatus, PaymentStatus


class StatusKind(str, Enum):
    SETTLED = "settled"
    AUTHORISED = "authorised"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    UNRECOGNIZED = "unrecognized"


_VOCABULARY: dict[StatusKind, tuple[str, ...]] = {
    StatusKind.SETTLED: (
        "payment_settled", "settled", "success", "succeeded", "successful", "completed", "paid",
        "payment.completed", "payment.success", "transaction.successful",
    ),
    StatusKind.AUTHORISED: ("payment_authorised", "payment_authorized", "authorised", "authorized"),
    StatusKind.FAILED: (
        "payment_failed", "payment_declined", "failed", "declined", "rejected", "payment.failed",
    ),
    StatusKind.CANCELLED: ("payment_cancelled", "payment_canceled", "cancelled", "canceled", "payment.cancelled"),
    StatusKind.REFUNDED: (
        "payment_refunded", "refunded", "reversed", "payment_reversed", "payment.refunded",
    ),
}

_LOOKUP = {raw: kind for kind, words in _VOCABULARY.items() for raw in words}


@dataclass(frozen=True)
class MappedStatus:
    kind: StatusKind
    raw: str | None
    payment_status: PaymentStatus
    order_status: OrderStatus | None  # None: leave the order lifecycle unchanged

    @property
    def recognized(self) -> bool:
        return self.kind is not StatusKind.UNRECOGNIZED


_OUTCOMES: dict[StatusKind, tuple[PaymentStatus, OrderStatus | None]] = {
    StatusKind.SETTLED: (PaymentStatus.PAID, OrderStatus.CONFIRMED),
    StatusKind.AUTHORISED: (PaymentStatus.AUTHORISED, OrderStatus.CONFIRMED),
    StatusKind.FAILED: (PaymentStatus.FAILED, OrderStatus.FAILED),
    StatusKind.CANCELLED: (PaymentStatus.CANCELLED, OrderStatus.CANCELLED),
    StatusKind.REFUNDED: (PaymentStatus.REFUNDED, OrderStatus.REFUNDED),
    StatusKind.UNRECOGNIZED: (PaymentStatus.UNKNOWN, None),
}


def classify(raw_status: str | None) -> StatusKind:
    if not raw_status:
        return StatusKind.UNRECOGNIZED
    return _LOOKUP.get(raw_status.strip().lower(), StatusKind.UNRECOGNIZED)


def map_status(raw_status: str | None) -> MappedStatus:
    kind = classify(raw_status)
    payment_status, order_status = _OUTCOMES[kind]
    return MappedStatus(kind=kind, raw=raw_status, payment_status=payment_status, order_status=order_status)


# payment_status transitions a webhook may apply; anything else is a stale event
ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(PaymentStatus),
    PaymentStatus.UNKNOWN: frozenset(PaymentStatus),
    PaymentStatus.AUTHORISED: frozenset(
        {PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.REFUNDED}
    ),
    PaymentStatus.FAILED: frozenset({PaymentStatus.AUTHORISED, PaymentStatus.PAID}),
    PaymentStatus.CANCELLED: frozenset({PaymentStatus.AUTHORISED, PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


def can_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    """True for a forward move or a repeat of the current status."""
    if current == new:
        return True
    return new in ALLOWED_TRANSITIONS[current]
