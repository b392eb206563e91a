import pytest

from orderpay.models.order import OrderStatus, PaymentStatus
from orderpay.services.status_map import StatusKind, can_transition, map_status


@pytest.mark.parametrize(
    "raw,payment_status,order_status",
    [
        ("PAYMENT_SETTLED", PaymentStatus.PAID, OrderStatus.CONFIRMED),
        ("payment.completed", PaymentStatus.PAID, OrderStatus.CONFIRMED),
        ("Succeeded", PaymentStatus.PAID, OrderStatus.CONFIRMED),
        ("PAYMENT_AUTHORISED", PaymentStatus.AUTHORISED, OrderStatus.CONFIRMED),
        ("authorized", PaymentStatus.AUTHORISED, OrderStatus.CONFIRMED),
        ("PAYMENT_DECLINED", PaymentStatus.FAILED, OrderStatus.FAILED),
        ("rejected", PaymentStatus.FAILED, OrderStatus.FAILED),
        ("CANCELED", PaymentStatus.CANCELLED, OrderStatus.CANCELLED),
        ("PAYMENT_REVERSED", PaymentStatus.REFUNDED, OrderStatus.REFUNDED),
    ],
)
def test_known_statuses(raw, payment_status, order_status):
    mapped = map_status(raw)
    assert mapped.recognized
    assert mapped.payment_status is payment_status
    assert mapped.order_status is order_status
    assert mapped.raw == raw


@pytest.mark.parametrize("raw", [None, "", "PAYMENT_PENDING_REVIEW", "weird"])
def test_unrecognized_status_leaves_order_alone(raw):
    mapped = map_status(raw)
    assert mapped.kind is StatusKind.UNRECOGNIZED
    assert mapped.payment_status is PaymentStatus.UNKNOWN
    assert mapped.order_status is None


def test_transitions_are_monotonic():
    assert can_transition(PaymentStatus.PENDING, PaymentStatus.PAID)
    assert can_transition(PaymentStatus.UNKNOWN, PaymentStatus.FAILED)
    assert can_transition(PaymentStatus.AUTHORISED, PaymentStatus.PAID)
    assert can_transition(PaymentStatus.FAILED, PaymentStatus.PAID)
    assert can_transition(PaymentStatus.PAID, PaymentStatus.REFUNDED)
    assert can_transition(PaymentStatus.PAID, PaymentStatus.PAID)
    assert not can_transition(PaymentStatus.PAID, PaymentStatus.FAILED)
    assert not can_transition(PaymentStatus.PAID, PaymentStatus.PENDING)
    assert not can_transition(PaymentStatus.PAID, PaymentStatus.UNKNOWN)
    assert not can_transition(PaymentStatus.REFUNDED, PaymentStatus.PAID)
    assert not can_transition(PaymentStatus.FAILED, PaymentStatus.REFUNDED)
