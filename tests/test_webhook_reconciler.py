"""Webhook reconciliation against in-memory stores."""

import asyncio
import json
from decimal import Decimal

import pytest
import structlog

from conftest import WEBHOOK_SECRET, make_order, make_settings
from orderpay.core.exceptions import BadRequestError, InvalidSignatureError
from orderpay.core.security import sign_webhook_body
from orderpay.models.cart import Cart, CartItem
from orderpay.models.order import OrderStatus, PaymentSession, PaymentStatus
from orderpay.services.container import build_services
from orderpay.services.sessions import SessionRequest

pytestmark = pytest.mark.asyncio

REF_PREFIX = "myplatform:order:"


def webhook_body(**fields) -> bytes:
    return json.dumps(fields).encode()


def settled(order, transaction_id="tx_1", **extra) -> bytes:
    fields = {
        "transactionId": transaction_id,
        "merchantRef": f"{REF_PREFIX}{order.order_number}",
        "transactionStatus": "PAYMENT_SETTLED",
        "amount": 15000,
        "currency": "ZMW",
        "paymentType": "CARD",
        "responseText": "Approved",
    }
    fields.update(extra)
    return webhook_body(**fields)


async def audit_types(stores) -> list[str]:
    return [a.event_type for a in await stores.audit.all()]


async def test_settled_payment_confirms_order_and_runs_side_effects(services, stores, order):
    await stores.carts.save(Cart(user_id="user-1", items=[CartItem(product_id="p-filter", quantity=2)]))

    result = await services.reconciler.handle(settled(order), None)

    assert result.status == "applied"
    assert result.as_response() == {
        "success": True,
        "status": "applied",
        "order_id": order.id,
        "payment_status": "paid",
        "order_status": "confirmed",
    }
    stored = await stores.orders.get(order.id)
    assert stored.payment_status is PaymentStatus.PAID
    assert stored.order_status is OrderStatus.CONFIRMED
    assert stored.transaction_id == "tx_1"
    assert stored.provider["status"] == "PAYMENT_SETTLED"
    assert stored.provider["amount"] == 15000
    assert stored.raw_payload["responseText"] == "Approved"

    cart = await stores.carts.get(user_id="user-1")
    assert cart.items == []
    notes = await stores.notifications.list_for_user("user-1")
    assert [n.title for n in notes] == ["Payment Confirmed"]
    types = await audit_types(stores)
    assert "PAYMENT_SUCCESS" in types
    assert "ORDER_UPDATED" in types
    # no Resend key: customer and admin emails kept for later delivery
    stored_emails = await stores.emails.list_by_status("stored")
    assert sorted(e.type for e in stored_emails) == ["order_update", "payment_notification"]
    assert all(v for v in result.side_effects.values())


async def test_duplicate_delivery_has_no_second_effect(services, stores, order):
    body = settled(order)
    first = await services.reconciler.handle(body, None)
    second = await services.reconciler.handle(body, None)

    assert first.status == "applied"
    assert second.as_response() == {"success": True, "status": "duplicate"}
    assert len(await stores.notifications.list_for_user("user-1")) == 1
    assert (await audit_types(stores)).count("PAYMENT_SUCCESS") == 1
    # every delivery is still logged
    assert len(await stores.events.list_for_transaction("tx_1")) == 2


async def test_same_event_id_is_a_duplicate_even_with_other_fields(services, stores, order):
    first = await services.reconciler.handle(settled(order, eventId="evt_1"), None)
    second = await services.reconciler.handle(settled(order, eventId="evt_1", transactionStatus="PAYMENT_FAILED"), None)
    assert first.status == "applied"
    assert second.status == "duplicate"
    assert (await stores.orders.get(order.id)).payment_status is PaymentStatus.PAID


async def test_concurrent_duplicates_apply_once(services, stores, order):
    body = settled(order)
    results = await asyncio.gather(
        services.reconciler.handle(body, None),
        services.reconciler.handle(body, None),
    )
    assert sorted(r.status for r in results) == ["applied", "duplicate"]
    assert len(await stores.notifications.list_for_user("user-1")) == 1


async def test_unmatched_webhook_is_acknowledged_and_can_be_retried(services, stores, order):
    body = webhook_body(transactionId="tx_late", sessionId="sess_late", transactionStatus="PAYMENT_SETTLED")

    result = await services.reconciler.handle(body, None)

    assert result.as_response() == {"success": True, "status": "unmatched"}
    assert "WEBHOOK_UNMATCHED" in await audit_types(stores)
    assert await stores.idempotency.get("tx:tx_late:payment_settled") is None
    assert (await stores.orders.get(order.id)).payment_status is PaymentStatus.PENDING

    # session linkage lands later; the processor's retry now matches
    await stores.orders.update(order.id, {"session_id": "sess_late"})
    retry = await services.reconciler.handle(body, None)
    assert retry.status == "applied"
    assert (await stores.orders.get(order.id)).payment_status is PaymentStatus.PAID


async def test_matches_by_stored_payment_intent(services, stores):
    order = await stores.orders.insert(make_order(payment_intent_id="pi_77", session_id="sess_77"))
    result = await services.reconciler.handle(
        webhook_body(transactionId="tx_77", paymentIntentId="pi_77", transactionStatus="AUTHORISED"), None
    )
    assert result.status == "applied"
    stored = await stores.orders.get(order.id)
    assert stored.payment_status is PaymentStatus.AUTHORISED
    assert stored.order_status is OrderStatus.CONFIRMED


async def test_matches_order_id_embedded_in_reference(services, stores, order):
    body = webhook_body(
        transactionId="tx_script",
        merchantRef=f"ORD-{order.id}-1700000000000",
        transactionStatus="PAYMENT_SETTLED",
    )
    result = await services.reconciler.handle(body, None)
    assert result.status == "applied"
    assert result.order_id == order.id


async def test_declined_payment_fails_order_and_keeps_cart(services, stores, order):
    await stores.carts.save(Cart(user_id="user-1", items=[CartItem(product_id="p-filter", quantity=2)]))

    result = await services.reconciler.handle(settled(order, transactionStatus="PAYMENT_DECLINED"), None)

    assert result.status == "applied"
    stored = await stores.orders.get(order.id)
    assert stored.payment_status is PaymentStatus.FAILED
    assert stored.order_status is OrderStatus.FAILED
    assert len((await stores.carts.get(user_id="user-1")).items) == 1
    assert [n.title for n in await stores.notifications.list_for_user("user-1")] == ["Payment Failed"]
    assert "PAYMENT_FAILED" in await audit_types(stores)
    stored_emails = await stores.emails.list_by_status("stored")
    assert [(e.type, e.priority) for e in stored_emails] == [("order_update", "high")]


async def test_unrecognized_status_marks_unknown_without_touching_lifecycle(services, stores, order):
    result = await services.reconciler.handle(settled(order, transactionStatus="PAYMENT_PENDING_REVIEW"), None)

    assert result.status == "applied"
    stored = await stores.orders.get(order.id)
    assert stored.payment_status is PaymentStatus.UNKNOWN
    assert stored.order_status is OrderStatus.AWAITING_PAYMENT
    assert "PAYMENT_STATUS_UNKNOWN" in await audit_types(stores)


async def test_late_failure_after_paid_is_stale(services, stores, order):
    await services.reconciler.handle(settled(order), None)

    stale = await services.reconciler.handle(settled(order, transactionStatus="PAYMENT_FAILED"), None)

    assert stale.status == "stale"
    assert stale.payment_status == "paid"
    stored = await stores.orders.get(order.id)
    assert stored.payment_status is PaymentStatus.PAID
    assert stored.order_status is OrderStatus.CONFIRMED
    claim = await stores.idempotency.get("tx:tx_1:payment_failed")
    assert claim.outcome == "stale"
    assert "PAYMENT_FAILED" not in await audit_types(stores)


async def test_refund_after_paid(services, stores, order):
    await services.reconciler.handle(settled(order), None)
    result = await services.reconciler.handle(settled(order, transactionStatus="PAYMENT_REFUNDED"), None)

    assert result.status == "applied"
    stored = await stores.orders.get(order.id)
    assert stored.payment_status is PaymentStatus.REFUNDED
    assert stored.order_status is OrderStatus.REFUNDED
    titles = [n.title for n in await stores.notifications.list_for_user("user-1")]
    assert "Refund Processed" in titles


async def test_repeated_status_refreshes_snapshot_only(services, stores, order):
    await services.reconciler.handle(settled(order, eventId="evt_a"), None)
    result = await services.reconciler.handle(settled(order, eventId="evt_b", responseText="Settled in batch"), None)

    assert result.status == "applied"
    assert result.side_effects == {}
    stored = await stores.orders.get(order.id)
    assert stored.provider["response_text"] == "Settled in batch"
    assert len(await stores.notifications.list_for_user("user-1")) == 1


async def test_overpayment_is_recorded_not_blocking(services, stores, order):
    result = await services.reconciler.handle(settled(order, amount=20000), None)

    assert result.status == "applied"
    assert result.payment_status == "paid"
    success = [a for a in await stores.audit.all() if a.event_type == "PAYMENT_SUCCESS"]
    assert success[0].metadata["amount_mismatch"] is True


async def test_side_effect_failure_does_not_undo_transition(services, stores, order, monkeypatch):
    async def broken_insert(notification):
        raise RuntimeError("notifications down")

    monkeypatch.setattr(stores.notifications, "insert", broken_insert)

    result = await services.reconciler.handle(settled(order), None)

    assert result.status == "applied"
    assert result.side_effects["notify_user"] is False
    assert result.side_effects["audit_payment"] is True
    assert (await stores.orders.get(order.id)).payment_status is PaymentStatus.PAID
    assert "PAYMENT_SUCCESS" in await audit_types(stores)


async def test_apply_error_releases_claim_for_retry(services, stores, order, monkeypatch):
    async def broken_update(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(stores.orders, "update_if_payment_status", broken_update)
    body = settled(order)

    with pytest.raises(RuntimeError):
        await services.reconciler.handle(body, None)

    assert await stores.idempotency.get("tx:tx_1:payment_settled") is None
    assert "WEBHOOK_ERROR" in await audit_types(stores)

    monkeypatch.undo()
    retry = await services.reconciler.handle(body, None)
    assert retry.status == "applied"


async def test_invalid_payloads_are_rejected(services, stores):
    with pytest.raises(BadRequestError):
        await services.reconciler.handle(b"{not json", None)
    with pytest.raises(BadRequestError):
        await services.reconciler.handle(b"[1, 2]", None)
    with pytest.raises(BadRequestError):
        await services.reconciler.handle(webhook_body(transactionStatus="PAYMENT_SETTLED"), None)
    assert await stores.events.all() == []


async def test_signature_required_when_secret_configured(stores, http, order):
    signed = build_services(make_settings(tj_webhook_secret=WEBHOOK_SECRET), stores, http=http)
    body = settled(order)

    with pytest.raises(InvalidSignatureError):
        await signed.reconciler.handle(body, None)
    with pytest.raises(InvalidSignatureError):
        await signed.reconciler.handle(body, sign_webhook_body(body, "some-other-secret"))
    assert await stores.events.all() == []

    result = await signed.reconciler.handle(body, f"sha256={sign_webhook_body(body, WEBHOOK_SECRET)}")
    assert result.status == "applied"


async def test_placeholder_secret_means_unverified(stores, http, order):
    unsigned = build_services(
        make_settings(tj_webhook_secret="<replace_with_webhook_secret_or_leave_empty>"), stores, http=http
    )
    result = await unsigned.reconciler.handle(settled(order), None)
    assert result.status == "applied"


async def test_non_ascii_signature_is_rejected_not_crashed(stores, http, order):
    signed = build_services(make_settings(tj_webhook_secret=WEBHOOK_SECRET), stores, http=http)
    with pytest.raises(InvalidSignatureError):
        await signed.reconciler.handle(settled(order), "é" * 64)
    assert (await stores.orders.get(order.id)).payment_status is PaymentStatus.PENDING


async def test_tokenize_settlement_does_not_mark_order_paid(services, stores, order):
    await stores.carts.save(Cart(user_id="user-1", items=[CartItem(product_id="p-filter", quantity=2)]))
    await services.sessions.create(
        SessionRequest(
            order_id=order.id,
            return_success_url="https://shop.test/pay/success",
            return_failed_url="https://shop.test/pay/failed",
            purpose="tokenize",
        ),
        user_id="user-1",
    )
    body = webhook_body(
        transactionId="tx_tok",
        sessionId="sess_123",
        transactionStatus="PAYMENT_SETTLED",
        amount=0,
        paymentMethodToken="pmt_1",
    )

    result = await services.reconciler.handle(body, None)

    assert result.as_response() == {
        "success": True,
        "status": "held",
        "reason": "tokenized",
        "order_id": order.id,
        "payment_status": "pending",
        "order_status": "awaiting_payment",
    }
    stored = await stores.orders.get(order.id)
    assert stored.payment_status is PaymentStatus.PENDING
    assert stored.order_status is OrderStatus.AWAITING_PAYMENT
    assert stored.transaction_id is None
    assert stored.provider["held"] == "tokenized"
    assert stored.provider["payment_method_token"] == "pmt_1"
    assert len((await stores.carts.get(user_id="user-1")).items) == 1
    assert await stores.notifications.list_for_user("user-1") == []
    types = await audit_types(stores)
    assert "PAYMENT_METHOD_TOKENIZED" in types
    assert "PAYMENT_SUCCESS" not in types
    assert (await stores.idempotency.get("tx:tx_tok:payment_settled")).outcome == "tokenized"


async def test_underpaid_settlement_is_held(services, stores, order):
    result = await services.reconciler.handle(settled(order, amount=0), None)

    assert result.status == "held"
    assert result.reason == "underpaid"
    assert result.side_effects is None
    stored = await stores.orders.get(order.id)
    assert stored.payment_status is PaymentStatus.PENDING
    assert stored.provider["held"] == "underpaid"
    underpaid = [a for a in await stores.audit.all() if a.event_type == "PAYMENT_UNDERPAID"]
    assert underpaid[0].metadata["expected"] == 15000
    assert underpaid[0].metadata["received"] == 0
    assert underpaid[0].risk_score == 7
    assert await stores.notifications.list_for_user("user-1") == []

    # the full amount under its own event still settles the order
    paid = await services.reconciler.handle(settled(order, eventId="evt_full"), None)
    assert paid.status == "applied"
    assert (await stores.orders.get(order.id)).payment_status is PaymentStatus.PAID


async def test_settlement_without_amount_is_not_held(services, stores):
    charged = PaymentSession(session_id="sess_c", merchant_ref="ref", amount=Decimal("150.00"), currency="ZMW")
    order = await stores.orders.insert(make_order(session_id="sess_c", payment_session=charged))
    body = webhook_body(transactionId="tx_c", sessionId="sess_c", transactionStatus="PAYMENT_SETTLED")
    result = await services.reconciler.handle(body, None)
    assert result.status == "applied"
    assert (await stores.orders.get(order.id)).payment_status is PaymentStatus.PAID


async def test_replayed_payment_after_refund_keeps_order_refunded(services, stores, order):
    paid_body = settled(order)
    await services.reconciler.handle(paid_body, None)
    await services.reconciler.handle(settled(order, transactionStatus="PAYMENT_REFUNDED"), None)

    replay = await services.reconciler.handle(paid_body, None)
    assert replay.status == "duplicate"

    late = await services.reconciler.handle(settled(order, eventId="evt_late_settle"), None)
    assert late.status == "stale"
    assert late.payment_status == "refunded"

    stored = await stores.orders.get(order.id)
    assert stored.payment_status is PaymentStatus.REFUNDED
    assert stored.order_status is OrderStatus.REFUNDED
    assert (await audit_types(stores)).count("PAYMENT_SUCCESS") == 1
    titles = [n.title for n in await stores.notifications.list_for_user("user-1")]
    assert titles.count("Payment Confirmed") == 1


async def test_processor_ids_are_bound_to_logs_during_call(services, stores, order, monkeypatch):
    seen = {}
    append = stores.events.append

    async def recording_append(event):
        seen.update(structlog.contextvars.get_contextvars())
        return await append(event)

    monkeypatch.setattr(stores.events, "append", recording_append)

    await services.reconciler.handle(settled(order, eventId="evt_ctx"), None)

    assert seen["transaction_id"] == "tx_1"
    assert seen["event_id"] == "evt_ctx"
    assert seen["raw_status"] == "PAYMENT_SETTLED"
    assert "transaction_id" not in structlog.contextvars.get_contextvars()


async def test_transaction_id_wins_over_session_match(services, stores):
    by_session = await stores.orders.insert(make_order(session_id="sess_shared"))
    by_transaction = await stores.orders.insert(make_order(transaction_id="tx_shared"))

    found = await stores.orders.find_by_payment_ref(transaction_id="tx_shared", session_id="sess_shared")
    assert found.id == by_transaction.id

    result = await services.reconciler.handle(
        webhook_body(transactionId="tx_shared", sessionId="sess_shared", transactionStatus="PAYMENT_SETTLED"), None
    )
    assert result.order_id == by_transaction.id
    assert (await stores.orders.get(by_session.id)).payment_status is PaymentStatus.PENDING
