"""Mailer: stored fallback, inline Resend delivery, queue hand-off."""

import pytest

from conftest import make_settings
from orderpay.models.email import EmailMessage
from orderpay.services.email import EmailDeliveryError, Mailer

pytestmark = pytest.mark.asyncio


def message(**overrides) -> EmailMessage:
    values = dict(
        to="farmer@example.com",
        subject="Payment received: ORD-1-ABCDEF",
        type="payment_notification",
        data={"order_number": "ORD-1-ABCDEF", "transaction_id": "tx_1", "amount": "150.00", "currency": "ZMW",
              "status": "paid"},
    )
    values.update(overrides)
    return EmailMessage(**values)


class RecordingQueue:
    def __init__(self):
        self.enqueued = []

    async def enqueue(self, record_id: str) -> None:
        self.enqueued.append(record_id)


async def test_without_api_key_email_is_stored(stores, http, gateway):
    mailer = Mailer(stores.emails, http, make_settings(resend_api_key=""))
    record = await mailer.send(message())
    assert record.status == "stored"
    assert (await stores.emails.get(record.id)).status == "stored"
    assert gateway.emails == []


async def test_inline_delivery_posts_to_resend(stores, http, gateway):
    mailer = Mailer(stores.emails, http, make_settings(resend_api_key="re_test"))
    record = await mailer.send(message())

    assert record.status == "sent"
    assert record.provider_message_id == "em_1"
    sent = gateway.emails[0]
    assert sent["to"] == ["farmer@example.com"]
    assert sent["subject"] == "Payment received: ORD-1-ABCDEF"
    assert "ORD-1-ABCDEF" in sent["text"]
    assert "Payment Transaction Details" in sent["html"]
    call = gateway.calls_to("api.resend.test")[0]
    assert call.headers["Authorization"] == "Bearer re_test"


async def test_rejected_delivery_marks_failed_and_raises(stores, http, gateway):
    gateway.email_status = 422
    mailer = Mailer(stores.emails, http, make_settings(resend_api_key="re_test"))
    with pytest.raises(EmailDeliveryError):
        await mailer.send(message())
    failed = await stores.emails.list_by_status("failed")
    assert len(failed) == 1
    assert failed[0].failure_reason


async def test_queue_mode_enqueues_record(stores, http, gateway):
    queue = RecordingQueue()
    mailer = Mailer(stores.emails, http, make_settings(resend_api_key="re_test"), queue=queue)
    record = await mailer.send(message())
    assert record.status == "queued"
    assert queue.enqueued == [record.id]
    assert gateway.emails == []

    delivered = await mailer.deliver_by_id(record.id)
    assert delivered.status == "sent"


async def test_flush_stored_sends_once_key_is_configured(stores, http, gateway):
    await Mailer(stores.emails, http, make_settings(resend_api_key="")).send(message())
    await Mailer(stores.emails, http, make_settings(resend_api_key="")).send(message(to="ops@massrides.test"))

    assert await Mailer(stores.emails, http, make_settings(resend_api_key="")).flush_stored() == 0
    sent = await Mailer(stores.emails, http, make_settings(resend_api_key="re_test")).flush_stored()
    assert sent == 2
    assert await stores.emails.list_by_status("stored") == []


