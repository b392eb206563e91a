"""Outbound email: Resend when configured, durable storage otherwise."""

from typing import Protocol

import httpx

from orderpay.core.config import Settings
from orderpay.core.logging import get_logger
from orderpay.models.email import EmailMessage, EmailRecord
from orderpay.services.email_templates import render_html, render_text
from orderpay.stores.base import EmailStore

log = get_logger(__name__)


class EmailDeliveryError(Exception):
    pass


class EmailJobQueue(Protocol):
    async def enqueue(self, record_id: str) -> None:
        ...


class Mailer:
    def __init__(
        self,
        store: EmailStore,
        http: httpx.AsyncClient,
        settings: Settings,
        queue: EmailJobQueue | None = None,
    ):
        self._store = store
        self._http = http
        self._settings = settings
        self._queue = queue

    @property
    def configured(self) -> bool:
        return bool(self._settings.resend_api_key)

    async def send(self, message: EmailMessage) -> EmailRecord:
        """Store, enqueue or deliver. Raises EmailDeliveryError only on inline delivery failure."""
        if not self.configured:
            record = EmailRecord(**message.model_dump(), status="stored")
            await self._store.insert(record)
            log.info("email_stored", email_id=record.id, type=record.type, reason="RESEND_API_KEY not configured")
            return record
        record = EmailRecord(**message.model_dump(), status="queued")
        await self._store.insert(record)
        if self._queue is not None:
            await self._queue.enqueue(record.id)
            log.info("email_queued", email_id=record.id, type=record.type)
            return record
        return await self.deliver(record)

    async def deliver(self, record: EmailRecord) -> EmailRecord:
        """POST to Resend; mark the record sent or failed."""
        if not self.configured:
            raise EmailDeliveryError("RESEND_API_KEY not configured")
        s = self._settings
        try:
            resp = await self._http.post(
                f"{s.resend_api_url.rstrip('/')}/emails",
                headers={"Authorization": f"Bearer {s.resend_api_key}"},
                json={
                    "from": s.email_from,
                    "to": [record.to],
                    "subject": record.subject,
                    "html": render_html(record.type, record.data, record.subject),
                    "text": render_text(record.type, record.data),
                },
            )
            resp.raise_for_status()
            record.provider_message_id = resp.json().get("id")
        except (httpx.HTTPError, ValueError) as e:
            record.status = "failed"
            record.failure_reason = str(e)[:500]
            await self._store.save(record)
            log.warning("email_failed", email_id=record.id, type=record.type, reason=record.failure_reason)
            raise EmailDeliveryError(record.failure_reason) from e
        record.status = "sent"
        record.failure_reason = None
        await self._store.save(record)
        log.info("email_sent", email_id=record.id, type=record.type, message_id=record.provider_message_id)
        return record

    async def deliver_by_id(self, record_id: str) -> EmailRecord | None:
        record = await self._store.get(record_id)
        if record is None or record.status == "sent":
            return record
        return await self.deliver(record)

    async def flush_stored(self, limit: int = 50) -> int:
        """Deliver emails stored while no provider was configured. Returns the number sent."""
        if not self.configured:
            return 0
        sent = 0
        for record in await self._store.list_by_status("stored", limit=limit):
            try:
                await self.deliver(record)
                sent += 1
            except EmailDeliveryError:
                continue
        return sent
