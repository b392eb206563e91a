"""In-process stores for local runs and tests.

Rows are deep-copied on the way in and out so callers never share mutable
state with the store, the same as a round-trip through a database.
"""

import asyncio
from datetime import datetime
from typing import Any

from orderpay.models.audit_log import AuditLog
from orderpay.models.cart import Cart, Product
from orderpay.models.email import EmailRecord
from orderpay.models.notification import Notification
from orderpay.models.order import Order, PaymentStatus
from orderpay.models.payment_event import PaymentEvent, ProcessedWebhook
from orderpay.stores.base import (
    AuditStore,
    CartStore,
    CatalogStore,
    EmailStore,
    IdempotencyStore,
    NotificationStore,
    OrderStore,
    PaymentEventStore,
    Stores,
)


def _copy(model):
    return model.model_copy(deep=True)


class MemoryOrderStore(OrderStore):
    def __init__(self) -> None:
        self._rows: dict[str, Order] = {}
        self._lock = asyncio.Lock()

    async def insert(self, order: Order) -> Order:
        async with self._lock:
            if order.id in self._rows:
                raise ValueError(f"Duplicate order id {order.id}")
            if any(o.order_number == order.order_number for o in self._rows.values()):
                raise ValueError(f"Duplicate order number {order.order_number}")
            self._rows[order.id] = _copy(order)
        return _copy(order)

    async def get(self, order_id: str) -> Order | None:
        row = self._rows.get(order_id)
        return _copy(row) if row else None

    async def get_by_order_number(self, order_number: str) -> Order | None:
        for row in self._rows.values():
            if row.order_number == order_number:
                return _copy(row)
        return None

    async def find_by_payment_ref(
        self,
        transaction_id: str | None = None,
        session_id: str | None = None,
        payment_intent_id: str | None = None,
    ) -> Order | None:
        """Transaction ID first, then payment intent, then session."""
        checks = []
        if transaction_id:
            checks.append(lambda row: transaction_id in (row.transaction_id, row.payment_intent_id))
        if payment_intent_id:
            checks.append(lambda row: row.payment_intent_id == payment_intent_id)
        if session_id:
            checks.append(lambda row: row.session_id == session_id)
        for matches in checks:
            for row in self._rows.values():
                if matches(row):
                    return _copy(row)
        return None

    def _apply(self, row: Order, changes: dict[str, Any]) -> Order:
        data = row.model_dump()
        data.update(changes)
        if "updated_at" not in changes:
            data["updated_at"] = datetime.utcnow()
        updated = Order.model_validate(data)
        self._rows[row.id] = updated
        return _copy(updated)

    async def update(self, order_id: str, changes: dict[str, Any]) -> Order | None:
        async with self._lock:
            row = self._rows.get(order_id)
            if not row:
                return None
            return self._apply(row, changes)

    async def update_if_payment_status(
        self,
        order_id: str,
        expected: PaymentStatus,
        changes: dict[str, Any],
    ) -> Order | None:
        async with self._lock:
            row = self._rows.get(order_id)
            if not row or row.payment_status != expected:
                return None
            return self._apply(row, changes)


class MemoryPaymentEventStore(PaymentEventStore):
    def __init__(self) -> None:
        self._rows: list[PaymentEvent] = []

    async def append(self, event: PaymentEvent) -> PaymentEvent:
        self._rows.append(_copy(event))
        return event

    async def list_for_order(self, order_id: str) -> list[PaymentEvent]:
        return [_copy(e) for e in self._rows if e.order_id == order_id]

    async def list_for_transaction(self, transaction_id: str) -> list[PaymentEvent]:
        return [_copy(e) for e in self._rows if e.transaction_id == transaction_id]

    async def all(self) -> list[PaymentEvent]:
        return [_copy(e) for e in self._rows]


class MemoryIdempotencyStore(IdempotencyStore):
    def __init__(self) -> None:
        self._rows: dict[str, ProcessedWebhook] = {}
        self._lock = asyncio.Lock()

    async def claim(self, record: ProcessedWebhook) -> bool:
        async with self._lock:
            if record.key in self._rows:
                return False
            self._rows[record.key] = _copy(record)
            return True

    async def release(self, key: str) -> None:
        async with self._lock:
            self._rows.pop(key, None)

    async def set_outcome(self, key: str, outcome: str, order_id: str | None = None) -> None:
        async with self._lock:
            row = self._rows.get(key)
            if row:
                row.outcome = outcome
                if order_id:
                    row.order_id = order_id

    async def get(self, key: str) -> ProcessedWebhook | None:
        row = self._rows.get(key)
        return _copy(row) if row else None


class MemoryAuditStore(AuditStore):
    def __init__(self) -> None:
        self._rows: list[AuditLog] = []

    async def append(self, entry: AuditLog) -> AuditLog:
        self._rows.append(_copy(entry))
        return entry

    async def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditLog]:
        return [_copy(e) for e in self._rows if e.entity_type == entity_type and e.entity_id == entity_id]

    async def all(self) -> list[AuditLog]:
        return [_copy(e) for e in self._rows]


class MemoryNotificationStore(NotificationStore):
    def __init__(self) -> None:
        self._rows: list[Notification] = []

    async def insert(self, notification: Notification) -> Notification:
        self._rows.append(_copy(notification))
        return notification

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        rows = [n for n in self._rows if n.user_id == user_id]
        rows.sort(key=lambda n: n.created_at, reverse=True)
        return [_copy(n) for n in rows[:limit]]


class MemoryCartStore(CartStore):
    def __init__(self) -> None:
        self._rows: dict[str, Cart] = {}

    @staticmethod
    def _key(user_id: str | None, guest_session_id: str | None) -> str | None:
        if user_id:
            return f"user:{user_id}"
        if guest_session_id:
            return f"guest:{guest_session_id}"
        return None

    async def get(self, user_id: str | None = None, guest_session_id: str | None = None) -> Cart | None:
        key = self._key(user_id, guest_session_id)
        row = self._rows.get(key) if key else None
        return _copy(row) if row else None

    async def save(self, cart: Cart) -> Cart:
        key = self._key(cart.user_id, cart.guest_session_id)
        if not key:
            raise ValueError("Cart needs user_id or guest_session_id")
        cart.updated_at = datetime.utcnow()
        self._rows[key] = _copy(cart)
        return cart

    async def clear(self, user_id: str | None = None, guest_session_id: str | None = None) -> int:
        key = self._key(user_id, guest_session_id)
        row = self._rows.get(key) if key else None
        if not row:
            return 0
        removed = len(row.items)
        row.items = []
        row.updated_at = datetime.utcnow()
        return removed


class MemoryCatalogStore(CatalogStore):
    def __init__(self) -> None:
        self._rows: dict[str, Product] = {}

    async def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        return {pid: _copy(self._rows[pid]) for pid in product_ids if pid in self._rows}

    async def upsert(self, product: Product) -> Product:
        self._rows[product.id] = _copy(product)
        return product


class MemoryEmailStore(EmailStore):
    def __init__(self) -> None:
        self._rows: dict[str, EmailRecord] = {}

    async def insert(self, record: EmailRecord) -> EmailRecord:
        self._rows[record.id] = _copy(record)
        return record

    async def get(self, record_id: str) -> EmailRecord | None:
        row = self._rows.get(record_id)
        return _copy(row) if row else None

    async def save(self, record: EmailRecord) -> EmailRecord:
        record.updated_at = datetime.utcnow()
        self._rows[record.id] = _copy(record)
        return record

    async def list_by_status(self, status: str, limit: int = 50) -> list[EmailRecord]:
        rows = [r for r in self._rows.values() if r.status == status]
        rows.sort(key=lambda r: r.created_at)
        return [_copy(r) for r in rows[:limit]]


def memory_stores() -> Stores:
    return Stores(
        orders=MemoryOrderStore(),
        events=MemoryPaymentEventStore(),
        idempotency=MemoryIdempotencyStore(),
        audit=MemoryAuditStore(),
        notifications=MemoryNotificationStore(),
        carts=MemoryCartStore(),
        catalog=MemoryCatalogStore(),
        emails=MemoryEmailStore(),
    )
