"""MongoDB stores on Beanie. init_db() must have run first."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from bson import Decimal128
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from orderpay.db.documents import (
    AuditLogDocument,
    CartDocument,
    EmailRecordDocument,
    NotificationDocument,
    OrderDocument,
    PaymentEventDocument,
    ProcessedWebhookDocument,
    ProductDocument,
)
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


def _bson(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, BaseModel):
        return _bson(value.model_dump())
    if isinstance(value, dict):
        return {k: _bson(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_bson(v) for v in value]
    return value


def _domain(model_cls, doc):
    if doc is None:
        return None
    return model_cls.model_validate(doc.model_dump(exclude={"revision_id"}))


def _order_from_raw(raw: dict[str, Any] | None) -> Order | None:
    if raw is None:
        return None
    raw = dict(raw)
    raw["id"] = raw.pop("_id")
    return Order.model_validate(raw)


class MongoOrderStore(OrderStore):
    async def insert(self, order: Order) -> Order:
        await OrderDocument(**order.model_dump()).insert()
        return order

    async def get(self, order_id: str) -> Order | None:
        return _domain(Order, await OrderDocument.get(order_id))

    async def get_by_order_number(self, order_number: str) -> Order | None:
        return _domain(Order, await OrderDocument.find_one(OrderDocument.order_number == order_number))

    async def find_by_payment_ref(
        self,
        transaction_id: str | None = None,
        session_id: str | None = None,
        payment_intent_id: str | None = None,
    ) -> Order | None:
        """Transaction ID first, then payment intent, then session."""
        queries: list[dict[str, Any]] = []
        if transaction_id:
            queries.append({"$or": [{"transaction_id": transaction_id}, {"payment_intent_id": transaction_id}]})
        if payment_intent_id:
            queries.append({"payment_intent_id": payment_intent_id})
        if session_id:
            queries.append({"session_id": session_id})
        for query in queries:
            doc = await OrderDocument.find_one(query)
            if doc is not None:
                return _domain(Order, doc)
        return None

    async def _find_and_set(self, query: dict[str, Any], changes: dict[str, Any]) -> Order | None:
        changes = dict(changes)
        changes.setdefault("updated_at", datetime.utcnow())
        raw = await OrderDocument.get_motor_collection().find_one_and_update(
            query,
            {"$set": _bson(changes)},
            return_document=ReturnDocument.AFTER,
        )
        return _order_from_raw(raw)

    async def update(self, order_id: str, changes: dict[str, Any]) -> Order | None:
        return await self._find_and_set({"_id": order_id}, changes)

    async def update_if_payment_status(
        self,
        order_id: str,
        expected: PaymentStatus,
        changes: dict[str, Any],
    ) -> Order | None:
        return await self._find_and_set({"_id": order_id, "payment_status": expected.value}, changes)


class MongoPaymentEventStore(PaymentEventStore):
    async def append(self, event: PaymentEvent) -> PaymentEvent:
        await PaymentEventDocument(**event.model_dump()).insert()
        return event

    async def list_for_order(self, order_id: str) -> list[PaymentEvent]:
        docs = await PaymentEventDocument.find(PaymentEventDocument.order_id == order_id).sort(
            +PaymentEventDocument.received_at
        ).to_list()
        return [_domain(PaymentEvent, d) for d in docs]

    async def list_for_transaction(self, transaction_id: str) -> list[PaymentEvent]:
        docs = await PaymentEventDocument.find(PaymentEventDocument.transaction_id == transaction_id).sort(
            +PaymentEventDocument.received_at
        ).to_list()
        return [_domain(PaymentEvent, d) for d in docs]


class MongoIdempotencyStore(IdempotencyStore):
    async def claim(self, record: ProcessedWebhook) -> bool:
        try:
            await ProcessedWebhookDocument(**record.model_dump()).insert()
        except DuplicateKeyError:
            return False
        return True

    async def release(self, key: str) -> None:
        await ProcessedWebhookDocument.find(ProcessedWebhookDocument.key == key).delete()

    async def set_outcome(self, key: str, outcome: str, order_id: str | None = None) -> None:
        changes: dict[str, Any] = {"outcome": outcome}
        if order_id:
            changes["order_id"] = order_id
        await ProcessedWebhookDocument.find_one(ProcessedWebhookDocument.key == key).update({"$set": changes})

    async def get(self, key: str) -> ProcessedWebhook | None:
        return _domain(ProcessedWebhook, await ProcessedWebhookDocument.find_one(ProcessedWebhookDocument.key == key))


class MongoAuditStore(AuditStore):
    async def append(self, entry: AuditLog) -> AuditLog:
        await AuditLogDocument(**entry.model_dump()).insert()
        return entry

    async def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditLog]:
        docs = await AuditLogDocument.find(
            AuditLogDocument.entity_type == entity_type,
            AuditLogDocument.entity_id == entity_id,
        ).sort(+AuditLogDocument.created_at).to_list()
        return [_domain(AuditLog, d) for d in docs]


class MongoNotificationStore(NotificationStore):
    async def insert(self, notification: Notification) -> Notification:
        await NotificationDocument(**notification.model_dump()).insert()
        return notification

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        docs = (
            await NotificationDocument.find(NotificationDocument.user_id == user_id)
            .sort(-NotificationDocument.created_at)
            .limit(limit)
            .to_list()
        )
        return [_domain(Notification, d) for d in docs]


class MongoCartStore(CartStore):
    @staticmethod
    async def _find(user_id: str | None, guest_session_id: str | None) -> CartDocument | None:
        if user_id:
            return await CartDocument.find_one(CartDocument.user_id == user_id)
        if guest_session_id:
            return await CartDocument.find_one(CartDocument.guest_session_id == guest_session_id)
        return None

    async def get(self, user_id: str | None = None, guest_session_id: str | None = None) -> Cart | None:
        return _domain(Cart, await self._find(user_id, guest_session_id))

    async def save(self, cart: Cart) -> Cart:
        doc = await self._find(cart.user_id, cart.guest_session_id)
        cart.updated_at = datetime.utcnow()
        if doc:
            doc.items = cart.items
            doc.updated_at = cart.updated_at
            await doc.save()
        else:
            await CartDocument(**cart.model_dump()).insert()
        return cart

    async def clear(self, user_id: str | None = None, guest_session_id: str | None = None) -> int:
        doc = await self._find(user_id, guest_session_id)
        if not doc:
            return 0
        removed = len(doc.items)
        doc.items = []
        doc.updated_at = datetime.utcnow()
        await doc.save()
        return removed


class MongoCatalogStore(CatalogStore):
    async def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        docs = await ProductDocument.find({"_id": {"$in": product_ids}}).to_list()
        return {d.id: _domain(Product, d) for d in docs}

    async def upsert(self, product: Product) -> Product:
        await ProductDocument(**product.model_dump()).save()
        return product


class MongoEmailStore(EmailStore):
    async def insert(self, record: EmailRecord) -> EmailRecord:
        await EmailRecordDocument(**record.model_dump()).insert()
        return record

    async def get(self, record_id: str) -> EmailRecord | None:
        return _domain(EmailRecord, await EmailRecordDocument.get(record_id))

    async def save(self, record: EmailRecord) -> EmailRecord:
        record.updated_at = datetime.utcnow()
        await EmailRecordDocument(**record.model_dump()).save()
        return record

    async def list_by_status(self, status: str, limit: int = 50) -> list[EmailRecord]:
        docs = (
            await EmailRecordDocument.find(EmailRecordDocument.status == status)
            .sort(+EmailRecordDocument.created_at)
            .limit(limit)
            .to_list()
        )
        return [_domain(EmailRecord, d) for d in docs]


def mongo_stores() -> Stores:
    return Stores(
        orders=MongoOrderStore(),
        events=MongoPaymentEventStore(),
        idempotency=MongoIdempotencyStore(),
        audit=MongoAuditStore(),
        notifications=MongoNotificationStore(),
        carts=MongoCartStore(),
        catalog=MongoCatalogStore(),
        emails=MongoEmailStore(),
    )
