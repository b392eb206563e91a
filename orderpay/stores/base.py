"""Row stores the payment services read and write.

Every service receives a `Stores` bundle explicitly; nothing reaches for a
module-level client. `get_stores()` picks the backend from settings.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from orderpay.core.config import Settings, get_settings
from orderpay.models.audit_log import AuditLog
from orderpay.models.cart import Cart, Product
from orderpay.models.email import EmailRecord
from orderpay.models.notification import Notification
from orderpay.models.order import Order, PaymentStatus
from orderpay.models.payment_event import PaymentEvent, ProcessedWebhook


class OrderStore(ABC):
    @abstractmethod
    async def insert(self, order: Order) -> Order:
        ...

    @abstractmethod
    async def get(self, order_id: str) -> Order | None:
        ...

    @abstractmethod
    async def get_by_order_number(self, order_number: str) -> Order | None:
        ...

    @abstractmethod
    async def find_by_payment_ref(
        self,
        transaction_id: str | None = None,
        session_id: str | None = None,
        payment_intent_id: str | None = None,
    ) -> Order | None:
        """Match stored transaction / payment-intent / session identifiers."""
        ...

    @abstractmethod
    async def update(self, order_id: str, changes: dict[str, Any]) -> Order | None:
        """Unconditional field update (session linkage). Returns the updated order."""
        ...

    @abstractmethod
    async def update_if_payment_status(
        self,
        order_id: str,
        expected: PaymentStatus,
        changes: dict[str, Any],
    ) -> Order | None:
        """Compare-and-set on payment_status. None when the row moved on."""
        ...


class PaymentEventStore(ABC):
    @abstractmethod
    async def append(self, event: PaymentEvent) -> PaymentEvent:
        ...

    @abstractmethod
    async def list_for_order(self, order_id: str) -> list[PaymentEvent]:
        ...

    @abstractmethod
    async def list_for_transaction(self, transaction_id: str) -> list[PaymentEvent]:
        ...


class IdempotencyStore(ABC):
    @abstractmethod
    async def claim(self, record: ProcessedWebhook) -> bool:
        """Atomically reserve record.key. False if it was already taken."""
        ...

    @abstractmethod
    async def release(self, key: str) -> None:
        ...

    @abstractmethod
    async def set_outcome(self, key: str, outcome: str, order_id: str | None = None) -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> ProcessedWebhook | None:
        ...


class AuditStore(ABC):
    @abstractmethod
    async def append(self, entry: AuditLog) -> AuditLog:
        ...

    @abstractmethod
    async def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditLog]:
        ...


class NotificationStore(ABC):
    @abstractmethod
    async def insert(self, notification: Notification) -> Notification:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        ...


class CartStore(ABC):
    @abstractmethod
    async def get(self, user_id: str | None = None, guest_session_id: str | None = None) -> Cart | None:
        ...

    @abstractmethod
    async def save(self, cart: Cart) -> Cart:
        ...

    @abstractmethod
    async def clear(self, user_id: str | None = None, guest_session_id: str | None = None) -> int:
        """Remove all items; return how many were removed."""
        ...


class CatalogStore(ABC):
    @abstractmethod
    async def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        ...

    @abstractmethod
    async def upsert(self, product: Product) -> Product:
        ...


class EmailStore(ABC):
    @abstractmethod
    async def insert(self, record: EmailRecord) -> EmailRecord:
        ...

    @abstractmethod
    async def get(self, record_id: str) -> EmailRecord | None:
        ...

    @abstractmethod
    async def save(self, record: EmailRecord) -> EmailRecord:
        ...

    @abstractmethod
    async def list_by_status(self, status: str, limit: int = 50) -> list[EmailRecord]:
        ...


@dataclass
class Stores:
    orders: OrderStore
    events: PaymentEventStore
    idempotency: IdempotencyStore
    audit: AuditStore
    notifications: NotificationStore
    carts: CartStore
    catalog: CatalogStore
    emails: EmailStore


async def get_stores(settings: Settings | None = None) -> Stores:
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        from orderpay.stores.memory import memory_stores
        return memory_stores()
    from orderpay.db.init import init_db
    from orderpay.stores.mongo import mongo_stores
    await init_db(settings)
    return mongo_stores()
