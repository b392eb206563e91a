"""Beanie documents: the domain records plus collection settings.

Each document reuses its domain model's fields and keeps the string `id`
as Mongo's `_id`.
"""

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel

from orderpay.models.audit_log import AuditLog
from orderpay.models.cart import Cart, Product
from orderpay.models.email import EmailRecord
from orderpay.models.notification import Notification
from orderpay.models.order import Order, new_id
from orderpay.models.payment_event import PaymentEvent, ProcessedWebhook


class OrderDocument(Order, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "orders"
        indexes = [
            IndexModel([("order_number", ASCENDING)], unique=True),
            [("session_id", 1)],
            [("payment_intent_id", 1)],
            [("transaction_id", 1)],
            [("user_id", 1), ("created_at", -1)],
        ]


class PaymentEventDocument(PaymentEvent, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "tj_transaction_logs"
        indexes = [
            [("transaction_id", 1)],
            [("order_id", 1), ("received_at", -1)],
        ]


class ProcessedWebhookDocument(ProcessedWebhook, Document):
    class Settings:
        name = "processed_webhooks"
        indexes = [IndexModel([("key", ASCENDING)], unique=True)]


class AuditLogDocument(AuditLog, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("entity_type", 1), ("entity_id", 1)],
            [("event_type", 1)],
        ]


class NotificationDocument(Notification, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "notifications"
        indexes = [IndexModel([("user_id", ASCENDING), ("created_at", DESCENDING)])]


class CartDocument(Cart, Document):
    class Settings:
        name = "carts"
        indexes = [[("user_id", 1)], [("guest_session_id", 1)]]


class ProductDocument(Product, Document):
    id: str

    class Settings:
        name = "products"


class EmailRecordDocument(EmailRecord, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "email_outbox"
        indexes = [[("status", 1), ("created_at", 1)]]
