from orderpay.models.audit_log import AuditLog
from orderpay.models.cart import Cart, CartItem, Product
from orderpay.models.email import EmailMessage, EmailRecord
from orderpay.models.notification import Notification
from orderpay.models.order import Order, OrderItem, OrderStatus, PaymentSession, PaymentStatus
from orderpay.models.payment_event import PaymentEvent, ProcessedWebhook
from orderpay.models.webhook import WebhookPayload

__all__ = [
    "AuditLog",
    "Cart",
    "CartItem",
    "Product",
    "EmailMessage",
    "EmailRecord",
    "Notification",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentSession",
    "PaymentStatus",
    "PaymentEvent",
    "ProcessedWebhook",
    "WebhookPayload",
]
