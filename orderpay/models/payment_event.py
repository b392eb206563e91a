from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from orderpay.models.order import new_id


class PaymentEvent(BaseModel):
    """Append-only transaction log: every session creation and every webhook call."""
    id: str = Field(default_factory=new_id)
    kind: Literal["session_created", "webhook_received"]
    order_id: str | None = None
    transaction_id: str | None = None
    session_id: str | None = None
    payment_intent_id: str | None = None
    event_id: str | None = None
    raw_status: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=datetime.utcnow)


class ProcessedWebhook(BaseModel):
    """Idempotency record; key is unique across the store."""
    key: str
    transaction_id: str | None = None
    order_id: str | None = None
    outcome: str = "claimed"
    created_at: datetime = Field(default_factory=datetime.utcnow)
