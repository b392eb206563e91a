from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from orderpay.models.order import new_id

EmailType = Literal["security_alert", "payment_notification", "system_health", "order_update"]


class EmailMessage(BaseModel):
    to: str
    subject: str
    type: EmailType
    data: dict[str, Any] = Field(default_factory=dict)
    priority: Literal["low", "medium", "high", "critical"] = "medium"


class EmailRecord(EmailMessage):
    """Outbound email; "stored" means no provider was configured when it was sent."""
    id: str = Field(default_factory=new_id)
    status: Literal["queued", "stored", "sent", "failed"] = "queued"
    provider_message_id: str | None = None
    failure_reason: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
