from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from orderpay.models.order import new_id


class AuditLog(BaseModel):
    id: str = Field(default_factory=new_id)
    actor: str = "system"  # "user:<id>", "guest", "system", "webhook"
    user_id: str | None = None
    event_type: str  # PAYMENT_SUCCESS, ORDER_CREATED, ...
    entity_type: str
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    risk_score: int | None = None  # security events only
    created_at: datetime = Field(default_factory=datetime.utcnow)
