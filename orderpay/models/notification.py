from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from orderpay.models.order import new_id


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    title: str
    message: str
    type: str = "info"  # payment, error, warning, info
    action_url: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
