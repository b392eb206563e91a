from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from orderpay.models.order import Money


class CartItem(BaseModel):
    product_id: str
    title: str = ""
    quantity: int = 1
    unit_price: Money | None = None  # display snapshot only; checkout reprices


class Cart(BaseModel):
    """Exactly one of user_id / guest_session_id is set."""
    user_id: str | None = None
    guest_session_id: str | None = None
    items: list[CartItem] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Product(BaseModel):
    id: str
    title: str
    price: Money = Decimal("0.00")
    active: bool = True
