from fastapi import APIRouter, Depends
from pydantic import BaseModel

from orderpay.deps import Caller, get_services, require_caller
from orderpay.services import checkout as checkout_service
from orderpay.services.container import Services

router = APIRouter()


class CheckoutRequest(BaseModel):
    customer_email: str | None = None
    customer_name: str | None = None


@router.post("/validate")
async def validate_checkout(
    body: CheckoutRequest,
    caller: Caller = Depends(require_caller),
    services: Services = Depends(get_services),
):
    """Price the caller's cart and create an order awaiting payment."""
    order = await checkout_service.validate_checkout(
        services.stores,
        services.settings,
        user_id=caller.user_id,
        guest_session_id=caller.guest_token,
        customer_email=body.customer_email,
        customer_name=body.customer_name,
    )
    return {
        "success": True,
        "order_id": order.id,
        "order_number": order.order_number,
        "currency": order.currency,
        "subtotal": str(order.subtotal),
        "tax": str(order.tax),
        "shipping": str(order.shipping),
        "total": str(order.total),
    }
