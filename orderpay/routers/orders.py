from fastapi import APIRouter, Depends

from orderpay.core.exceptions import NotFoundError
from orderpay.deps import Caller, get_services, require_admin, require_caller
from orderpay.services.container import Services

router = APIRouter()

# Fields the storefront may see; processor payloads stay server-side
PUBLIC_ORDER_FIELDS = {
    "id",
    "order_number",
    "items",
    "currency",
    "subtotal",
    "tax",
    "shipping",
    "total",
    "order_status",
    "payment_status",
    "created_at",
    "updated_at",
}


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    caller: Caller = Depends(require_caller),
    services: Services = Depends(get_services),
):
    order = await services.stores.orders.get(order_id)
    # same 404 for missing and foreign orders
    if order is None or not (caller.is_admin or order.owned_by(caller.user_id, caller.guest_token)):
        raise NotFoundError("Order not found")
    if caller.is_admin:
        return order.model_dump(mode="json")
    return order.model_dump(mode="json", include=PUBLIC_ORDER_FIELDS)


@router.get("/{order_id}/events")
async def get_order_events(
    order_id: str,
    admin: Caller = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Payment events and audit trail for one order."""
    order = await services.stores.orders.get(order_id)
    if order is None:
        raise NotFoundError("Order not found")
    events = await services.stores.events.list_for_order(order_id)
    audit = await services.stores.audit.list_for_entity("order", order_id)
    return {
        "order_id": order_id,
        "payment_events": [e.model_dump(mode="json") for e in events],
        "audit": [a.model_dump(mode="json") for a in audit],
    }
