from decimal import Decimal

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel

from orderpay.deps import Caller, get_services, require_admin, require_caller
from orderpay.services import refunds as refunds_service
from orderpay.services.container import Services
from orderpay.services.sessions import SessionRequest

router = APIRouter()


class RefundRequest(BaseModel):
    order_id: str
    amount: Decimal | None = None  # partial refund in major units; omit for full
    reason: str | None = None


@router.post("/sessions")
async def create_session(
    body: SessionRequest,
    caller: Caller = Depends(require_caller),
    services: Services = Depends(get_services),
):
    """Open a hosted payment page session; the frontend redirects to redirect_url."""
    return await services.sessions.create(
        body,
        user_id=caller.user_id,
        guest_token=caller.guest_token,
        is_admin=caller.is_admin,
    )


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    x_tj_signature: str | None = Header(None, alias="x-tj-signature"),
    services: Services = Depends(get_services),
):
    """Processor status callback. Always 200 once accepted, including duplicates and unmatched events."""
    body = await request.body()
    result = await services.reconciler.handle(body, x_tj_signature)
    return result.as_response()


@router.post("/refunds")
async def create_refund(
    body: RefundRequest,
    admin: Caller = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return await refunds_service.request_refund(
        services.stores,
        services.processor,
        body.order_id,
        admin.user_id,
        amount=body.amount,
        reason=body.reason,
    )


@router.get("/transactions/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    admin: Caller = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return await refunds_service.lookup_transaction(services.processor, transaction_id)
