import time
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from orderpay.core.config import get_settings
from orderpay.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from orderpay.core.logging import bind_request_id, configure_logging, get_logger
from orderpay.routers import checkout, orders, payments
from orderpay.services.container import create_services
from fastapi.exceptions import RequestValidationError

settings = get_settings()
configure_logging(debug=settings.debug)
log = get_logger(__name__)

app = FastAPI(
    title="MassRides Order Payments API",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(checkout.router, prefix="/v1/checkout", tags=["checkout"])
app.include_router(payments.router, prefix="/v1/payments", tags=["payments"])
app.include_router(orders.router, prefix="/v1/orders", tags=["orders"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    if getattr(app.state, "services", None) is not None:
        return
    email_queue = None
    if settings.email_delivery == "queue":
        from orderpay.worker.tasks import ArqEmailQueue
        email_queue = await ArqEmailQueue.connect()
        app.state.email_queue = email_queue
    app.state.services = await create_services(settings, email_queue=email_queue)
    log.info("startup", msg="Services ready", store_backend=settings.store_backend)


@app.on_event("shutdown")
async def shutdown():
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.aclose()
        app.state.services = None
    email_queue = getattr(app.state, "email_queue", None)
    if email_queue is not None:
        await email_queue.aclose()
        app.state.email_queue = None


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
