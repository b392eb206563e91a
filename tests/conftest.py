import json
import os
from decimal import Decimal
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Use in-memory stores; nothing here needs Mongo or Redis
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("MONGODB_DB_NAME", "orderpay_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("TJ_WEBHOOK_SECRET", "")

from orderpay.core.config import Settings  # noqa: E402
from orderpay.models.order import Order, OrderItem  # noqa: E402
from orderpay.services.container import Services, build_services  # noqa: E402
from orderpay.stores.memory import memory_stores  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"


def make_settings(**overrides) -> Settings:
    values = dict(
        store_backend="memory",
        public_base_url="https://shop.test",
        tj_client_id="client-id",
        tj_client_secret="client-secret",
        tj_oauth_token_url="https://auth.tj.test/oauth/token",
        tj_api_base_url="https://api.tj.test",
        tj_merchant_ref_prefix="myplatform:order:",
        tj_webhook_secret="",
        resend_api_key="",
        resend_api_url="https://api.resend.test",
        admin_alert_email="ops@massrides.test",
        email_delivery="inline",
        side_effect_max_attempts=1,
    )
    values.update(overrides)
    return Settings(**values)


class FakeGateway:
    """httpx.MockTransport handler standing in for the processor and Resend."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.session_status = 200
        self.session_body = {
            "sessionId": "sess_123",
            "paymentIntentId": "pi_123",
            "redirectUrl": "https://pay.tj.test/hpp/sess_123",
        }
        self.timeout = False
        self.email_status = 200
        self.emails: list[dict] = []
        self.refunds: list[dict] = []
        self.refund_status = 200

    def calls_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path
        if host == "auth.tj.test":
            if self.timeout:
                raise httpx.ConnectTimeout("timed out", request=request)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": "tok_abc", "expires_in": 3600})
        if host == "api.tj.test" and path == "/hpp/sessions":
            if self.session_status != 200:
                return httpx.Response(self.session_status, json={"error": "bad request", "detail": "secret stuff"})
            return httpx.Response(200, json=self.session_body)
        if host == "api.tj.test" and path.endswith("/refund"):
            if self.refund_status != 200:
                return httpx.Response(self.refund_status, json={"error": "refund rejected"})
            self.refunds.append(json.loads(request.content))
            return httpx.Response(200, json={"refundId": "rf_1", "status": "PENDING"})
        if host == "api.tj.test" and path.startswith("/v1/transactions/"):
            transaction_id = path.rsplit("/", 1)[-1]
            if transaction_id == "missing":
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json={"transactionId": transaction_id, "transactionStatus": "PAYMENT_SETTLED"})
        if host == "api.resend.test" and path == "/emails":
            if self.email_status != 200:
                return httpx.Response(self.email_status, json={"message": "rejected"})
            self.emails.append(json.loads(request.content))
            return httpx.Response(200, json={"id": f"em_{len(self.emails)}"})
        return httpx.Response(404)


def make_order(**overrides) -> Order:
    values = dict(
        user_id="user-1",
        customer_email="farmer@example.com",
        customer_name="Jane Banda",
        currency="ZMW",
        items=[
            OrderItem(
                product_id="p-filter",
                title="Oil filter",
                unit_price=Decimal("75.00"),
                quantity=2,
                subtotal=Decimal("150.00"),
            )
        ],
        subtotal=Decimal("150.00"),
        total=Decimal("150.00"),
    )
    values.update(overrides)
    return Order(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def stores():
    return memory_stores()


@pytest_asyncio.fixture
async def http(gateway: FakeGateway) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(gateway)) as c:
        yield c


@pytest.fixture
def services(settings, stores, http) -> Services:
    return build_services(settings, stores, http=http)


@pytest_asyncio.fixture
async def order(stores) -> Order:
    return await stores.orders.insert(make_order())


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    from orderpay.main import app
    app.state.services = services
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac
    app.state.services = None
