from decimal import Decimal
from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]
_PLACEHOLDER_SECRET = "<replace_with_webhook_secret_or_leave_empty>"


def _parse_csv(v: Any, default: List[str]) -> List[str]:
    try:
        if v is None or v == "":
            return default.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return default.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or default.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or default.copy()
    except Exception:
        return default.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")
    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")

    # Stores: "mongo" in deployments, "memory" for local runs and tests
    store_backend: str = Field(default="mongo", alias="STORE_BACKEND")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="orderpay", alias="MONGODB_DB_NAME")

    # Redis (arq email queue)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Transaction Junction hosted payment page
    tj_client_id: str = Field(default="", alias="TJ_CLIENT_ID")
    tj_client_secret: str = Field(default="", alias="TJ_CLIENT_SECRET")
    tj_oauth_token_url: str = Field(default="", alias="TJ_OAUTH_TOKEN_URL")
    tj_api_base_url: str = Field(default="", alias="TJ_API_BASE_URL")
    tj_create_session_path: str = Field(default="/hpp/sessions", alias="TJ_CREATE_SESSION_PATH")
    tj_merchant_ref_prefix: str = Field(default="myplatform:order:", alias="TJ_MERCHANT_REF_PREFIX")
    tj_webhook_secret: str = Field(default="", alias="TJ_WEBHOOK_SECRET")
    tj_http_timeout_seconds: float = Field(default=10.0, alias="TJ_HTTP_TIMEOUT_SECONDS")
    tj_session_expires_in: int = Field(default=3600, alias="TJ_SESSION_EXPIRES_IN")
    tj_payment_methods_raw: str = Field(default="CARD,EFT,INSTANT_EFT", alias="TJ_PAYMENT_METHODS")

    # Checkout
    supported_currencies_raw: str = Field(default="ZMW,USD,ZAR", alias="SUPPORTED_CURRENCIES")
    default_currency: str = Field(default="ZMW", alias="DEFAULT_CURRENCY")
    tax_rate: Decimal = Field(default=Decimal("0"), alias="TAX_RATE")
    shipping_flat: Decimal = Field(default=Decimal("0"), alias="SHIPPING_FLAT")

    # Email (Resend); unset key means emails are stored for later processing
    resend_api_key: str = Field(default="", alias="RESEND_API_KEY")
    resend_api_url: str = Field(default="https://api.resend.com", alias="RESEND_API_URL")
    email_from: str = Field(default="MassRides <notifications@massrides.com>", alias="EMAIL_FROM")
    admin_alert_email: str = Field(default="", alias="ADMIN_ALERT_EMAIL")
    email_delivery: str = Field(default="inline", alias="EMAIL_DELIVERY")  # "inline" | "queue"

    # Side effects: 1 = single attempt, no retry
    side_effect_max_attempts: int = Field(default=1, alias="SIDE_EFFECT_MAX_ATTEMPTS")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_csv(getattr(self, "cors_origins_raw", None), _DEFAULT_CORS)

    @property
    def supported_currencies(self) -> List[str]:
        return [c.upper() for c in _parse_csv(self.supported_currencies_raw, [self.default_currency])]

    @property
    def tj_payment_methods(self) -> List[str]:
        return _parse_csv(self.tj_payment_methods_raw, ["CARD"])

    @property
    def webhook_secret(self) -> str | None:
        """Shared signing secret, or None when webhooks run unverified."""
        secret = (self.tj_webhook_secret or "").strip()
        if not secret or secret == _PLACEHOLDER_SECRET:
            return None
        return secret

    @property
    def webhook_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/v1/payments/webhook"

    def missing_processor_settings(self) -> list[str]:
        required = {
            "TJ_CLIENT_ID": self.tj_client_id,
            "TJ_CLIENT_SECRET": self.tj_client_secret,
            "TJ_OAUTH_TOKEN_URL": self.tj_oauth_token_url,
            "TJ_API_BASE_URL": self.tj_api_base_url,
        }
        return [name for name, value in required.items() if not value or value.startswith("<replace_with")]


@lru_cache
def get_settings() -> Settings:
    return Settings()
