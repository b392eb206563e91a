from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class WebhookPayload(BaseModel):
    """Processor status callback. Unknown fields are kept for the audit trail."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    event_id: str | None = Field(default=None, validation_alias=AliasChoices("eventId", "event_id", "id"))
    transaction_id: str | None = Field(default=None, validation_alias=AliasChoices("transactionId", "transaction_id"))
    session_id: str | None = Field(default=None, validation_alias=AliasChoices("sessionId", "session_id"))
    payment_intent_id: str | None = Field(
        default=None, validation_alias=AliasChoices("paymentIntentId", "payment_intent_id")
    )
    merchant_ref: str | None = Field(
        default=None, validation_alias=AliasChoices("merchantRef", "merchant_ref", "reference")
    )
    transaction_status: str | None = Field(
        default=None, validation_alias=AliasChoices("transactionStatus", "transaction_status", "status", "event")
    )
    amount: int | None = None  # minor units
    currency: str | None = None
    payment_type: str | None = Field(default=None, validation_alias=AliasChoices("paymentType", "payment_type"))
    response_text: str | None = Field(default=None, validation_alias=AliasChoices("responseText", "response_text"))
    customer_info: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("customerInfo", "customer_info")
    )
    payment_method_token: str | None = Field(
        default=None, validation_alias=AliasChoices("paymentMethodToken", "payment_method_token")
    )

    @property
    def idempotency_key(self) -> str | None:
        """Processor event ID when sent, else transaction ID + raw status."""
        if self.event_id:
            return f"event:{self.event_id}"
        if self.transaction_id:
            return f"tx:{self.transaction_id}:{(self.transaction_status or '').strip().lower()}"
        return None
