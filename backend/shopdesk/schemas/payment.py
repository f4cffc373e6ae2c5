"""Payment, checkout and webhook schemas."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from ..core.enums import CheckoutItemType, PaymentStatus
from .base import Money, StandardizedModel, StrictRequestModel


class CheckoutItem(StrictRequestModel):
    type: CheckoutItemType
    id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1, le=100)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Storefront clients send numeric ids for legacy catalog rows
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class CheckoutSessionCreate(StrictRequestModel):
    items: List[CheckoutItem] = Field(..., min_length=1)
    customer_id: Optional[str] = None
    appointment_id: Optional[str] = None
    customer_email: Optional[str] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CheckoutSessionResponse(StandardizedModel):
    session_id: str
    url: Optional[str] = None


class RefundRequest(StrictRequestModel):
    payment_id: Optional[str] = None
    order_id: Optional[str] = None
    reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def _one_target(self) -> "RefundRequest":
        if not self.payment_id and not self.order_id:
            raise ValueError("payment_id or order_id is required")
        return self


class RefundBody(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=500)


class PaymentResponse(StandardizedModel):
    id: str
    order_id: Optional[str] = None
    appointment_id: Optional[str] = None
    amount: Money
    currency: str
    status: PaymentStatus
    payment_method: str
    transaction_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    stripe_charge_id: Optional[str] = None
    refunded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class RefundResponse(StandardizedModel):
    success: bool = True
    message: str
    payment: PaymentResponse


class PaymentStatsResponse(StandardizedModel):
    total_revenue: Money
    successful_payments: int
    pending_payments: int
    failed_payments: int
    refunded_payments: int
    refunded_amount: Money


class WebhookResponse(StandardizedModel):
    """Response for webhook processing."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(..., description="Processing status (success, ignored, duplicate, error)")
    event_type: str = Field(..., description="Stripe event type")
    message: Optional[str] = Field(None, description="Additional information")
