"""Pydantic v2 request/response schemas for billing endpoints."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

# --- Request schemas ---


class CheckoutRequest(BaseModel):
    """Request to create a Stripe Checkout session."""

    plan: str  # "solo" or "seasonal"
    success_url: str | None = None
    cancel_url: str | None = None


# --- Response schemas ---


class PlanResponse(BaseModel):
    """Plan details for display."""

    name: str
    display_name: str
    price_cents: int
    billing_interval: str
    term_days: int | None
    is_paid: bool


class PlansListResponse(BaseModel):
    """All available plans."""

    plans: list[PlanResponse]


class SubscriptionResponse(BaseModel):
    """Current subscription state and paid-feature gate for the caller."""

    plan: str | None
    status: Literal["active", "cancelled", "past_due", "none"]
    subscription_ref: str | None = None
    started_at: datetime | None = None
    ends_at: datetime | None = None
    is_active_paid: bool


class CheckoutResponse(BaseModel):
    """Stripe Checkout session URL returned to frontend."""

    checkout_url: str | None
    session_id: str


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe."""

    received: bool = True
