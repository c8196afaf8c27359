"""Billing API endpoints — plans, subscription status, and Stripe Checkout."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import (
    get_billing_client,
    get_current_user,
    get_subscription_store,
)
from app.auth.dependencies import CurrentUser
from app.billing.errors import StoreError
from app.billing.plans import build_plans
from app.billing.reconciler import utcnow
from app.billing.stripe_client import BillingClient
from app.config import Settings, get_settings
from app.models.subscription import PAID_PLANS
from app.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    PlanResponse,
    PlansListResponse,
    SubscriptionResponse,
)
from app.services.subscription_query import STATUS_NONE, current_subscription, is_active_paid
from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


@router.get("/plans", response_model=PlansListResponse)
async def list_plans(config: Settings = Depends(get_settings)) -> PlansListResponse:
    """List available plans (public — no auth required)."""
    return PlansListResponse(
        plans=[
            PlanResponse(
                name=p.name,
                display_name=p.display_name,
                price_cents=p.price_cents,
                billing_interval=p.billing_interval,
                term_days=p.term_days,
                is_paid=p.is_paid,
            )
            for p in build_plans(config).values()
        ]
    )


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    current_user: CurrentUser = Depends(get_current_user),
    store: SubscriptionStore = Depends(get_subscription_store),
) -> SubscriptionResponse:
    """Get the caller's current subscription and paid-feature gate."""
    try:
        subscription = await current_subscription(store, current_user.id)
    except StoreError as e:
        logger.exception("Failed to read subscription for user %s", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Subscription lookup failed",
        ) from e

    if subscription is None:
        return SubscriptionResponse(plan=None, status=STATUS_NONE, is_active_paid=False)

    return SubscriptionResponse(
        plan=subscription.plan,
        status=subscription.status,
        subscription_ref=subscription.subscription_ref,
        started_at=subscription.started_at,
        ends_at=subscription.ends_at,
        is_active_paid=is_active_paid(subscription),
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    current_user: CurrentUser = Depends(get_current_user),
    store: SubscriptionStore = Depends(get_subscription_store),
    billing: BillingClient = Depends(get_billing_client),
    config: Settings = Depends(get_settings),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a Solo or Seasonal plan."""
    # Validate plan
    if body.plan not in PAID_PLANS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid plan. Choose 'solo' or 'seasonal'.",
        )

    plan = build_plans(config)[body.plan]
    if not plan.stripe_price_id:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stripe price ID not configured for plan.",
        )

    user_id = str(current_user.id)
    try:
        # Ensure Stripe customer exists
        subscription = await current_subscription(store, current_user.id)
        customer_id = subscription.customer_ref if subscription is not None else None
        if not customer_id:
            customer = await billing.create_customer(
                email=current_user.email or "",
                user_id=user_id,
            )
            subscription = await store.ensure_customer(current_user.id, customer.id, utcnow())
            customer_id = subscription.customer_ref

        session = await billing.create_checkout_session(
            customer_id=customer_id,
            price_id=plan.stripe_price_id,
            success_url=body.success_url or f"{config.frontend_url}/app?success=true",
            cancel_url=body.cancel_url or f"{config.frontend_url}/pricing",
            metadata={"user_id": user_id, "plan_type": plan.name},
        )
    except stripe.StripeError as e:
        logger.error("Stripe checkout error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e
    except StoreError as e:
        logger.exception("Failed to record Stripe customer for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Subscription store unavailable",
        ) from e

    return CheckoutResponse(
        checkout_url=session.url,
        session_id=session.id,
    )
