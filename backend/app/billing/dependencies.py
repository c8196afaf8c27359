"""Plan gating dependencies — enforce paid-plan access."""

import logging

from fastapi import Depends, HTTPException, status

from app.api.deps import get_subscription_store
from app.auth.dependencies import CurrentUser, get_current_user
from app.billing.errors import StoreError
from app.services.subscription_query import GateDecision, get_gate
from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


async def get_gate_decision(
    user: CurrentUser = Depends(get_current_user),
    store: SubscriptionStore = Depends(get_subscription_store),
) -> GateDecision:
    """Fetch the current user's gating decision."""
    try:
        return await get_gate(store, user.id)
    except StoreError as e:
        logger.exception("Failed to read subscription for user %s", user.id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Subscription lookup failed",
        ) from e


async def require_active_paid(
    gate: GateDecision = Depends(get_gate_decision),
) -> GateDecision:
    """Raise 402 unless the user is active on a paid plan."""
    if not gate.is_active_paid:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "message": "An active Solo or Seasonal plan is required.",
                "plan": gate.plan,
                "status": gate.status,
                "upgrade_url": "/api/v1/billing/checkout",
            },
        )
    return gate
