"""Subscription query — the read path behind paid-feature gating."""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from app.models.subscription import PAID_PLANS, STATUS_ACTIVE, Subscription
from app.services.subscription_store import SubscriptionStore

STATUS_NONE = "none"


@dataclass(frozen=True)
class GateDecision:
    """Whether a user may use paid-only features, and why."""

    plan: str | None
    status: str
    is_active_paid: bool


def is_active_paid(subscription: Subscription | None) -> bool:
    """True iff the subscription is active on a paid plan (not the free trial)."""
    if subscription is None:
        return False
    return subscription.status == STATUS_ACTIVE and subscription.plan in PAID_PLANS


def select_current(rows: Iterable[Subscription]) -> Subscription | None:
    """Pick one row deterministically: latest started_at, then latest created_at.

    The table declares user_id unique, but rows synced from older deployments
    may still hold duplicates per user.
    """

    def _key(row: Subscription) -> tuple[datetime, datetime]:
        return (row.started_at or datetime.min, row.created_at or datetime.min)

    return max(rows, key=_key, default=None)


async def current_subscription(
    store: SubscriptionStore, user_id: uuid.UUID
) -> Subscription | None:
    """Return the user's current subscription row, or None."""
    return select_current(await store.list_for_user(user_id))


async def get_gate(store: SubscriptionStore, user_id: uuid.UUID) -> GateDecision:
    """Compute the gating decision for a user."""
    subscription = await current_subscription(store, user_id)
    if subscription is None:
        return GateDecision(plan=None, status=STATUS_NONE, is_active_paid=False)
    return GateDecision(
        plan=subscription.plan,
        status=subscription.status,
        is_active_paid=is_active_paid(subscription),
    )
