"""Plan definitions — pricing tiers and subscription terms."""

from collections.abc import Mapping
from dataclasses import dataclass

from app.config import Settings
from app.models.subscription import PAID_PLANS, PLAN_FREE_TRIAL, PLAN_SEASONAL, PLAN_SOLO

SEASONAL_TERM_DAYS = 365


@dataclass(frozen=True)
class Plan:
    """A purchasable (or trial) plan."""

    name: str
    display_name: str
    price_cents: int  # in cents (e.g., 2000 = $20.00)
    billing_interval: str  # "trial", "month" or "year"
    term_days: int | None  # None = open-ended
    stripe_price_id: str | None  # None for the free trial

    @property
    def is_paid(self) -> bool:
        return self.name in PAID_PLANS


def build_plans(config: Settings) -> dict[str, Plan]:
    """Build the plan catalog, reading Stripe price IDs from ``config``."""
    return {
        PLAN_FREE_TRIAL: Plan(
            name=PLAN_FREE_TRIAL,
            display_name="Free Trial",
            price_cents=0,
            billing_interval="trial",
            term_days=7,
            stripe_price_id=None,
        ),
        PLAN_SOLO: Plan(
            name=PLAN_SOLO,
            display_name="Solo",
            price_cents=2000,
            billing_interval="month",
            term_days=None,
            stripe_price_id=config.stripe_solo_price_id or None,
        ),
        PLAN_SEASONAL: Plan(
            name=PLAN_SEASONAL,
            display_name="Seasonal",
            price_cents=14900,
            billing_interval="year",
            term_days=SEASONAL_TERM_DAYS,
            stripe_price_id=config.stripe_seasonal_price_id or None,
        ),
    }


def get_plan_by_price_id(plans: Mapping[str, Plan], price_id: str) -> str | None:
    """Reverse lookup: Stripe price ID -> plan name. Returns None if not found."""
    for plan in plans.values():
        if plan.stripe_price_id and plan.stripe_price_id == price_id:
            return plan.name
    return None
