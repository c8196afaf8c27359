"""Subscription model — Stripe billing state per user."""

import uuid
from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

PLAN_FREE_TRIAL = "free_trial"
PLAN_SOLO = "solo"
PLAN_SEASONAL = "seasonal"
PAID_PLANS = frozenset({PLAN_SOLO, PLAN_SEASONAL})

STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"
STATUS_PAST_DUE = "past_due"


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Tracks a user's Stripe subscription and plan tier."""

    __tablename__ = "subscriptions"

    # Owning identity from Supabase Auth (no local users table).
    # UNIQUE is the conflict target for upserts.
    user_id: Mapped[uuid.UUID] = mapped_column(unique=True, nullable=False, index=True)

    # Stripe identifiers
    customer_ref: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    subscription_ref: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    # Plan & status
    plan: Mapped[str] = mapped_column(String(50), nullable=False, server_default=PLAN_FREE_TRIAL)
    status: Mapped[str] = mapped_column(String(50), nullable=False, server_default=STATUS_ACTIVE)

    # Validity window (naive UTC)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    ends_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, user_id={self.user_id}, plan={self.plan}, status={self.status})>"
