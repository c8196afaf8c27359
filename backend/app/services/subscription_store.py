"""Subscription store — row-level access to the ``subscriptions`` table.

Each method runs in its own session and commits before returning, so a
single call is atomic and independent of its neighbours. Database errors are
translated into the billing error taxonomy here; callers never see
SQLAlchemy exceptions.
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.billing.errors import StoreFailure, StoreWriteFailure, SubscriptionNotFound
from app.models.subscription import PLAN_FREE_TRIAL, STATUS_ACTIVE, Subscription

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

_WRITABLE_FIELDS = frozenset(
    {"customer_ref", "subscription_ref", "plan", "status", "started_at", "ends_at"}
)


def _check_fields(values: dict[str, Any]) -> None:
    unknown = set(values) - _WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")


class SubscriptionStore:
    """Access layer for subscription rows keyed by user, customer or subscription."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    def _insert(self, db: AsyncSession):
        dialect = db.bind.dialect.name
        try:
            return _UPSERT_INSERTS[dialect]
        except KeyError:
            raise StoreWriteFailure(f"Upsert not supported on dialect {dialect!r}") from None

    # --- Reads ---

    async def list_for_user(self, user_id: uuid.UUID) -> list[Subscription]:
        """All rows for a user, most recently started first."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Subscription)
                    .where(Subscription.user_id == user_id)
                    .order_by(Subscription.started_at.desc(), Subscription.created_at.desc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to read subscriptions for user {user_id}") from e

    async def get_by_customer(self, customer_ref: str) -> Subscription:
        """Look up a subscription by Stripe customer ID."""
        return await self._get_one("customer_ref", customer_ref)

    async def get_by_subscription(self, subscription_ref: str) -> Subscription:
        """Look up a subscription by Stripe subscription ID."""
        return await self._get_one("subscription_ref", subscription_ref)

    async def _get_one(self, key: str, value: str) -> Subscription:
        column = getattr(Subscription, key)
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(Subscription).where(column == value))
                subscription = result.scalars().first()
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to read subscription by {key}={value}") from e
        if subscription is None:
            raise SubscriptionNotFound(key, value)
        return subscription

    # --- Writes ---

    async def upsert_for_user(self, user_id: uuid.UUID, **values: Any) -> Subscription:
        """Insert or update the row for ``user_id`` (conflict target: user_id).

        Keys left out of ``values`` keep their stored value on update.
        """
        _check_fields(values)
        try:
            async with self._session_factory() as db:
                insert = self._insert(db)
                stmt = insert(Subscription).values(user_id=user_id, **values)
                set_ = {key: stmt.excluded[key] for key in values}
                set_["updated_at"] = func.now()
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Subscription.user_id],
                    set_=set_,
                )
                await db.execute(stmt)
                result = await db.execute(
                    select(Subscription).where(Subscription.user_id == user_id)
                )
                subscription = result.scalar_one()
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreWriteFailure(f"Failed to upsert subscription for user {user_id}") from e

        logger.info(
            "Upserted subscription for user %s: plan=%s, status=%s",
            user_id,
            subscription.plan,
            subscription.status,
        )
        return subscription

    async def update_by_customer(self, customer_ref: str, **values: Any) -> Subscription:
        """Update the row owning a Stripe customer ID."""
        return await self._update_one("customer_ref", customer_ref, values)

    async def update_by_subscription(self, subscription_ref: str, **values: Any) -> Subscription:
        """Update the row owning a Stripe subscription ID."""
        return await self._update_one("subscription_ref", subscription_ref, values)

    async def _update_one(self, key: str, value: str, values: dict[str, Any]) -> Subscription:
        _check_fields(values)
        column = getattr(Subscription, key)
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(Subscription).where(column == value))
                subscription = result.scalars().first()
                if subscription is None:
                    raise SubscriptionNotFound(key, value)
                for field, new_value in values.items():
                    setattr(subscription, field, new_value)
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreWriteFailure(f"Failed to update subscription by {key}={value}") from e

        logger.info(
            "Updated subscription %s (%s=%s): status=%s",
            subscription.id,
            key,
            value,
            subscription.status,
        )
        return subscription

    async def ensure_customer(
        self, user_id: uuid.UUID, customer_ref: str, started_at: datetime
    ) -> Subscription:
        """Record a Stripe customer for a user at checkout initiation.

        Creates an active free-trial row when the user has none. An existing
        row keeps its plan, status and any customer ID it already holds.
        """
        try:
            async with self._session_factory() as db:
                insert = self._insert(db)
                stmt = insert(Subscription).values(
                    user_id=user_id,
                    customer_ref=customer_ref,
                    plan=PLAN_FREE_TRIAL,
                    status=STATUS_ACTIVE,
                    started_at=started_at,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Subscription.user_id],
                    set_={
                        "customer_ref": func.coalesce(
                            Subscription.customer_ref, stmt.excluded.customer_ref
                        ),
                    },
                )
                await db.execute(stmt)
                result = await db.execute(
                    select(Subscription).where(Subscription.user_id == user_id)
                )
                subscription = result.scalar_one()
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreWriteFailure(
                f"Failed to record customer {customer_ref} for user {user_id}"
            ) from e

        logger.info("Linked Stripe customer %s to user %s", subscription.customer_ref, user_id)
        return subscription
