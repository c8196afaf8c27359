"""Reconciler — apply verified Stripe events to the subscription store.

Every write is keyed by a stable identifier (user, customer or subscription
ID), so Stripe retries and the overlapping ``checkout.session.completed`` /
``customer.subscription.created`` pair converge on the same row whatever
order they arrive in.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from app.billing.errors import StoreError, SubscriptionNotFound
from app.billing.events import BillingEvent, EventKind
from app.billing.plans import SEASONAL_TERM_DAYS
from app.models.subscription import (
    PAID_PLANS,
    PLAN_SEASONAL,
    PLAN_SOLO,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_PAST_DUE,
    Subscription,
)
from app.services.subscription_query import current_subscription
from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)

# Stripe subscription status -> local status
_PROVIDER_STATUS = {
    "active": STATUS_ACTIVE,
    "trialing": STATUS_ACTIVE,
    "past_due": STATUS_PAST_DUE,
    "unpaid": STATUS_PAST_DUE,
    "incomplete": STATUS_PAST_DUE,
    "paused": STATUS_PAST_DUE,
    "canceled": STATUS_CANCELLED,
    "incomplete_expired": STATUS_CANCELLED,
}


class Outcome(str, Enum):
    """What happened to a single event."""

    APPLIED = "applied"
    DEFERRED = "deferred"  # target row not there yet; a sibling event will create it
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class ReconcileReport:
    """Per-event outcomes for one webhook delivery."""

    outcomes: list[tuple[str, Outcome]] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [event_id for event_id, outcome in self.outcomes if outcome is Outcome.FAILED]


def utcnow() -> datetime:
    """Current time as naive UTC, matching the stored timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def map_provider_status(status: str | None) -> str:
    """Map a Stripe subscription status onto active / past_due / cancelled."""
    if status is None:
        return STATUS_ACTIVE
    mapped = _PROVIDER_STATUS.get(status)
    if mapped is None:
        logger.warning("Unknown Stripe subscription status %r, treating as past_due", status)
        return STATUS_PAST_DUE
    return mapped


def _term_end(plan: str, started_at: datetime) -> datetime | None:
    if plan == PLAN_SEASONAL:
        return started_at + timedelta(days=SEASONAL_TERM_DAYS)
    return None


class Reconciler:
    """Maps each verified event kind to a deterministic store mutation."""

    def __init__(
        self,
        store: SubscriptionStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock
        self._handlers: dict[EventKind, Callable[[BillingEvent], Awaitable[Outcome]]] = {
            EventKind.CHECKOUT_COMPLETED: self._checkout_completed,
            EventKind.SUBSCRIPTION_CREATED: self._subscription_created,
            EventKind.SUBSCRIPTION_UPDATED: self._subscription_updated,
            EventKind.SUBSCRIPTION_DELETED: self._subscription_deleted,
        }

    async def reconcile(self, events: Iterable[BillingEvent]) -> ReconcileReport:
        """Apply events in order. A failed event never stops the ones after it."""
        report = ReconcileReport()
        for event in events:
            report.outcomes.append((event.id, await self.apply(event)))
        if report.failed:
            logger.error(
                "Reconciliation incomplete: %d event(s) failed: %s",
                len(report.failed),
                ", ".join(report.failed),
            )
        return report

    async def apply(self, event: BillingEvent) -> Outcome:
        """Apply a single event. Store errors are logged, not raised."""
        handler = self._handlers.get(event.kind) if event.kind is not None else None
        if handler is None:
            logger.info("Unhandled webhook event type: %s (id=%s)", event.type, event.id)
            return Outcome.IGNORED

        logger.info(
            "Processing webhook event: %s (id=%s, created=%s)", event.type, event.id, event.created
        )
        try:
            return await handler(event)
        except SubscriptionNotFound as e:
            logger.warning(
                "Deferred %s (id=%s): %s; a later event is expected to create the row",
                event.type,
                event.id,
                e,
            )
            return Outcome.DEFERRED
        except StoreError:
            logger.exception(
                "Failed to apply %s (id=%s) user=%s customer=%s subscription=%s; "
                "manual reconciliation may be needed",
                event.type,
                event.id,
                event.user_id,
                event.customer_ref,
                event.subscription_ref,
            )
            return Outcome.FAILED

    # --- Handlers ---

    async def _checkout_completed(self, event: BillingEvent) -> Outcome:
        user_id = event.user_id
        if user_id is None and event.customer_ref:
            try:
                user_id = (await self._store.get_by_customer(event.customer_ref)).user_id
            except SubscriptionNotFound:
                pass

        if user_id is None:
            logger.error(
                "Checkout %s has no user_id metadata and unknown customer %s, skipping",
                event.id,
                event.customer_ref,
            )
            return Outcome.IGNORED

        # Status stays with the subscription events once the purchase is on record
        subscription = await self._upsert_purchase(user_id, event, None)
        logger.info(
            "Checkout completed: user %s on plan %s, status=%s (subscription %s)",
            user_id,
            subscription.plan,
            subscription.status,
            subscription.subscription_ref,
        )
        return Outcome.APPLIED

    async def _subscription_created(self, event: BillingEvent) -> Outcome:
        status = map_provider_status(event.provider_status)

        if event.user_id is not None:
            await self._upsert_purchase(event.user_id, event, status)
            return Outcome.APPLIED

        if not event.customer_ref:
            logger.warning("Subscription %s created without customer, skipping", event.subscription_ref)
            return Outcome.IGNORED

        # Raises SubscriptionNotFound if checkout has not been recorded yet
        existing = await self._store.get_by_customer(event.customer_ref)
        values = self._purchase_values(existing, event, status)
        if values is None:
            return Outcome.APPLIED

        await self._store.update_by_customer(event.customer_ref, **values)
        logger.info(
            "Subscription created: %s linked to customer %s, status=%s",
            event.subscription_ref,
            event.customer_ref,
            status,
        )
        return Outcome.APPLIED

    async def _subscription_updated(self, event: BillingEvent) -> Outcome:
        if not event.subscription_ref:
            return Outcome.IGNORED

        existing = await self._store.get_by_subscription(event.subscription_ref)
        if existing.status == STATUS_CANCELLED:
            logger.info(
                "Subscription %s already cancelled, ignoring %s", event.subscription_ref, event.id
            )
            return Outcome.APPLIED

        status = map_provider_status(event.provider_status)
        if status == STATUS_CANCELLED:
            ends_at = self._clock()
        else:
            ends_at = event.cancel_at or _term_end(existing.plan, existing.started_at)
        await self._store.update_by_subscription(
            event.subscription_ref,
            status=status,
            ends_at=ends_at,
        )
        logger.info("Subscription updated: %s → status=%s", event.subscription_ref, status)
        return Outcome.APPLIED

    async def _subscription_deleted(self, event: BillingEvent) -> Outcome:
        if not event.subscription_ref:
            return Outcome.IGNORED

        existing = await self._store.get_by_subscription(event.subscription_ref)
        if existing.status == STATUS_CANCELLED:
            logger.info("Subscription %s already cancelled", event.subscription_ref)
            return Outcome.APPLIED

        await self._store.update_by_subscription(
            event.subscription_ref,
            status=STATUS_CANCELLED,
            ends_at=self._clock(),
        )
        logger.info("Subscription deleted: %s cancelled", event.subscription_ref)
        return Outcome.APPLIED

    # --- Helpers ---

    def _resolve_plan(self, event: BillingEvent) -> str:
        if event.plan in PAID_PLANS:
            return event.plan
        if event.plan:
            logger.warning("Unknown plan %r in event %s, defaulting to solo", event.plan, event.id)
        return PLAN_SOLO

    def _purchase_values(
        self, existing: Subscription | None, event: BillingEvent, status: str | None
    ) -> dict[str, Any] | None:
        """Column values that record ``event``'s purchase over ``existing``.

        A new purchase starts now. For the purchase already on record,
        started_at is kept, the plan only changes when the event names a paid
        one, and a ``None`` status (checkout) keeps the stored status and
        validity window. Returns None when that purchase is already cancelled.
        """
        plan = self._resolve_plan(event)

        if existing is not None and _same_purchase(existing, event, plan):
            if existing.status == STATUS_CANCELLED:
                logger.info(
                    "Subscription %s already cancelled, ignoring %s",
                    existing.subscription_ref,
                    event.id,
                )
                return None
            if event.plan not in PAID_PLANS:
                plan = existing.plan
            started_at = existing.started_at
            if status is None:
                status = existing.status
                ends_at = event.cancel_at or existing.ends_at or _term_end(plan, started_at)
            else:
                ends_at = event.cancel_at or _term_end(plan, started_at)
        else:
            started_at = self._clock()
            status = status or STATUS_ACTIVE
            ends_at = event.cancel_at or _term_end(plan, started_at)

        values: dict[str, Any] = {
            "plan": plan,
            "status": status,
            "started_at": started_at,
            "ends_at": ends_at,
        }
        if event.customer_ref:
            values["customer_ref"] = event.customer_ref
        if event.subscription_ref:
            values["subscription_ref"] = event.subscription_ref
        return values

    async def _upsert_purchase(
        self, user_id: uuid.UUID, event: BillingEvent, status: str | None
    ) -> Subscription:
        """Upsert the user's row for a purchase, keeping started_at on re-delivery."""
        existing = await current_subscription(self._store, user_id)
        values = self._purchase_values(existing, event, status)
        if values is None:
            return existing
        return await self._store.upsert_for_user(user_id, **values)


def _same_purchase(existing: Subscription, event: BillingEvent, plan: str) -> bool:
    # A free-trial row only holds the customer recorded at checkout initiation
    if existing.plan not in PAID_PLANS:
        return False
    if event.subscription_ref:
        return existing.subscription_ref == event.subscription_ref
    # One-time checkout: no subscription ID to compare
    return (
        existing.customer_ref == event.customer_ref
        and existing.plan == plan
        and existing.status == STATUS_ACTIVE
    )
