"""Stripe webhook verification and typed billing events."""

import json
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import stripe

from app.billing.errors import (
    InvalidSignature,
    MissingSignatureHeader,
    MissingWebhookSecret,
)
from app.billing.plans import Plan, get_plan_by_price_id

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Stripe event types the reconciler acts on."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


@dataclass(frozen=True)
class BillingEvent:
    """A verified Stripe event reduced to the fields reconciliation needs."""

    id: str
    type: str
    kind: EventKind | None = None
    user_id: uuid.UUID | None = None
    plan: str | None = None
    customer_ref: str | None = None
    subscription_ref: str | None = None
    provider_status: str | None = None
    cancel_at: datetime | None = None
    created: datetime | None = None


def _ts_to_naive(ts: int | None) -> datetime | None:
    """Convert Stripe Unix timestamp to naive UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)


def _parse_user_id(value: Any) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        logger.warning("Ignoring malformed user_id in event metadata: %r", value)
        return None


def _get_first_item(obj: Any) -> Any:
    """Get the first subscription item, using bracket notation to avoid
    collision with Python dict .items() on Stripe objects.
    """
    if "items" not in obj:
        return None
    sub_items = obj["items"]
    if sub_items and sub_items.get("data"):
        return sub_items["data"][0]
    return None


def _plan_from_items(obj: Any, plans: Mapping[str, Plan]) -> str | None:
    item = _get_first_item(obj)
    if not item or not item.get("price"):
        return None
    return get_plan_by_price_id(plans, item["price"]["id"])


def parse_event(event: Any, plans: Mapping[str, Plan]) -> BillingEvent:
    """Reduce a Stripe event (or any event-shaped mapping) to a BillingEvent.

    ``plans`` resolves the plan from the subscription price when the metadata
    carries no ``plan_type``.
    """
    event_type = event["type"]
    try:
        kind = EventKind(event_type)
    except ValueError:
        kind = None

    obj = event["data"]["object"]
    metadata = obj.get("metadata") or {}

    if kind is EventKind.CHECKOUT_COMPLETED:
        subscription_ref = obj.get("subscription")
        provider_status = None
        plan = metadata.get("plan_type")
    else:
        # Subscription objects carry their own id
        subscription_ref = obj.get("id") if kind is not None else None
        provider_status = obj.get("status")
        plan = metadata.get("plan_type")
        if not plan and kind is not None:
            plan = _plan_from_items(obj, plans)

    return BillingEvent(
        id=event["id"],
        type=event_type,
        kind=kind,
        user_id=_parse_user_id(metadata.get("user_id")),
        plan=plan or None,
        customer_ref=obj.get("customer"),
        subscription_ref=subscription_ref,
        provider_status=provider_status,
        cancel_at=_ts_to_naive(obj.get("cancel_at")),
        created=_ts_to_naive(event.get("created")),
    )


def verify_event(
    payload: bytes,
    sig_header: str | None,
    secret: str | None,
    plans: Mapping[str, Plan],
    tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
) -> BillingEvent:
    """Verify a raw webhook body against its signature and parse it.

    ``payload`` must be the exact bytes received; re-serialized JSON does not
    verify.

    Raises:
        MissingSignatureHeader: No ``stripe-signature`` header was sent.
        MissingWebhookSecret: No signing secret is configured.
        InvalidSignature: The signature does not match, or the body is not JSON.
    """
    if not sig_header:
        raise MissingSignatureHeader("Missing stripe-signature header")
    if not secret:
        raise MissingWebhookSecret("Webhook secret not configured")

    try:
        stripe.Webhook.construct_event(payload, sig_header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        raise InvalidSignature(str(e)) from e
    except ValueError as e:
        raise InvalidSignature(f"Invalid payload: {e}") from e

    # parse_event reads plain mappings
    return parse_event(json.loads(payload), plans)
