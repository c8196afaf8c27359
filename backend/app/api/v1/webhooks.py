"""Stripe webhook endpoint — receives and reconciles Stripe events."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.api.deps import get_reconciler
from app.billing.errors import InvalidSignature, MissingSignatureHeader, MissingWebhookSecret
from app.billing.events import verify_event
from app.billing.plans import build_plans
from app.billing.reconciler import Reconciler
from app.config import Settings, get_settings
from app.schemas.billing import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    config: Settings = Depends(get_settings),
    reconciler: Reconciler = Depends(get_reconciler),
) -> WebhookAck:
    """Receive and process Stripe webhook events.

    Answers 200 once the signature checks out, even if some updates failed
    internally; failures are logged for manual reconciliation so Stripe does
    not keep redelivering.
    """
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    # 2. Verify signature
    try:
        event = verify_event(
            payload,
            sig_header,
            config.stripe_webhook_secret,
            build_plans(config),
        )
    except MissingSignatureHeader as e:
        logger.warning("Webhook rejected: missing stripe-signature header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing signature",
        ) from e
    except MissingWebhookSecret as e:
        logger.error("Webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        ) from e
    except InvalidSignature as e:
        logger.warning("Webhook signature verification failed (%d bytes): %s", len(payload), e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    # 3. Reconcile; store failures are absorbed and logged by the reconciler
    try:
        await reconciler.reconcile([event])
    except Exception as e:
        logger.exception("Error processing webhook event %s", event.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from e

    return WebhookAck(received=True)
