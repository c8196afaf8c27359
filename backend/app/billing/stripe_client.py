"""Async Stripe API wrapper for TaxMate."""

import logging

import stripe
from stripe import StripeClient

logger = logging.getLogger(__name__)


class BillingClient:
    """Thin async wrapper around ``StripeClient`` for the calls TaxMate makes.

    Built once per process by the application lifespan and handed to routers
    through ``app.api.deps.get_billing_client``.
    """

    def __init__(self, secret_key: str, client: StripeClient | None = None) -> None:
        self._client = client or StripeClient(
            secret_key,
            http_client=stripe.HTTPXClient(),
        )

    async def create_customer(self, email: str, user_id: str) -> stripe.Customer:
        """Create a Stripe customer linked to a Supabase user."""
        logger.info("Creating Stripe customer for user %s (%s)", user_id, email)
        customer = await self._client.v1.customers.create_async(
            params={
                "email": email,
                "metadata": {"supabase_user_id": user_id},
            }
        )
        logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
        return customer

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
    ) -> stripe.checkout.Session:
        """Create a subscription-mode Checkout Session.

        ``metadata`` is attached to both the session and the subscription it
        creates, so every lifecycle event can be correlated with the user.
        """
        logger.info(
            "Creating checkout session for customer %s, price %s",
            customer_id,
            price_id,
        )
        return await self._client.v1.checkout.sessions.create_async(
            params={
                "mode": "subscription",
                "customer": customer_id,
                "payment_method_types": ["card"],
                "line_items": [{"price": price_id, "quantity": 1}],
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata,
                "subscription_data": {"metadata": metadata},
            }
        )
