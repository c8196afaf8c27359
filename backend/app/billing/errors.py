"""Billing error taxonomy.

Routers and the reconciler branch on these classes only; provider- or
driver-specific errors are translated at the boundary that raises them.
"""


class BillingError(Exception):
    """Base class for all billing errors."""


# --- Webhook verification ---


class WebhookSetupError(BillingError):
    """The request or the server is not set up for verification at all."""


class MissingWebhookSecret(WebhookSetupError):
    """No webhook signing secret is configured on the server."""


class MissingSignatureHeader(WebhookSetupError):
    """The inbound request carries no signature header."""


class InvalidSignature(BillingError):
    """The signature does not match the payload, or the payload is malformed."""


# --- Subscription store ---


class StoreError(BillingError):
    """Base class for errors raised by the subscription store."""


class SubscriptionNotFound(StoreError):
    """No subscription row matches the lookup key.

    For webhook events this is usually a race with a sibling event that has
    not been persisted yet, not a failure.
    """

    def __init__(self, key: str, value: object) -> None:
        super().__init__(f"No subscription with {key}={value}")
        self.key = key
        self.value = value


class StoreFailure(StoreError):
    """The backing database failed to serve a request."""


class StoreWriteFailure(StoreFailure):
    """The backing database rejected or failed a write."""
