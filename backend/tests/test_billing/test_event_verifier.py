"""Tests for webhook signature verification and event parsing."""

import json
import time
import uuid
from datetime import datetime

import pytest

from app.billing.errors import (
    InvalidSignature,
    MissingSignatureHeader,
    MissingWebhookSecret,
    WebhookSetupError,
)
from app.billing.events import EventKind, _ts_to_naive, verify_event
from app.billing.plans import build_plans

SECRET = "whsec_verifier_test"


def _checkout_object(user_id: str | None = None, plan_type: str | None = "solo") -> dict:
    metadata = {}
    if user_id is not None:
        metadata["user_id"] = user_id
    if plan_type is not None:
        metadata["plan_type"] = plan_type
    return {
        "id": "cs_test_123",
        "object": "checkout.session",
        "customer": "cus_test_123",
        "subscription": "sub_test_123",
        "metadata": metadata,
    }


class TestHelpers:
    def test_ts_to_naive_with_value(self):
        result = _ts_to_naive(1700000000)
        assert result == datetime(2023, 11, 14, 22, 13, 20)
        assert result.tzinfo is None

    def test_ts_to_naive_with_none(self):
        assert _ts_to_naive(None) is None


class TestVerification:
    """Signature checks run on the exact raw bytes."""

    def test_valid_signature_returns_typed_event(self, event_payload, sign, plans):
        user_id = uuid.uuid4()
        payload = event_payload(
            "checkout.session.completed",
            _checkout_object(str(user_id), "seasonal"),
            event_id="evt_checkout_1",
        )

        event = verify_event(payload, sign(payload, SECRET), SECRET, plans)

        assert event.id == "evt_checkout_1"
        assert event.kind is EventKind.CHECKOUT_COMPLETED
        assert event.user_id == user_id
        assert event.plan == "seasonal"
        assert event.customer_ref == "cus_test_123"
        assert event.subscription_ref == "sub_test_123"
        assert event.provider_status is None

    def test_missing_signature_header(self, event_payload, plans):
        payload = event_payload("checkout.session.completed", _checkout_object())
        with pytest.raises(MissingSignatureHeader):
            verify_event(payload, None, SECRET, plans)

    def test_empty_signature_header(self, event_payload, plans):
        payload = event_payload("checkout.session.completed", _checkout_object())
        with pytest.raises(MissingSignatureHeader):
            verify_event(payload, "", SECRET, plans)

    def test_missing_secret(self, event_payload, sign, plans):
        payload = event_payload("checkout.session.completed", _checkout_object())
        with pytest.raises(MissingWebhookSecret):
            verify_event(payload, sign(payload, SECRET), "", plans)

    def test_setup_errors_are_distinct_from_invalid_signature(self):
        assert issubclass(MissingSignatureHeader, WebhookSetupError)
        assert issubclass(MissingWebhookSecret, WebhookSetupError)
        assert not issubclass(InvalidSignature, WebhookSetupError)

    def test_wrong_secret(self, event_payload, sign, plans):
        payload = event_payload("checkout.session.completed", _checkout_object())
        with pytest.raises(InvalidSignature):
            verify_event(payload, sign(payload, "whsec_someone_else"), SECRET, plans)

    def test_reserialized_body_fails(self, event_payload, sign, plans):
        """Compact re-serialization changes the bytes, so the signature no longer matches."""
        payload = event_payload("checkout.session.completed", _checkout_object())
        header = sign(payload, SECRET)
        reserialized = json.dumps(json.loads(payload), separators=(",", ":")).encode("utf-8")

        with pytest.raises(InvalidSignature):
            verify_event(reserialized, header, SECRET, plans)

    def test_stale_timestamp_fails(self, event_payload, sign, plans):
        payload = event_payload("checkout.session.completed", _checkout_object())
        header = sign(payload, SECRET, timestamp=int(time.time()) - 3600)
        with pytest.raises(InvalidSignature):
            verify_event(payload, header, SECRET, plans)

    def test_garbage_header_fails(self, event_payload, plans):
        payload = event_payload("checkout.session.completed", _checkout_object())
        with pytest.raises(InvalidSignature):
            verify_event(payload, "t=12345,v1=invalid_signature", SECRET, plans)

    def test_signed_non_json_body_fails(self, sign, plans):
        payload = b"not json at all"
        with pytest.raises(InvalidSignature):
            verify_event(payload, sign(payload, SECRET), SECRET, plans)


class TestParsing:
    """Stripe payloads are reduced to BillingEvent fields."""

    def test_subscription_event_fields(self, event_payload, sign, plans):
        payload = event_payload(
            "customer.subscription.updated",
            {
                "id": "sub_abc",
                "object": "subscription",
                "customer": "cus_abc",
                "status": "past_due",
                "cancel_at": 1700000000,
                "metadata": {},
            },
        )

        event = verify_event(payload, sign(payload, SECRET), SECRET, plans)

        assert event.kind is EventKind.SUBSCRIPTION_UPDATED
        assert event.subscription_ref == "sub_abc"
        assert event.customer_ref == "cus_abc"
        assert event.provider_status == "past_due"
        assert event.cancel_at == datetime(2023, 11, 14, 22, 13, 20)
        assert event.user_id is None
        assert event.plan is None

    @pytest.mark.parametrize(
        ("price_id", "expected"),
        [
            ("price_seasonal_test", "seasonal"),
            ("price_solo_test", "solo"),
            ("price_retired", None),
        ],
    )
    def test_plan_falls_back_to_price_lookup(
        self, event_payload, sign, plans, price_id, expected
    ):
        payload = event_payload(
            "customer.subscription.created",
            {
                "id": "sub_priced",
                "object": "subscription",
                "customer": "cus_priced",
                "status": "active",
                "metadata": {},
                "items": {
                    "object": "list",
                    "data": [{"id": "si_1", "price": {"id": price_id}}],
                },
            },
        )

        event = verify_event(payload, sign(payload, SECRET), SECRET, plans)

        assert event.plan == expected

    def test_price_lookup_uses_given_catalog(self, event_payload, sign, test_settings):
        other = build_plans(
            test_settings.model_copy(update={"stripe_seasonal_price_id": "price_seasonal_v2"})
        )
        payload = event_payload(
            "customer.subscription.updated",
            {
                "id": "sub_v2",
                "object": "subscription",
                "customer": "cus_v2",
                "status": "active",
                "metadata": {},
                "items": {
                    "object": "list",
                    "data": [{"id": "si_1", "price": {"id": "price_seasonal_v2"}}],
                },
            },
        )

        event = verify_event(payload, sign(payload, SECRET), SECRET, other)

        assert event.plan == "seasonal"

    def test_metadata_plan_wins_over_price(self, event_payload, sign, plans):
        payload = event_payload(
            "customer.subscription.created",
            {
                "id": "sub_meta",
                "object": "subscription",
                "customer": "cus_meta",
                "status": "active",
                "metadata": {"plan_type": "solo"},
                "items": {
                    "object": "list",
                    "data": [{"id": "si_1", "price": {"id": "price_seasonal_test"}}],
                },
            },
        )

        event = verify_event(payload, sign(payload, SECRET), SECRET, plans)
        assert event.plan == "solo"

    def test_unrecognized_event_type(self, event_payload, sign, plans):
        payload = event_payload("invoice.paid", {"id": "in_123", "object": "invoice"})

        event = verify_event(payload, sign(payload, SECRET), SECRET, plans)

        assert event.kind is None
        assert event.type == "invoice.paid"
        assert event.subscription_ref is None

    def test_malformed_user_id_is_dropped(self, event_payload, sign, plans):
        payload = event_payload(
            "checkout.session.completed",
            _checkout_object(user_id="not-a-uuid"),
        )

        event = verify_event(payload, sign(payload, SECRET), SECRET, plans)

        assert event.user_id is None
        assert event.customer_ref == "cus_test_123"
