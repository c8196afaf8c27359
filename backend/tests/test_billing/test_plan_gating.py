"""Tests for the paid-plan gating dependencies."""

import uuid
from datetime import datetime

import pytest
from fastapi import HTTPException

from app.auth.dependencies import CurrentUser
from app.billing.dependencies import get_gate_decision, require_active_paid
from app.services.subscription_store import SubscriptionStore


async def _gate_for(store: SubscriptionStore, user_id: uuid.UUID):
    return await get_gate_decision(user=CurrentUser(id=user_id), store=store)


class TestRequireActivePaid:
    @pytest.mark.parametrize("plan", ["solo", "seasonal"])
    async def test_active_paid_passes(self, store: SubscriptionStore, user_id, plan):
        await store.upsert_for_user(
            user_id, plan=plan, status="active", started_at=datetime(2026, 1, 1)
        )

        gate = await require_active_paid(await _gate_for(store, user_id))

        assert gate.is_active_paid is True
        assert gate.plan == plan

    @pytest.mark.parametrize(
        ("plan", "status"),
        [
            ("free_trial", "active"),
            ("solo", "cancelled"),
            ("seasonal", "past_due"),
        ],
    )
    async def test_blocked_with_402(self, store: SubscriptionStore, user_id, plan, status):
        await store.upsert_for_user(
            user_id, plan=plan, status=status, started_at=datetime(2026, 1, 1)
        )

        with pytest.raises(HTTPException) as exc_info:
            await require_active_paid(await _gate_for(store, user_id))

        assert exc_info.value.status_code == 402
        assert exc_info.value.detail["plan"] == plan
        assert exc_info.value.detail["status"] == status

    async def test_no_row_blocked(self, store: SubscriptionStore, user_id):
        with pytest.raises(HTTPException) as exc_info:
            await require_active_paid(await _gate_for(store, user_id))

        assert exc_info.value.status_code == 402
        assert exc_info.value.detail["status"] == "none"
