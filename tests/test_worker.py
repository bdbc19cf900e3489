"""Tests for the arq worker jobs."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from modelpass.core import database as db_module
from modelpass.models.earnings import CreditSource
from modelpass.models.settled_payment import SettlementState
from modelpass.models.shared import utc_now
from modelpass.models.subscription import Subscription, SubscriptionStatus
from modelpass.repositories.earnings_repository import EarningsRepository
from modelpass.repositories.settled_payment_repository import SettledPaymentRepository
from modelpass.repositories.subscription_repository import SubscriptionRepository
from modelpass.schemas.subscription import SubscriptionCreate
from modelpass.worker import (
    WorkerSettings,
    expire_subscriptions_task,
    release_stale_claims_task,
    reset_period_earnings_task,
)


class TestWorker:
    def test_worker_settings(self):
        names = {f.__name__ for f in WorkerSettings.functions}
        assert names == {
            "expire_subscriptions_task",
            "reset_period_earnings_task",
            "release_stale_claims_task",
        }
        assert len(WorkerSettings.cron_jobs) == 3

    @pytest.mark.asyncio
    async def test_expire_subscriptions_task(self, db_session, day_plan):
        now = utc_now()
        repo = SubscriptionRepository(db_session)
        repo.create(
            SubscriptionCreate(
                caller_id="u1",
                resource_id="m1",
                plan_id="p1",
                period_start=now - timedelta(days=2),
                period_end=now - timedelta(days=1),
            )
        )
        repo.create(
            SubscriptionCreate(
                caller_id="u2",
                resource_id="m1",
                plan_id="p1",
                period_start=now,
                period_end=now + timedelta(days=1),
            )
        )

        with patch("modelpass.worker.SessionLocal", db_module.SessionLocal):
            count = await expire_subscriptions_task({})

        assert count == 1
        db_session.expire_all()
        lapsed = db_session.query(Subscription).filter(Subscription.caller_id == "u1").one()
        assert lapsed.status == SubscriptionStatus.EXPIRED.value

    @pytest.mark.asyncio
    async def test_expire_subscriptions_task_nothing_to_do(self):
        with patch("modelpass.worker.SessionLocal", db_module.SessionLocal):
            assert await expire_subscriptions_task({}) == 0

    @pytest.mark.asyncio
    async def test_reset_period_earnings_task(self, db_session):
        repo = EarningsRepository(db_session)
        repo.ensure_ledger("owner-1")
        repo.credit(
            owner_id="owner-1",
            resource_id="m1",
            source=CreditSource.PAYMENT,
            gross_amount=Decimal("10"),
            amount=Decimal("8"),
            settlement_ref="s1",
        )

        with patch("modelpass.worker.SessionLocal", db_module.SessionLocal):
            count = await reset_period_earnings_task({})

        assert count == 1
        db_session.expire_all()
        ledger = repo.get_ledger("owner-1")
        assert ledger.current_period_earnings == Decimal("0")
        assert ledger.lifetime_earnings == Decimal("8")

    @pytest.mark.asyncio
    async def test_release_stale_claims_task(self, db_session, age_claim):
        repo = SettledPaymentRepository(db_session)
        repo.claim("abc123", "CREATED")
        age_claim("abc123")

        with patch("modelpass.worker.SessionLocal", db_module.SessionLocal):
            count = await release_stale_claims_task({})

        assert count == 1
        db_session.expire_all()
        assert repo.get("abc123").state == SettlementState.FAILED.value
