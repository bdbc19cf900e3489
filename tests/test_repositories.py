"""Tests for repository-level invariants."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from modelpass.models.earnings import CreditSource
from modelpass.models.settled_payment import SettlementState
from modelpass.models.subscription import Subscription, SubscriptionStatus
from modelpass.repositories.earnings_repository import EarningsRepository
from modelpass.repositories.plan_repository import PlanRepository
from modelpass.repositories.settled_payment_repository import (
    SettledPaymentRepository,
    stale_claim_cutoff,
)
from modelpass.repositories.subscription_repository import SubscriptionRepository
from modelpass.repositories.usage_event_repository import UsageEventRepository
from modelpass.schemas.subscription import SubscriptionCreate

NOW = datetime(2026, 5, 20, 12, 0, 0, tzinfo=UTC)


def _create(repo, start=None, end=None, caller_id="u1", settlement_ref=None):
    return repo.create(
        SubscriptionCreate(
            caller_id=caller_id,
            resource_id="m1",
            plan_id="p1",
            period_start=start or NOW,
            period_end=end or NOW + timedelta(days=1),
            settlement_ref=settlement_ref,
        )
    )


class TestSubscriptionRepository:
    def test_one_active_subscription_per_pair(self, db_session, day_plan):
        repo = SubscriptionRepository(db_session)
        _create(repo)
        with pytest.raises(IntegrityError):
            _create(repo, start=NOW + timedelta(minutes=5))
        db_session.rollback()
        assert db_session.query(Subscription).count() == 1

    def test_other_callers_are_independent(self, db_session, day_plan):
        repo = SubscriptionRepository(db_session)
        _create(repo, caller_id="u1")
        _create(repo, caller_id="u2")
        assert db_session.query(Subscription).count() == 2

    def test_cancelled_rows_do_not_block(self, db_session, day_plan):
        repo = SubscriptionRepository(db_session)
        first = _create(repo)
        repo.transition(first, SubscriptionStatus.CANCELLED)
        second = _create(repo)
        assert second.status == SubscriptionStatus.ACTIVE.value

    def test_create_expires_lapsed_row(self, db_session, day_plan):
        repo = SubscriptionRepository(db_session)
        old = _create(repo, start=NOW - timedelta(days=2), end=NOW - timedelta(days=1))
        _create(repo)
        db_session.refresh(old)
        assert old.status == SubscriptionStatus.EXPIRED.value

    def test_period_must_be_positive(self, db_session, day_plan):
        with pytest.raises(ValueError, match="period_end"):
            _create(SubscriptionRepository(db_session), end=NOW)

    def test_get_active_ignores_lapsed(self, db_session, day_plan):
        repo = SubscriptionRepository(db_session)
        _create(repo, start=NOW - timedelta(days=1), end=NOW)
        assert repo.get_active("u1", "m1", NOW) is None
        assert repo.get_active_row("u1", "m1") is not None

    def test_transitions_only_move_forward(self, db_session, day_plan):
        repo = SubscriptionRepository(db_session)
        subscription = _create(repo)
        repo.transition(subscription, SubscriptionStatus.EXPIRED)
        with pytest.raises(ValueError, match="cannot move"):
            repo.transition(subscription, SubscriptionStatus.ACTIVE)
        with pytest.raises(ValueError):
            repo.transition(subscription, SubscriptionStatus.CANCELLED)

    def test_cancel_sets_canceled_at(self, db_session, day_plan):
        repo = SubscriptionRepository(db_session)
        subscription = repo.transition(_create(repo), SubscriptionStatus.CANCELLED)
        assert subscription.canceled_at is not None

    def test_effective_status(self, db_session, day_plan):
        subscription = _create(SubscriptionRepository(db_session))
        assert subscription.effective_status(NOW) == SubscriptionStatus.ACTIVE.value
        assert subscription.effective_status(NOW + timedelta(days=1)) == (
            SubscriptionStatus.EXPIRED.value
        )

    def test_expire_lapsed(self, db_session, day_plan):
        repo = SubscriptionRepository(db_session)
        _create(repo, caller_id="u1", start=NOW - timedelta(days=2), end=NOW - timedelta(days=1))
        _create(repo, caller_id="u2")

        assert repo.expire_lapsed(NOW) == 1
        statuses = {s.caller_id: s.status for s in db_session.query(Subscription).all()}
        assert statuses == {
            "u1": SubscriptionStatus.EXPIRED.value,
            "u2": SubscriptionStatus.ACTIVE.value,
        }
        assert repo.expire_lapsed(NOW) == 0

    def test_settlement_ref_is_unique(self, db_session, day_plan):
        repo = SubscriptionRepository(db_session)
        _create(repo, caller_id="u1", settlement_ref="abc123")
        with pytest.raises(IntegrityError):
            _create(repo, caller_id="u2", settlement_ref="abc123")
        db_session.rollback()


class TestPlanRepository:
    def test_create_version_leaves_original(self, db_session, day_plan):
        repo = PlanRepository(db_session)
        new = repo.create_version("p1", base_price=Decimal("12"))

        assert new.id != "p1"
        assert new.version == 2
        assert new.base_price == Decimal("12")
        assert new.period_unit == "day"
        original = repo.get_by_id("p1")
        assert original.version == 1
        assert original.base_price == Decimal("8")
        assert len(repo.get_by_resource_id("m1")) == 2

    def test_create_version_of_unknown_plan(self, db_session):
        assert PlanRepository(db_session).create_version("missing") is None


class TestEarningsRepository:
    def _credit(self, repo, **kwargs):
        defaults = {
            "owner_id": "owner-1",
            "resource_id": "m1",
            "source": CreditSource.PAYMENT,
            "gross_amount": Decimal("10"),
            "amount": Decimal("8"),
        }
        defaults.update(kwargs)
        return repo.credit(**defaults)

    def test_ensure_ledger_is_idempotent(self, db_session):
        repo = EarningsRepository(db_session)
        repo.ensure_ledger("owner-1")
        repo.ensure_ledger("owner-1")
        ledger = repo.get_ledger("owner-1")
        assert ledger.lifetime_earnings == Decimal("0")

    def test_credit_increments_totals(self, db_session):
        repo = EarningsRepository(db_session)
        repo.ensure_ledger("owner-1")
        self._credit(repo, settlement_ref="s1")
        self._credit(repo, settlement_ref="s2", amount=Decimal("1.5"))

        db_session.expire_all()
        ledger = repo.get_ledger("owner-1")
        assert ledger.lifetime_earnings == Decimal("9.5")
        assert ledger.current_period_earnings == Decimal("9.5")
        assert len(repo.get_credits("owner-1")) == 2

    def test_credit_without_ledger(self, db_session):
        # rejected by the foreign key when SQLite enforces it, else by the update
        with pytest.raises((LookupError, IntegrityError)):
            self._credit(EarningsRepository(db_session), settlement_ref="s1")
        db_session.rollback()

    def test_second_credit_for_settlement_is_rejected(self, db_session):
        repo = EarningsRepository(db_session)
        repo.ensure_ledger("owner-1")
        self._credit(repo, settlement_ref="s1")
        with pytest.raises(IntegrityError):
            self._credit(repo, settlement_ref="s1")
        db_session.rollback()

        db_session.expire_all()
        assert repo.get_ledger("owner-1").lifetime_earnings == Decimal("8")

    def test_second_credit_for_usage_event_is_rejected(self, db_session):
        repo = EarningsRepository(db_session)
        repo.ensure_ledger("owner-1")
        event_id = uuid4()
        self._credit(repo, source=CreditSource.USAGE, usage_event_id=event_id)
        with pytest.raises(IntegrityError):
            self._credit(repo, source=CreditSource.USAGE, usage_event_id=event_id)
        db_session.rollback()

    def test_reset_current_period(self, db_session):
        repo = EarningsRepository(db_session)
        repo.ensure_ledger("owner-1")
        repo.ensure_ledger("owner-2")
        self._credit(repo, settlement_ref="s1")

        assert repo.reset_current_period() == 2
        ledger = repo.get_ledger("owner-1")
        assert ledger.current_period_earnings == Decimal("0")
        assert ledger.lifetime_earnings == Decimal("8")


class TestSettledPaymentRepository:
    def test_first_claim_wins(self, db_session):
        repo = SettledPaymentRepository(db_session)
        record, claimed = repo.claim("abc123", "CREATED", Decimal("8"), "USD")
        assert claimed is True
        assert record.state == SettlementState.PROCESSING.value

        again, claimed_again = repo.claim("abc123", "CREATED")
        assert claimed_again is False
        assert again.state == SettlementState.PROCESSING.value

    def test_failed_claim_can_be_retaken(self, db_session):
        repo = SettledPaymentRepository(db_session)
        repo.claim("abc123", "CREATED")
        repo.mark_failed("abc123", "malformed_metadata", "Metadata is missing plan_id")

        record, claimed = repo.claim("abc123", "CREATED")
        assert claimed is True
        assert record.state == SettlementState.PROCESSING.value
        assert record.error_code is None

    def test_settled_claim_is_final(self, db_session):
        repo = SettledPaymentRepository(db_session)
        record, _ = repo.claim("abc123", "CREATED")
        repo.mark_settled(record, None)

        record, claimed = repo.claim("abc123", "CREATED")
        assert claimed is False
        assert record.state == SettlementState.SETTLED.value

    def test_mark_failed_unknown_ref(self, db_session):
        assert SettledPaymentRepository(db_session).mark_failed("nope", "x", "y") is None

    def test_get_by_state(self, db_session):
        repo = SettledPaymentRepository(db_session)
        repo.claim("a", "CREATED")
        repo.claim("b", "CREATED")
        repo.mark_failed("b", "deferred", "Payment has not settled yet")
        failed = repo.get_by_state(SettlementState.FAILED)
        assert [r.settlement_ref for r in failed] == ["b"]

    def test_abandoned_processing_claim_can_be_retaken(self, db_session, age_claim):
        repo = SettledPaymentRepository(db_session)
        repo.claim("abc123", "CREATED")
        age_claim("abc123")

        record, claimed = repo.claim("abc123", "RENEWED")
        assert claimed is True
        assert record.state == SettlementState.PROCESSING.value
        assert record.event_kind == "RENEWED"

        _, claimed_again = repo.claim("abc123", "RENEWED")
        assert claimed_again is False

    def test_get_by_state_updated_before(self, db_session, age_claim):
        repo = SettledPaymentRepository(db_session)
        repo.claim("old", "CREATED")
        repo.claim("fresh", "CREATED")
        age_claim("old")

        stale = repo.get_by_state(SettlementState.PROCESSING, updated_before=stale_claim_cutoff())
        assert [r.settlement_ref for r in stale] == ["old"]


class TestUsageEventRepository:
    def test_count_requests_window(self, db_session):
        repo = UsageEventRepository(db_session)
        for offset in (0, 30, 90):
            repo.create(
                caller_id="u1",
                resource_id="m1",
                timestamp=NOW - timedelta(seconds=offset),
                quantity=1,
                latency_ms=1,
                cost=Decimal("0"),
                success=True,
            )
        assert repo.count_requests("u1", "m1", NOW - timedelta(seconds=60), NOW) == 2
        assert repo.count_requests("u1", "m1", NOW - timedelta(days=1)) == 3
        assert repo.count_requests("u2", "m1", NOW - timedelta(days=1)) == 0

    def test_totals_for_caller(self, db_session):
        repo = UsageEventRepository(db_session)
        for resource_id, success in (("m1", True), ("m1", False), ("m2", True)):
            repo.create(
                caller_id="u1",
                resource_id=resource_id,
                timestamp=NOW,
                quantity=10,
                latency_ms=100,
                cost=Decimal("0.00002"),
                success=success,
            )
        overall, per_resource = repo.totals_for_caller("u1")
        assert overall.requests == 3
        assert overall.failed_requests == 1
        assert overall.quantity == 30
        assert per_resource["m1"].requests == 2
        assert per_resource["m2"].failed_requests == 0
