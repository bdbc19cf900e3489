"""Payment webhook reconciliation.

Each settlement reference moves through PROCESSING to SETTLED or FAILED.
The PROCESSING claim is taken before anything else is written, so a
redelivered or concurrently delivered event can never create a second
subscription or credit the owner twice. A FAILED reference is retried only
when the provider redelivers it. A PROCESSING claim whose holder died is
taken over by a redelivery once the claim lease runs out, and the worker
releases such claims as FAILED for operator review.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modelpass.core.config import settings
from modelpass.core.errors import (
    BillingError,
    ConflictingEntitlement,
    InternalError,
    MalformedMetadata,
    ProviderError,
)
from modelpass.models.earnings import CreditSource
from modelpass.models.plan import Plan
from modelpass.models.resource import Resource
from modelpass.models.settled_payment import SettledPaymentRecord, SettlementState
from modelpass.models.shared import ensure_utc, utc_now
from modelpass.models.subscription import Subscription, SubscriptionStatus
from modelpass.repositories.earnings_repository import EarningsRepository
from modelpass.repositories.plan_repository import PlanRepository
from modelpass.repositories.resource_repository import ResourceRepository
from modelpass.repositories.settled_payment_repository import (
    SettledPaymentRepository,
    stale_claim_cutoff,
)
from modelpass.repositories.subscription_repository import SubscriptionRepository
from modelpass.schemas.subscription import SubscriptionCreate
from modelpass.schemas.webhook import (
    PaymentEvent,
    PaymentEventKind,
    ReconcileOutcome,
    ReconcileResponse,
)
from modelpass.services.audit_service import AuditService
from modelpass.services.billing_metadata import BillingMetadata, parse_metadata
from modelpass.services.payment_provider import PaymentProviderBase, SettlementStatus
from modelpass.services.pricing import parse_unit, period_end

logger = logging.getLogger(__name__)

_EARNINGS_QUANTUM = Decimal("0.00001")


class _Applied:
    """What the per-kind handler did, for the response and the audit trail."""

    def __init__(
        self,
        subscription: Subscription | None,
        credited: Decimal = Decimal("0"),
        cancelled: bool = False,
    ):
        self.subscription = subscription
        self.credited = credited
        self.cancelled = cancelled


class ReconciliationService:
    def __init__(
        self,
        db: Session,
        provider: PaymentProviderBase | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.provider = provider
        self.sleep = sleep
        self.settled_repo = SettledPaymentRepository(db)
        self.subscription_repo = SubscriptionRepository(db)
        self.plan_repo = PlanRepository(db)
        self.resource_repo = ResourceRepository(db)
        self.earnings_repo = EarningsRepository(db)
        self.audit = AuditService(db)

    @property
    def _actor(self) -> str | None:
        return self.provider.provider_name.value if self.provider else None

    def handle_event(self, event: PaymentEvent, now: datetime | None = None) -> ReconcileResponse:
        """Apply one webhook delivery exactly once per settlement reference.

        Taxonomy failures (malformed metadata, conflicting entitlement) are
        recorded and returned with ``ok=False``. Anything unexpected releases
        the claim as FAILED and raises InternalError so the delivery can be
        retried by the provider.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        ref = event.settlement_ref
        kind = event.event_kind.value

        record, claimed = self.settled_repo.claim(ref, kind, event.amount, event.currency)
        if not claimed or record is None:
            return self._not_claimed(event, record)

        if event.pending and not self._await_settlement(ref):
            self.settled_repo.mark_failed(ref, "deferred", "Payment has not settled yet")
            self.audit.log_settlement(
                ref, "deferred", kind, {"reason": "settlement pending"}, actor_id=self._actor
            )
            logger.info("Deferred %s delivery %s: settlement still pending", kind, ref)
            return ReconcileResponse(
                ok=False,
                outcome=ReconcileOutcome.DEFERRED,
                settlement_ref=ref,
                error="settlement_pending",
            )

        try:
            applied = self._apply(event, record, now)
        except BillingError as exc:
            self.db.rollback()
            self.settled_repo.mark_failed(ref, exc.code, exc.message)
            self.audit.log_settlement(
                ref,
                "failed",
                kind,
                {"error": exc.code, "message": exc.message},
                actor_id=self._actor,
            )
            logger.warning("Reconciliation of %s %s failed: %s", kind, ref, exc.message)
            return ReconcileResponse(
                ok=False,
                outcome=ReconcileOutcome.FAILED,
                settlement_ref=ref,
                error=exc.code,
            )
        except Exception as exc:
            self.db.rollback()
            logger.exception("Unexpected error reconciling %s %s", kind, ref)
            self.settled_repo.mark_failed(ref, InternalError.code, str(exc))
            self.audit.log_settlement(
                ref, "failed", kind, {"error": InternalError.code}, actor_id=self._actor
            )
            raise InternalError(f"Reconciliation of {ref} failed") from exc

        subscription_id = applied.subscription.id if applied.subscription is not None else None
        outcome: dict[str, Any] = {
            "subscription_id": str(subscription_id) if subscription_id else None,
            "credited": str(applied.credited),
        }
        self.audit.log_settlement(ref, "settled", kind, outcome, actor_id=self._actor)
        if applied.cancelled and applied.subscription is not None:
            self.audit.log_status_change(
                "subscription",
                str(subscription_id),
                SubscriptionStatus.ACTIVE.value,
                SubscriptionStatus.CANCELLED.value,
                actor_type="payment_provider",
                actor_id=self._actor,
            )
        logger.info("Settled %s %s -> subscription %s", kind, ref, subscription_id)
        return ReconcileResponse(
            ok=True,
            outcome=ReconcileOutcome.SETTLED,
            settlement_ref=ref,
            subscription_id=subscription_id,  # type: ignore[arg-type]
        )

    def release_stale_claims(self, now: datetime | None = None) -> int:
        """Mark PROCESSING claims older than the lease as FAILED.

        A delivery that died between taking the claim and settling it leaves
        the row behind; releasing it lets the next redelivery reconcile the
        payment and records the gap in the audit trail.
        """
        stale = self.settled_repo.get_by_state(
            SettlementState.PROCESSING, updated_before=stale_claim_cutoff(now)
        )
        for record in stale:
            ref = str(record.settlement_ref)
            self.settled_repo.mark_failed(
                ref, "stale_claim", "Claim expired before reconciliation finished"
            )
            self.audit.log_settlement(
                ref,
                "failed",
                str(record.event_kind),
                {"error": "stale_claim"},
                actor_type="system",
            )
            logger.warning("Released stale claim on %s", ref)
        return len(stale)

    def _not_claimed(
        self, event: PaymentEvent, record: SettledPaymentRecord | None
    ) -> ReconcileResponse:
        ref = event.settlement_ref
        kind = event.event_kind.value
        if record is not None and record.state == SettlementState.SETTLED.value:
            self.audit.log_settlement(
                ref,
                "duplicate",
                kind,
                {"subscription_id": str(record.subscription_id) if record.subscription_id else None},
                actor_id=self._actor,
            )
            logger.info("Duplicate delivery of %s ignored", ref)
            return ReconcileResponse(
                ok=True,
                outcome=ReconcileOutcome.DUPLICATE,
                settlement_ref=ref,
                subscription_id=record.subscription_id,  # type: ignore[arg-type]
            )

        self.audit.log_settlement(ref, "in_progress", kind, {}, actor_id=self._actor)
        return ReconcileResponse(
            ok=False,
            outcome=ReconcileOutcome.IN_PROGRESS,
            settlement_ref=ref,
            error="in_progress",
        )

    def _await_settlement(self, settlement_ref: str) -> bool:
        """Poll the provider a bounded number of times for a pending payment."""
        if self.provider is None:
            return False
        for attempt in range(settings.SETTLEMENT_POLL_ATTEMPTS):
            try:
                status = self.provider.get_settlement_status(settlement_ref)
            except ProviderError as exc:
                logger.warning("Settlement status check for %s failed: %s", settlement_ref, exc)
                return False
            if status == SettlementStatus.SETTLED:
                return True
            if status == SettlementStatus.FAILED:
                return False
            if attempt + 1 < settings.SETTLEMENT_POLL_ATTEMPTS:
                self.sleep(settings.SETTLEMENT_POLL_INTERVAL_SECONDS)
        return False

    def _resolve(self, event: PaymentEvent) -> tuple[BillingMetadata, Plan, Resource]:
        metadata = parse_metadata(event.metadata, event.paylink_id)
        resource = self.resource_repo.get_by_id(metadata.resource_id)
        if resource is None:
            raise MalformedMetadata(f"Unknown resource {metadata.resource_id}")
        plan = self.plan_repo.get_by_id(metadata.plan_id)
        if plan is None or str(plan.resource_id) != metadata.resource_id:
            raise MalformedMetadata(
                f"Plan {metadata.plan_id} does not belong to resource {metadata.resource_id}"
            )
        return metadata, plan, resource

    def _apply(
        self, event: PaymentEvent, record: SettledPaymentRecord, now: datetime
    ) -> _Applied:
        metadata, plan, resource = self._resolve(event)
        kind = event.event_kind

        if kind == PaymentEventKind.ENDED:
            applied = self._end(metadata)
        else:
            # The ledger row must exist before the transaction that credits it.
            self.earnings_repo.ensure_ledger(str(resource.owner_id))
            if kind == PaymentEventKind.RENEWED:
                subscription = self._renew(event, metadata, plan, now)
            else:
                if kind == PaymentEventKind.CREATED:
                    unit = metadata.unit or parse_unit(str(plan.period_unit))
                    end = period_end(now, unit)
                else:
                    end = now + timedelta(days=settings.RECURRING_CYCLE_DAYS)
                subscription = self._create(event, metadata, plan, now, end)
            credited = self._credit(event, resource)
            applied = _Applied(subscription, credited=credited)

        subscription_id = applied.subscription.id if applied.subscription is not None else None
        self.settled_repo.mark_settled(record, subscription_id, commit=False)  # type: ignore[arg-type]
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictingEntitlement(
                f"Concurrent entitlement for {metadata.caller_id} on {metadata.resource_id}"
            ) from exc
        return applied

    def _create(
        self,
        event: PaymentEvent,
        metadata: BillingMetadata,
        plan: Plan,
        now: datetime,
        end: datetime,
    ) -> Subscription:
        existing = self.subscription_repo.get_active(metadata.caller_id, metadata.resource_id, now)
        if existing is not None and existing.settlement_ref != event.settlement_ref:
            raise ConflictingEntitlement(
                f"Caller {metadata.caller_id} already holds subscription {existing.id} "
                f"on {metadata.resource_id}"
            )
        try:
            return self.subscription_repo.create(
                SubscriptionCreate(
                    caller_id=metadata.caller_id,
                    resource_id=metadata.resource_id,
                    plan_id=str(plan.id),
                    period_start=now,
                    period_end=end,
                    settlement_ref=event.settlement_ref,
                    payment_method=self._actor,
                ),
                commit=False,
            )
        except IntegrityError as exc:
            raise ConflictingEntitlement(
                f"Concurrent entitlement for {metadata.caller_id} on {metadata.resource_id}"
            ) from exc

    def _renew(
        self, event: PaymentEvent, metadata: BillingMetadata, plan: Plan, now: datetime
    ) -> Subscription:
        cycle = timedelta(days=settings.RECURRING_CYCLE_DAYS)
        current = self.subscription_repo.get_active_row(metadata.caller_id, metadata.resource_id)
        if current is None:
            # Already expired by the lifecycle job: the renewal starts a fresh cycle.
            return self._create(event, metadata, plan, now, now + cycle)
        base = max(ensure_utc(current.period_end), now)  # type: ignore[arg-type]
        return self.subscription_repo.extend(current, base + cycle, commit=False)

    def _end(self, metadata: BillingMetadata) -> _Applied:
        current = self.subscription_repo.get_active_row(metadata.caller_id, metadata.resource_id)
        if current is None:
            return _Applied(None)
        self.subscription_repo.transition(current, SubscriptionStatus.CANCELLED, commit=False)
        return _Applied(current, cancelled=True)

    def _credit(self, event: PaymentEvent, resource: Resource) -> Decimal:
        if event.amount <= 0:
            return Decimal("0")
        share = (event.amount * settings.REVENUE_SHARE_FRACTION).quantize(
            _EARNINGS_QUANTUM, rounding=ROUND_HALF_UP
        )
        self.earnings_repo.credit(
            owner_id=str(resource.owner_id),
            resource_id=str(resource.id),
            source=CreditSource.PAYMENT,
            gross_amount=event.amount,
            amount=share,
            currency=event.currency,
            settlement_ref=event.settlement_ref,
            commit=False,
        )
        return share
