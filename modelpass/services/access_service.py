"""Access & entitlement engine: subscription validity and quota windows.

All reads, no writes. The decision is a point-in-time admission check:
two requests racing inside the same instant can both be admitted, because
usage only lands in the ledger once metering runs after the invocation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from modelpass.core.config import settings
from modelpass.core.errors import NotEntitled, QuotaExceeded
from modelpass.models.plan import Plan
from modelpass.models.shared import ensure_utc, utc_now
from modelpass.models.subscription import Subscription
from modelpass.repositories.plan_repository import PlanRepository
from modelpass.repositories.subscription_repository import SubscriptionRepository
from modelpass.repositories.usage_event_repository import UsageEventRepository
from modelpass.schemas.access import AccessResponse, QuotaSnapshot
from modelpass.schemas.subscription import SubscriptionResponse

logger = logging.getLogger(__name__)

MINUTE_WINDOW = timedelta(seconds=60)
MINUTE_RETRY_AFTER = 60
MONTH_RETRY_AFTER = 3600
EXPIRING_SOON = timedelta(hours=1)


@dataclass
class AccessCheck:
    allowed: bool
    subscription: Subscription | None = None


def month_start(now: datetime) -> datetime:
    """First instant of the calendar month containing ``now``."""
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class AccessService:
    """Answers whether a caller may invoke a resource, and within what quota."""

    def __init__(self, db: Session):
        self.db = db
        self.subscription_repo = SubscriptionRepository(db)
        self.plan_repo = PlanRepository(db)
        self.usage_repo = UsageEventRepository(db)

    def check_access(
        self, caller_id: str, resource_id: str, now: datetime | None = None
    ) -> AccessCheck:
        """Look up the unique live ACTIVE subscription for the pair."""
        now = ensure_utc(now) if now is not None else utc_now()
        subscription = self.subscription_repo.get_active(caller_id, resource_id, now)
        return AccessCheck(allowed=subscription is not None, subscription=subscription)

    def check_quota(
        self,
        caller_id: str,
        resource_id: str,
        now: datetime | None = None,
        subscription: Subscription | None = None,
    ) -> QuotaSnapshot:
        """Count requests in the last 60 seconds and in the current month.

        Limits come from the plan on the active subscription; unset limits
        fall back to the configured defaults.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        if subscription is None:
            subscription = self.subscription_repo.get_active(caller_id, resource_id, now)

        plan = self.plan_repo.get_by_id(str(subscription.plan_id)) if subscription else None
        minute_limit, month_limit = self._limits(plan)

        minute_used = self.usage_repo.count_requests(
            caller_id, resource_id, now - MINUTE_WINDOW, now
        )
        month_used = self.usage_repo.count_requests(caller_id, resource_id, month_start(now), now)

        minute_exceeded = minute_used >= minute_limit
        month_exceeded = month_used >= month_limit

        retry_after: int | None = None
        if minute_exceeded:
            retry_after = MINUTE_RETRY_AFTER
        elif month_exceeded:
            retry_after = MONTH_RETRY_AFTER

        return QuotaSnapshot(
            within_limits=not (minute_exceeded or month_exceeded),
            minute_used=minute_used,
            minute_limit=minute_limit,
            month_used=month_used,
            month_limit=month_limit,
            retry_after=retry_after,
        )

    def authorize(
        self, caller_id: str, resource_id: str, now: datetime | None = None
    ) -> tuple[Subscription, QuotaSnapshot]:
        """Admission check for an invocation.

        Raises:
            NotEntitled: No live subscription for the pair.
            QuotaExceeded: A quota window is full; carries the snapshot.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        access = self.check_access(caller_id, resource_id, now)
        if not access.allowed or access.subscription is None:
            logger.info("Denied %s on %s: no active subscription", caller_id, resource_id)
            raise NotEntitled(
                "Active subscription required to access this resource",
                resource_id=resource_id,
            )

        quota = self.check_quota(caller_id, resource_id, now, subscription=access.subscription)
        if not quota.within_limits:
            logger.info(
                "Throttled %s on %s: minute %d/%d, month %d/%d",
                caller_id,
                resource_id,
                quota.minute_used,
                quota.minute_limit,
                quota.month_used,
                quota.month_limit,
            )
            raise QuotaExceeded("Rate limit exceeded", quota=quota.model_dump())
        return access.subscription, quota

    def get_access(
        self, caller_id: str, resource_id: str, now: datetime | None = None
    ) -> AccessResponse:
        """Access decision plus quota snapshot for the query surface."""
        now = ensure_utc(now) if now is not None else utc_now()
        access = self.check_access(caller_id, resource_id, now)
        if not access.allowed or access.subscription is None:
            return AccessResponse(resource_id=resource_id, allowed=False)

        subscription = access.subscription
        expires_at = ensure_utc(subscription.period_end)  # type: ignore[arg-type]
        return AccessResponse(
            resource_id=resource_id,
            allowed=True,
            subscription=SubscriptionResponse.model_validate(subscription),
            expires_at=expires_at,
            expiring_soon=expires_at - now < EXPIRING_SOON,
            quota=self.check_quota(caller_id, resource_id, now, subscription=subscription),
        )

    @staticmethod
    def _limits(plan: Plan | None) -> tuple[int, int]:
        minute_limit = settings.DEFAULT_REQUESTS_PER_MINUTE
        month_limit = settings.DEFAULT_REQUESTS_PER_MONTH
        if plan is not None:
            if plan.requests_per_minute:
                minute_limit = int(plan.requests_per_minute)
            if plan.requests_per_month:
                month_limit = int(plan.requests_per_month)
        return minute_limit, month_limit
