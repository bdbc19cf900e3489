import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from modelpass.core.config import settings
from modelpass.core.database import SessionLocal
from modelpass.repositories.earnings_repository import EarningsRepository
from modelpass.repositories.subscription_repository import SubscriptionRepository
from modelpass.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def expire_subscriptions_task(ctx: dict[str, Any]) -> int:
    """Background task: write EXPIRED for ACTIVE subscriptions whose period has ended.

    Access checks already treat these as expired; this keeps stored status
    in line with what callers observe. Runs hourly.
    """
    db = SessionLocal()
    try:
        count = SubscriptionRepository(db).expire_lapsed()
        if count > 0:
            logger.info("Expired %d lapsed subscriptions", count)
        return count
    finally:
        db.close()


async def reset_period_earnings_task(ctx: dict[str, Any]) -> int:
    """Background task: start a new earnings period for every owner.

    Runs at midnight on the first day of each month.
    """
    db = SessionLocal()
    try:
        count = EarningsRepository(db).reset_current_period()
        logger.info("Reset current-period earnings for %d ledgers", count)
        return count
    finally:
        db.close()


async def release_stale_claims_task(ctx: dict[str, Any]) -> int:
    """Background task: release settlement claims abandoned mid-reconciliation."""
    db = SessionLocal()
    try:
        return ReconciliationService(db).release_stale_claims()
    finally:
        db.close()


class WorkerSettings:
    functions = [
        expire_subscriptions_task,
        reset_period_earnings_task,
        release_stale_claims_task,
    ]
    cron_jobs = [
        cron(expire_subscriptions_task, minute={0}),  # hourly
        cron(reset_period_earnings_task, day={1}, hour={0}, minute={0}),  # monthly
        cron(release_stale_claims_task, minute=set(range(0, 60, 5))),  # every 5 minutes
    ]
    redis_settings = redis_settings
