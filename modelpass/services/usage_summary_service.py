from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from modelpass.models.shared import ensure_utc, utc_now
from modelpass.repositories.usage_event_repository import UsageEventRepository
from modelpass.schemas.usage import ResourceUsage, UsageSummaryResponse, UsageWindow
from modelpass.services.access_service import month_start


def window_start(window: UsageWindow, now: datetime) -> datetime | None:
    """Lower bound of a summary window; ``None`` means all time."""
    if window == UsageWindow.MINUTE:
        return now - timedelta(seconds=60)
    if window == UsageWindow.TODAY:
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if window == UsageWindow.WEEK:
        return now - timedelta(days=7)
    if window == UsageWindow.MONTH:
        return month_start(now)
    return None


class UsageSummaryService:
    def __init__(self, db: Session):
        self.usage_repo = UsageEventRepository(db)

    def get_summary(
        self,
        caller_id: str,
        window: UsageWindow = UsageWindow.MONTH,
        now: datetime | None = None,
    ) -> UsageSummaryResponse:
        now = ensure_utc(now) if now is not None else utc_now()
        start = window_start(window, now)
        overall, per_resource = self.usage_repo.totals_for_caller(caller_id, start, now)

        resources = [
            ResourceUsage(
                resource_id=resource_id,
                requests=totals.requests,
                quantity=totals.quantity,
                cost=totals.cost,
            )
            for resource_id, totals in sorted(
                per_resource.items(), key=lambda item: item[1].requests, reverse=True
            )
        ]
        return UsageSummaryResponse(
            caller_id=caller_id,
            window=window,
            from_datetime=start,
            to_datetime=now,
            requests=overall.requests,
            failed_requests=overall.failed_requests,
            quantity=overall.quantity,
            cost=overall.cost,
            resources=resources,
        )
