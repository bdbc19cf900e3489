"""Usage ledger access: appends and windowed aggregates."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from modelpass.models.usage_event import UsageEvent


@dataclass
class UsageTotals:
    requests: int
    failed_requests: int
    quantity: int
    cost: Decimal


class UsageEventRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, event_id: UUID) -> UsageEvent | None:
        return self.db.query(UsageEvent).filter(UsageEvent.id == event_id).first()

    def create(
        self,
        *,
        caller_id: str,
        resource_id: str,
        timestamp: datetime,
        quantity: int,
        latency_ms: int,
        cost: Decimal,
        success: bool,
        error_kind: str | None = None,
        commit: bool = True,
    ) -> UsageEvent:
        event = UsageEvent(
            caller_id=caller_id,
            resource_id=resource_id,
            timestamp=timestamp,
            quantity=quantity,
            latency_ms=latency_ms,
            cost=cost,
            success=success,
            error_kind=error_kind,
        )
        self.db.add(event)
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(event)
        return event

    def count_requests(
        self,
        caller_id: str,
        resource_id: str,
        from_timestamp: datetime,
        to_timestamp: datetime | None = None,
    ) -> int:
        """Number of invocation attempts for the pair inside the window."""
        query = self.db.query(func.count(UsageEvent.id)).filter(
            UsageEvent.caller_id == caller_id,
            UsageEvent.resource_id == resource_id,
            UsageEvent.timestamp >= from_timestamp,
        )
        if to_timestamp is not None:
            query = query.filter(UsageEvent.timestamp <= to_timestamp)
        return int(query.scalar() or 0)

    def totals_for_caller(
        self,
        caller_id: str,
        from_timestamp: datetime | None = None,
        to_timestamp: datetime | None = None,
    ) -> tuple[UsageTotals, dict[str, UsageTotals]]:
        """Aggregate a caller's usage, overall and per resource."""
        query = self.db.query(
            UsageEvent.resource_id,
            func.count(UsageEvent.id),
            func.sum(case((UsageEvent.success.is_(False), 1), else_=0)),
            func.sum(UsageEvent.quantity),
            func.sum(UsageEvent.cost),
        ).filter(UsageEvent.caller_id == caller_id)
        if from_timestamp is not None:
            query = query.filter(UsageEvent.timestamp >= from_timestamp)
        if to_timestamp is not None:
            query = query.filter(UsageEvent.timestamp <= to_timestamp)

        per_resource: dict[str, UsageTotals] = {}
        overall = UsageTotals(requests=0, failed_requests=0, quantity=0, cost=Decimal("0"))
        for resource_id, requests, failed, quantity, cost in query.group_by(
            UsageEvent.resource_id
        ).all():
            totals = UsageTotals(
                requests=int(requests or 0),
                failed_requests=int(failed or 0),
                quantity=int(quantity or 0),
                cost=Decimal(str(cost or 0)),
            )
            per_resource[str(resource_id)] = totals
            overall.requests += totals.requests
            overall.failed_requests += totals.failed_requests
            overall.quantity += totals.quantity
            overall.cost += totals.cost
        return overall, per_resource

    def get_recent(self, caller_id: str, limit: int = 20) -> list[UsageEvent]:
        return (
            self.db.query(UsageEvent)
            .filter(UsageEvent.caller_id == caller_id)
            .order_by(UsageEvent.timestamp.desc())
            .limit(limit)
            .all()
        )
