import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, func, text

from modelpass.core.database import Base
from modelpass.models.shared import UUIDType, ensure_utc


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# Status only ever moves forward out of ACTIVE.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    SubscriptionStatus.ACTIVE.value: frozenset(
        {SubscriptionStatus.CANCELLED.value, SubscriptionStatus.EXPIRED.value}
    ),
    SubscriptionStatus.CANCELLED.value: frozenset(),
    SubscriptionStatus.EXPIRED.value: frozenset(),
}


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        Index(
            "uq_subscriptions_active_caller_resource",
            "caller_id",
            "resource_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_subscriptions_caller_resource", "caller_id", "resource_id"),
    )

    id = Column(UUIDType, primary_key=True, default=lambda: uuid.uuid4())
    caller_id = Column(String(255), nullable=False, index=True)
    resource_id = Column(
        String(255),
        ForeignKey("resources.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    plan_id = Column(
        String(255),
        ForeignKey("plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    status = Column(
        String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True
    )
    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False, index=True)
    settlement_ref = Column(String(255), unique=True, nullable=True)
    payment_method = Column(String(30), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def effective_status(self, now: datetime) -> str:
        """Status as observed at ``now``; an ACTIVE row past its end reads as EXPIRED."""
        status = str(self.status)
        if status == SubscriptionStatus.ACTIVE.value and ensure_utc(self.period_end) <= now:  # type: ignore[arg-type]
            return SubscriptionStatus.EXPIRED.value
        return status
