"""UsageEvent model: one metered invocation attempt, append-only."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)

from modelpass.core.database import Base
from modelpass.models.shared import UUIDType, generate_uuid


class UsageEvent(Base):
    __tablename__ = "usage_events"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_usage_events_quantity_non_negative"),
        CheckConstraint("cost >= 0", name="ck_usage_events_cost_non_negative"),
        Index("ix_usage_events_caller_resource_timestamp", "caller_id", "resource_id", "timestamp"),
        Index("ix_usage_events_caller_timestamp", "caller_id", "timestamp"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    caller_id = Column(String(255), nullable=False)
    resource_id = Column(String(255), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    latency_ms = Column(Integer, nullable=False, default=0)
    cost = Column(Numeric(12, 5), nullable=False, default=0)
    success = Column(Boolean, nullable=False)
    error_kind = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
