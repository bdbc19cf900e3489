from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class UsageWindow(str, Enum):
    MINUTE = "minute"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


class UsageEventResponse(BaseModel):
    id: UUID
    caller_id: str
    resource_id: str
    timestamp: datetime
    quantity: int
    latency_ms: int
    cost: Decimal
    success: bool
    error_kind: str | None

    model_config = {"from_attributes": True}


class ResourceUsage(BaseModel):
    resource_id: str
    requests: int
    quantity: int
    cost: Decimal


class UsageSummaryResponse(BaseModel):
    caller_id: str
    window: UsageWindow
    from_datetime: datetime | None
    to_datetime: datetime
    requests: int
    failed_requests: int
    quantity: int
    cost: Decimal
    resources: list[ResourceUsage] = []
