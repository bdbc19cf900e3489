from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class SubscriptionCreate(BaseModel):
    caller_id: str = Field(..., min_length=1, max_length=255)
    resource_id: str = Field(..., min_length=1, max_length=255)
    plan_id: str = Field(..., min_length=1, max_length=255)
    period_start: datetime
    period_end: datetime
    settlement_ref: str | None = None
    payment_method: str | None = None


class SubscriptionResponse(BaseModel):
    id: UUID
    caller_id: str
    resource_id: str
    plan_id: str
    status: str
    period_start: datetime
    period_end: datetime
    settlement_ref: str | None
    payment_method: str | None
    canceled_at: datetime | None
    created_at: datetime | None

    model_config = {"from_attributes": True}
