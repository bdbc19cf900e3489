from datetime import datetime

from pydantic import BaseModel

from modelpass.schemas.subscription import SubscriptionResponse


class QuotaSnapshot(BaseModel):
    within_limits: bool
    minute_used: int
    minute_limit: int
    month_used: int
    month_limit: int
    retry_after: int | None = None


class AccessDecision(BaseModel):
    allowed: bool
    subscription: SubscriptionResponse | None = None


class AccessResponse(BaseModel):
    """GetAccess: entitlement decision plus the current quota snapshot."""

    resource_id: str
    allowed: bool
    subscription: SubscriptionResponse | None = None
    expires_at: datetime | None = None
    expiring_soon: bool = False
    quota: QuotaSnapshot | None = None


class BatchAccessItem(BaseModel):
    resource_id: str
    allowed: bool
    expires_at: datetime | None = None
