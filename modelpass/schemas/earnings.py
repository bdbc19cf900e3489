from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class EarningsLedgerResponse(BaseModel):
    owner_id: str
    lifetime_earnings: Decimal
    current_period_earnings: Decimal
    currency: str
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class EarningsCreditResponse(BaseModel):
    id: UUID
    resource_id: str
    source: str
    usage_event_id: UUID | None
    settlement_ref: str | None
    gross_amount: Decimal
    amount: Decimal
    currency: str
    created_at: datetime | None

    model_config = {"from_attributes": True}
