from datetime import timedelta
from decimal import Decimal

from pydantic import BaseModel, Field

from modelpass.models.plan import DurationUnit


class QuoteResponse(BaseModel):
    base_price: Decimal
    unit: DurationUnit
    price: Decimal
    period_seconds: int | None = Field(
        default=None,
        description="Fixed period length in seconds; null for calendar months.",
    )


class PurchaseRequest(BaseModel):
    plan_id: str = Field(..., min_length=1, max_length=255)
    unit: DurationUnit | None = Field(
        default=None,
        description="Duration to buy. Defaults to the plan's own period unit.",
    )
    recurring: bool = Field(
        default=False,
        description="Open a recurring pay link billed every cycle instead of a one-off.",
    )


class PurchaseResponse(BaseModel):
    pay_link_id: str
    pay_link_url: str
    price: Decimal
    currency: str
    unit: DurationUnit


def period_seconds(length: timedelta | None) -> int | None:
    return int(length.total_seconds()) if length is not None else None
