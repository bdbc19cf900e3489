from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from modelpass.models.plan import DurationUnit


class ResourceCreate(BaseModel):
    id: str | None = Field(default=None, min_length=1, max_length=255)
    owner_id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)


class PlanCreate(BaseModel):
    id: str | None = Field(default=None, min_length=1, max_length=255)
    resource_id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    base_price: Decimal = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    billing_unit: str = "request"
    period_unit: DurationUnit = DurationUnit.MONTH
    requests_per_minute: int | None = Field(default=None, ge=1)
    requests_per_month: int | None = Field(default=None, ge=1)


class PlanResponse(BaseModel):
    id: str
    resource_id: str
    name: str
    version: int
    base_price: Decimal
    currency: str
    billing_unit: str
    period_unit: str
    requests_per_minute: int | None
    requests_per_month: int | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class ResourceRequest(BaseModel):
    id: str | None = Field(default=None, min_length=1, max_length=255, pattern=r"^[A-Za-z0-9.\-]+$")
    name: str = Field(..., min_length=1, max_length=255)


class ResourceResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    created_at: datetime | None

    model_config = {"from_attributes": True}


class PlanRequest(BaseModel):
    id: str | None = Field(default=None, min_length=1, max_length=255, pattern=r"^[A-Za-z0-9.\-]+$")
    name: str = Field(..., min_length=1, max_length=255)
    base_price: Decimal = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    billing_unit: str = "request"
    period_unit: DurationUnit = DurationUnit.MONTH
    requests_per_minute: int | None = Field(default=None, ge=1)
    requests_per_month: int | None = Field(default=None, ge=1)


class PlanVersionCreate(BaseModel):
    """Fields that may change when a plan is repriced."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    base_price: Decimal | None = Field(default=None, ge=0)
    requests_per_minute: int | None = Field(default=None, ge=1)
    requests_per_month: int | None = Field(default=None, ge=1)
