from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class InvokeRequest(BaseModel):
    inputs: Any = Field(..., description="Free-form model input (string, list or object).")
    parameters: dict[str, Any] = {}


class InvokeResponse(BaseModel):
    resource_id: str
    output: Any
    usage_event_id: UUID
    quantity: int
    cost: Decimal
    latency_ms: int
    timestamp: datetime
