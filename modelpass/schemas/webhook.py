from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class PaymentEventKind(str, Enum):
    CREATED = "CREATED"
    STARTED = "STARTED"
    RENEWED = "RENEWED"
    ENDED = "ENDED"


class ReconcileOutcome(str, Enum):
    SETTLED = "settled"
    DUPLICATE = "duplicate"
    IN_PROGRESS = "in_progress"
    DEFERRED = "deferred"
    FAILED = "failed"


class PaymentEvent(BaseModel):
    """A payment provider delivery normalised for reconciliation."""

    event_kind: PaymentEventKind
    settlement_ref: str
    amount: Decimal = Decimal("0")
    currency: str = "USD"
    metadata: dict[str, Any] = {}
    paylink_id: str | None = None
    pending: bool = False


class ReconcileResponse(BaseModel):
    ok: bool
    outcome: ReconcileOutcome
    settlement_ref: str
    subscription_id: UUID | None = None
    error: str | None = None
