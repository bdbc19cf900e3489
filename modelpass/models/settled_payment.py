"""SettledPaymentRecord: idempotency witness for payment webhook deliveries."""

from enum import Enum

from sqlalchemy import Column, DateTime, Numeric, String, Text, func

from modelpass.core.database import Base
from modelpass.models.shared import UUIDType


class SettlementState(str, Enum):
    PROCESSING = "processing"
    SETTLED = "settled"
    FAILED = "failed"


class SettledPaymentRecord(Base):
    """Keyed by the provider's settlement reference.

    The primary key is the claim: only one delivery can insert the
    PROCESSING row for a given reference.
    """

    __tablename__ = "settled_payment_records"

    settlement_ref = Column(String(255), primary_key=True)
    event_kind = Column(String(20), nullable=False)
    state = Column(String(20), nullable=False, default=SettlementState.PROCESSING.value)
    subscription_id = Column(UUIDType, nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(10), nullable=True)
    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
