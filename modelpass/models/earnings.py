"""Earnings ledger for resource owners and the credits that feed it."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, func

from modelpass.core.database import Base
from modelpass.models.shared import UUIDType, generate_uuid


class CreditSource(str, Enum):
    USAGE = "usage"
    PAYMENT = "payment"


class EarningsLedger(Base):
    """Running totals per owner. Only ever changed by SQL-side increments."""

    __tablename__ = "earnings_ledgers"

    owner_id = Column(String(255), primary_key=True)
    lifetime_earnings = Column(Numeric(14, 5), nullable=False, default=0)
    current_period_earnings = Column(Numeric(14, 5), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class EarningsCredit(Base):
    """One credit to a ledger, traceable to a usage event or a settlement reference.

    The unique columns make a second credit for the same source fail at insert.
    """

    __tablename__ = "earnings_credits"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    owner_id = Column(
        String(255),
        ForeignKey("earnings_ledgers.owner_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    resource_id = Column(String(255), nullable=False, index=True)
    source = Column(String(20), nullable=False)
    usage_event_id = Column(UUIDType, unique=True, nullable=True)
    settlement_ref = Column(String(255), unique=True, nullable=True)
    gross_amount = Column(Numeric(14, 5), nullable=False)
    amount = Column(Numeric(14, 5), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
