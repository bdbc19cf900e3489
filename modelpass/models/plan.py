from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, func

from modelpass.core.database import Base
from modelpass.models.shared import generate_id


class DurationUnit(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class Plan(Base):
    """A resource owner's offer.

    Rows are never edited once a settled subscription references them;
    repricing creates a new row with ``version`` bumped.
    """

    __tablename__ = "plans"

    id = Column(String(255), primary_key=True, default=generate_id)
    resource_id = Column(
        String(255),
        ForeignKey("resources.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    base_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    billing_unit = Column(String(50), nullable=False, default="request")
    period_unit = Column(String(20), nullable=False, default=DurationUnit.MONTH.value)
    requests_per_minute = Column(Integer, nullable=True)
    requests_per_month = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
