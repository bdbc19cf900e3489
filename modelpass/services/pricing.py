"""Pricing rules: duration units to billing periods and prices.

Everything here is pure. A quote for a calendar month has no fixed length,
so callers that need a concrete window use :func:`period_end` with a start
instant instead of adding ``period_length`` themselves.
"""

import calendar as cal
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from modelpass.core.errors import InvalidUnit
from modelpass.models.plan import DurationUnit

_CENT = Decimal("0.01")

# Share of the (monthly) base price charged for each duration.
PRICE_MULTIPLIERS: dict[DurationUnit, Decimal] = {
    DurationUnit.HOUR: Decimal("0.05"),
    DurationUnit.DAY: Decimal("0.10"),
    DurationUnit.WEEK: Decimal("0.30"),
    DurationUnit.MONTH: Decimal("1"),
}

# Minimum price per duration. MONTH has no fixed floor: it is the base price.
PRICE_FLOORS: dict[DurationUnit, Decimal] = {
    DurationUnit.HOUR: Decimal("2"),
    DurationUnit.DAY: Decimal("8"),
    DurationUnit.WEEK: Decimal("30"),
}

FIXED_PERIODS: dict[DurationUnit, timedelta] = {
    DurationUnit.HOUR: timedelta(hours=1),
    DurationUnit.DAY: timedelta(hours=24),
    DurationUnit.WEEK: timedelta(days=7),
}


@dataclass(frozen=True)
class Quote:
    price: Decimal
    unit: DurationUnit
    period_length: timedelta | None  # None for MONTH, see period_end()


def parse_unit(unit: str | DurationUnit) -> DurationUnit:
    """Coerce user or provider input to a DurationUnit.

    Accepts the enum, its value, or the adjective forms the purchase flow
    uses ("hourly", "daily", "weekly", "monthly").
    """
    if isinstance(unit, DurationUnit):
        return unit
    normalized = str(unit).strip().lower()
    aliases = {
        "hourly": DurationUnit.HOUR,
        "daily": DurationUnit.DAY,
        "weekly": DurationUnit.WEEK,
        "monthly": DurationUnit.MONTH,
    }
    if normalized in aliases:
        return aliases[normalized]
    try:
        return DurationUnit(normalized)
    except ValueError:
        raise InvalidUnit(f"Unknown duration unit: {unit!r}") from None


def _add_months(dt: datetime, months: int) -> datetime:
    """Add months to a datetime, clamping to last day of month."""
    month = dt.month - 1 + months
    year = dt.year + month // 12
    month = month % 12 + 1
    max_day = cal.monthrange(year, month)[1]
    day = min(dt.day, max_day)
    return dt.replace(year=year, month=month, day=day)


def period_end(start: datetime, unit: str | DurationUnit) -> datetime:
    """End of a billing period of one ``unit`` beginning at ``start``."""
    duration = parse_unit(unit)
    if duration == DurationUnit.MONTH:
        return _add_months(start, 1)
    return start + FIXED_PERIODS[duration]


def quote(base_price: Decimal | int | str, unit: str | DurationUnit) -> Quote:
    """Price a grant of one ``unit`` against a plan's monthly base price.

    The floor for the unit wins whenever the multiplier gives less.
    """
    duration = parse_unit(unit)
    base = Decimal(str(base_price))
    if base < 0:
        raise ValueError("base_price must not be negative")

    price = base * PRICE_MULTIPLIERS[duration]
    floor = PRICE_FLOORS.get(duration, base)
    if price < floor:
        price = floor

    return Quote(
        price=price.quantize(_CENT, rounding=ROUND_HALF_UP),
        unit=duration,
        period_length=FIXED_PERIODS.get(duration),
    )
