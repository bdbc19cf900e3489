"""Usage metering and cost accounting.

Every invocation attempt becomes exactly one UsageEvent. Successful attempts
also credit the resource owner's share of the cost, in the same transaction
as the event they are attributed to.
"""

import asyncio
import logging
import time
from datetime import datetime
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy.orm import Session

from modelpass.core.config import settings
from modelpass.models.earnings import CreditSource
from modelpass.models.shared import ensure_utc, utc_now
from modelpass.models.usage_event import UsageEvent
from modelpass.repositories.earnings_repository import EarningsRepository
from modelpass.repositories.resource_repository import ResourceRepository
from modelpass.repositories.usage_event_repository import UsageEventRepository
from modelpass.services.invocation import (
    InvocationProviderBase,
    InvocationResult,
    get_invocation_provider,
)

logger = logging.getLogger(__name__)

COST_QUANTUM = Decimal("0.00001")


def calculate_cost(quantity: int, latency_ms: int) -> Decimal:
    """Cost of one invocation, rounded half away from zero to 5 places."""
    if quantity < 0 or latency_ms < 0:
        raise ValueError("quantity and latency_ms must not be negative")
    cost = (Decimal(quantity) / 1000) * settings.USAGE_RATE_PER_THOUSAND_UNITS + (
        Decimal(latency_ms) / 1000
    ) * settings.USAGE_RATE_PER_SECOND
    return cost.quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


def owner_share(cost: Decimal) -> Decimal:
    return (cost * settings.REVENUE_SHARE_FRACTION).quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


def _raw_estimate(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        words = len(value.split())
        return int((Decimal(words) * settings.TOKENS_PER_WORD).to_integral_value(ROUND_CEILING))
    if isinstance(value, dict):
        return sum(estimate_quantity(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return sum(estimate_quantity(v) for v in value)
    return _raw_estimate(str(value))


def estimate_quantity(value: Any) -> int:
    """Estimate billable units for a model input or output.

    Text is counted in words scaled by the tokens-per-word ratio; lists and
    mappings sum their parts. Anything non-empty is worth at least one unit.
    """
    if value is None or (isinstance(value, (str, list, tuple, dict)) and not value):
        return 0
    return max(_raw_estimate(value), 1)


class MeteringService:
    def __init__(self, db: Session):
        self.db = db
        self.usage_repo = UsageEventRepository(db)
        self.earnings_repo = EarningsRepository(db)
        self.resource_repo = ResourceRepository(db)

    def record_usage(
        self,
        caller_id: str,
        resource_id: str,
        quantity: int,
        latency_ms: int,
        success: bool,
        error_kind: str | None = None,
        now: datetime | None = None,
    ) -> UsageEvent:
        """Append a UsageEvent and, on success, credit the owner.

        Failed attempts are charged for the partial quantity only and never
        credit anyone.
        """
        timestamp = ensure_utc(now) if now is not None else utc_now()
        cost = calculate_cost(quantity, latency_ms if success else 0)

        resource = self.resource_repo.get_by_id(resource_id) if success else None
        if success and resource is None:
            logger.warning("Usage for unknown resource %s recorded without credit", resource_id)
        if resource is not None:
            self.earnings_repo.ensure_ledger(str(resource.owner_id))

        try:
            event = self.usage_repo.create(
                caller_id=caller_id,
                resource_id=resource_id,
                timestamp=timestamp,
                quantity=quantity,
                latency_ms=latency_ms,
                cost=cost,
                success=success,
                error_kind=None if success else (error_kind or "unknown"),
                commit=False,
            )
            share = owner_share(cost)
            if resource is not None and share > 0:
                self.earnings_repo.credit(
                    owner_id=str(resource.owner_id),
                    resource_id=resource_id,
                    source=CreditSource.USAGE,
                    gross_amount=cost,
                    amount=share,
                    usage_event_id=event.id,  # type: ignore[arg-type]
                    commit=False,
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Failed to record usage for %s on %s", caller_id, resource_id)
            raise

        self.db.refresh(event)
        return event

    async def invoke_and_meter(
        self,
        caller_id: str,
        resource_id: str,
        inputs: Any,
        parameters: dict[str, Any] | None = None,
        provider: InvocationProviderBase | None = None,
        timeout: float | None = None,
    ) -> tuple[UsageEvent, InvocationResult]:
        """Invoke the resource under a timeout and meter the attempt either way."""
        provider = provider or get_invocation_provider()
        timeout = timeout if timeout is not None else settings.INFERENCE_TIMEOUT_SECONDS

        started = time.monotonic()
        try:
            result = await asyncio.wait_for(
                provider.invoke(resource_id, inputs, parameters), timeout=timeout
            )
        except TimeoutError:
            result = InvocationResult.failure(
                "timeout",
                f"Invocation exceeded {timeout}s",
                int((time.monotonic() - started) * 1000),
            )

        quantity = estimate_quantity(inputs)
        if result.success:
            quantity += estimate_quantity(result.output)
        else:
            logger.info(
                "Invocation of %s for %s failed: %s", resource_id, caller_id, result.error_kind
            )

        event = self.record_usage(
            caller_id=caller_id,
            resource_id=resource_id,
            quantity=quantity,
            latency_ms=max(result.latency_ms, 0),
            success=result.success,
            error_kind=result.error_kind,
        )
        return event, result
