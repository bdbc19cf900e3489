import logging

from sqlalchemy.orm import Session

from modelpass.core.errors import MalformedMetadata
from modelpass.models.plan import DurationUnit
from modelpass.repositories.plan_repository import PlanRepository
from modelpass.schemas.pricing import PurchaseResponse
from modelpass.services.billing_metadata import BillingMetadata
from modelpass.services.payment_provider import PaymentProviderBase
from modelpass.services.pricing import parse_unit, quote

logger = logging.getLogger(__name__)


class PurchaseService:
    """Quotes a plan and opens a pay link carrying the billing metadata."""

    def __init__(self, db: Session, provider: PaymentProviderBase):
        self.plan_repo = PlanRepository(db)
        self.provider = provider

    def start_purchase(
        self,
        caller_id: str,
        resource_id: str,
        plan_id: str,
        unit: DurationUnit | str | None = None,
        recurring: bool = False,
    ) -> PurchaseResponse:
        plan = self.plan_repo.get_by_id(plan_id)
        if plan is None or str(plan.resource_id) != resource_id:
            raise ValueError(f"Plan {plan_id} is not offered for resource {resource_id}")

        duration = parse_unit(unit if unit is not None else str(plan.period_unit))
        priced = quote(plan.base_price, duration)  # type: ignore[arg-type]
        metadata = BillingMetadata(
            resource_id=resource_id,
            plan_id=str(plan.id),
            caller_id=caller_id,
            unit=duration,
        )
        try:
            metadata.composite_key()
        except MalformedMetadata:
            logger.warning(
                "Identifiers for %s/%s cannot be embedded in a pay link", resource_id, plan_id
            )
            raise

        pay_link = self.provider.create_pay_link(
            priced.price, str(plan.currency), metadata, recurring=recurring
        )
        logger.info(
            "Created %s pay link %s for %s on %s (%s %s)",
            self.provider.provider_name.value,
            pay_link.id,
            caller_id,
            resource_id,
            priced.price,
            duration.value,
        )
        return PurchaseResponse(
            pay_link_id=pay_link.id,
            pay_link_url=pay_link.url,
            price=priced.price,
            currency=str(plan.currency),
            unit=duration,
        )
