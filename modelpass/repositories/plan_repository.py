from typing import Any

from sqlalchemy.orm import Session

from modelpass.models.plan import Plan
from modelpass.schemas.plan import PlanCreate


class PlanRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, plan_id: str) -> Plan | None:
        return self.db.query(Plan).filter(Plan.id == plan_id).first()

    def get_by_resource_id(self, resource_id: str) -> list[Plan]:
        return (
            self.db.query(Plan)
            .filter(Plan.resource_id == resource_id)
            .order_by(Plan.created_at.asc())
            .all()
        )

    def create(self, data: PlanCreate) -> Plan:
        plan = Plan(
            resource_id=data.resource_id,
            name=data.name,
            base_price=data.base_price,
            currency=data.currency,
            billing_unit=data.billing_unit,
            period_unit=data.period_unit.value,
            requests_per_minute=data.requests_per_minute,
            requests_per_month=data.requests_per_month,
        )
        if data.id is not None:
            plan.id = data.id  # type: ignore[assignment]
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def create_version(self, plan_id: str, **changes: Any) -> Plan | None:
        """Publish a new version of a plan; the original row is left untouched."""
        current = self.get_by_id(plan_id)
        if not current:
            return None
        fields = {
            "resource_id": current.resource_id,
            "name": current.name,
            "base_price": current.base_price,
            "currency": current.currency,
            "billing_unit": current.billing_unit,
            "period_unit": current.period_unit,
            "requests_per_minute": current.requests_per_minute,
            "requests_per_month": current.requests_per_month,
        }
        fields.update(changes)
        plan = Plan(version=int(current.version) + 1, **fields)
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        return plan
