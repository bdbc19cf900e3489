from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from modelpass.models.shared import utc_now
from modelpass.models.subscription import (
    ALLOWED_TRANSITIONS,
    Subscription,
    SubscriptionStatus,
)
from modelpass.schemas.subscription import SubscriptionCreate


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, subscription_id: UUID) -> Subscription | None:
        return self.db.query(Subscription).filter(Subscription.id == subscription_id).first()

    def get_by_settlement_ref(self, settlement_ref: str) -> Subscription | None:
        return (
            self.db.query(Subscription)
            .filter(Subscription.settlement_ref == settlement_ref)
            .first()
        )

    def get_active(
        self, caller_id: str, resource_id: str, now: datetime | None = None
    ) -> Subscription | None:
        """The ACTIVE subscription for the pair whose period has not ended."""
        if now is None:
            now = utc_now()
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.caller_id == caller_id,
                Subscription.resource_id == resource_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.period_end > now,
            )
            .first()
        )

    def get_active_row(self, caller_id: str, resource_id: str) -> Subscription | None:
        """The row holding ACTIVE status for the pair, even if its period has lapsed."""
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.caller_id == caller_id,
                Subscription.resource_id == resource_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .first()
        )

    def get_active_by_caller_id(
        self, caller_id: str, now: datetime | None = None
    ) -> list[Subscription]:
        if now is None:
            now = utc_now()
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.caller_id == caller_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.period_end > now,
            )
            .order_by(Subscription.period_end.asc())
            .all()
        )

    def get_by_caller_id(self, caller_id: str) -> list[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.caller_id == caller_id)
            .order_by(Subscription.created_at.desc())
            .all()
        )

    def create(self, data: SubscriptionCreate, *, commit: bool = True) -> Subscription:
        """Insert an ACTIVE subscription.

        A lapsed ACTIVE row for the same pair is expired first. A live one
        makes the flush fail on the partial unique index.
        """
        if data.period_end <= data.period_start:
            raise ValueError("period_end must be after period_start")

        self.db.execute(
            update(Subscription)
            .where(
                Subscription.caller_id == data.caller_id,
                Subscription.resource_id == data.resource_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.period_end <= data.period_start,
            )
            .values(status=SubscriptionStatus.EXPIRED.value)
            .execution_options(synchronize_session="fetch")
        )
        subscription = Subscription(
            caller_id=data.caller_id,
            resource_id=data.resource_id,
            plan_id=data.plan_id,
            status=SubscriptionStatus.ACTIVE.value,
            period_start=data.period_start,
            period_end=data.period_end,
            settlement_ref=data.settlement_ref,
            payment_method=data.payment_method,
        )
        self.db.add(subscription)
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(subscription)
        return subscription

    def extend(
        self, subscription: Subscription, new_period_end: datetime, *, commit: bool = True
    ) -> Subscription:
        subscription.period_end = new_period_end  # type: ignore[assignment]
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(subscription)
        return subscription

    def transition(
        self,
        subscription: Subscription,
        new_status: SubscriptionStatus,
        *,
        commit: bool = True,
    ) -> Subscription:
        """Move a subscription forward; backward transitions raise ValueError."""
        current = str(subscription.status)
        if new_status.value not in ALLOWED_TRANSITIONS[current]:
            raise ValueError(
                f"Subscription {subscription.id} cannot move from {current} to {new_status.value}"
            )
        subscription.status = new_status.value  # type: ignore[assignment]
        if new_status == SubscriptionStatus.CANCELLED:
            subscription.canceled_at = utc_now()  # type: ignore[assignment]
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(subscription)
        return subscription

    def expire_lapsed(self, now: datetime | None = None) -> int:
        """Write EXPIRED for ACTIVE rows whose period has ended."""
        if now is None:
            now = utc_now()
        result = self.db.execute(
            update(Subscription)
            .where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.period_end <= now,
            )
            .values(status=SubscriptionStatus.EXPIRED.value)
            .execution_options(synchronize_session="fetch")
        )
        self.db.commit()
        return int(result.rowcount or 0)  # type: ignore[attr-defined]
