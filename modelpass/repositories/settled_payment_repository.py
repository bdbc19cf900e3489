"""Repository for SettledPaymentRecord, the per-reference reconciliation claim."""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modelpass.core.config import settings
from modelpass.models.settled_payment import SettledPaymentRecord, SettlementState
from modelpass.models.shared import utc_now


def stale_claim_cutoff(now: datetime | None = None) -> datetime:
    return (now or utc_now()) - timedelta(seconds=settings.SETTLEMENT_CLAIM_LEASE_SECONDS)


class SettledPaymentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, settlement_ref: str) -> SettledPaymentRecord | None:
        return (
            self.db.query(SettledPaymentRecord)
            .filter(SettledPaymentRecord.settlement_ref == settlement_ref)
            .first()
        )

    def claim(
        self,
        settlement_ref: str,
        event_kind: str,
        amount: Decimal | None = None,
        currency: str | None = None,
    ) -> tuple[SettledPaymentRecord | None, bool]:
        """Try to take the PROCESSING claim for a settlement reference.

        Returns ``(record, claimed)``. Exactly one concurrent caller inserts the
        row. A later redelivery may re-take a FAILED record, or a PROCESSING
        record whose holder has not touched it within the claim lease. When the
        claim is lost, ``record`` is the row that won.
        """
        self.db.add(
            SettledPaymentRecord(
                settlement_ref=settlement_ref,
                event_kind=event_kind,
                state=SettlementState.PROCESSING.value,
                amount=amount,
                currency=currency,
            )
        )
        try:
            self.db.commit()
            return self.get(settlement_ref), True
        except IntegrityError:
            self.db.rollback()

        result = self.db.execute(
            update(SettledPaymentRecord)
            .where(
                SettledPaymentRecord.settlement_ref == settlement_ref,
                or_(
                    SettledPaymentRecord.state == SettlementState.FAILED.value,
                    and_(
                        SettledPaymentRecord.state == SettlementState.PROCESSING.value,
                        SettledPaymentRecord.updated_at < stale_claim_cutoff(),
                    ),
                ),
            )
            .values(
                state=SettlementState.PROCESSING.value,
                event_kind=event_kind,
                error_code=None,
                error_message=None,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()
        return self.get(settlement_ref), bool(result.rowcount)  # type: ignore[attr-defined]

    def mark_settled(
        self,
        record: SettledPaymentRecord,
        subscription_id: UUID | None,
        *,
        commit: bool = True,
    ) -> SettledPaymentRecord:
        record.state = SettlementState.SETTLED.value  # type: ignore[assignment]
        record.subscription_id = subscription_id  # type: ignore[assignment]
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(record)
        return record

    def mark_failed(
        self, settlement_ref: str, error_code: str, error_message: str
    ) -> SettledPaymentRecord | None:
        """Release a claim as FAILED so the provider's redelivery can retry it."""
        record = self.get(settlement_ref)
        if not record:
            return None
        record.state = SettlementState.FAILED.value  # type: ignore[assignment]
        record.error_code = error_code  # type: ignore[assignment]
        record.error_message = error_message[:2000]  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(record)
        return record

    def get_by_state(
        self,
        state: SettlementState,
        updated_before: datetime | None = None,
        limit: int = 100,
    ) -> list[SettledPaymentRecord]:
        query = self.db.query(SettledPaymentRecord).filter(
            SettledPaymentRecord.state == state.value
        )
        if updated_before is not None:
            query = query.filter(SettledPaymentRecord.updated_at < updated_before)
        return query.order_by(SettledPaymentRecord.updated_at.asc()).limit(limit).all()
