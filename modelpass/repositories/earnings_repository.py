"""Earnings ledger access. Balances move only through SQL-side increments."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modelpass.models.earnings import CreditSource, EarningsCredit, EarningsLedger


class EarningsRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_ledger(self, owner_id: str) -> EarningsLedger | None:
        return self.db.query(EarningsLedger).filter(EarningsLedger.owner_id == owner_id).first()

    def ensure_ledger(self, owner_id: str, currency: str = "USD") -> None:
        """Create the owner's ledger row if it does not exist yet.

        Must run outside any pending unit of work: a concurrent insert for the
        same owner is resolved by rolling back our own attempt.
        """
        if self.get_ledger(owner_id) is not None:
            return
        self.db.add(
            EarningsLedger(
                owner_id=owner_id,
                lifetime_earnings=Decimal("0"),
                current_period_earnings=Decimal("0"),
                currency=currency,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()

    def credit(
        self,
        *,
        owner_id: str,
        resource_id: str,
        source: CreditSource,
        gross_amount: Decimal,
        amount: Decimal,
        currency: str = "USD",
        usage_event_id: UUID | None = None,
        settlement_ref: str | None = None,
        commit: bool = True,
    ) -> EarningsCredit:
        """Record a credit and increment the owner's totals in one statement.

        The credit row's unique source column rejects a second credit for the
        same usage event or settlement reference.
        """
        credit = EarningsCredit(
            owner_id=owner_id,
            resource_id=resource_id,
            source=source.value,
            usage_event_id=usage_event_id,
            settlement_ref=settlement_ref,
            gross_amount=gross_amount,
            amount=amount,
            currency=currency,
        )
        self.db.add(credit)
        self.db.flush()

        result = self.db.execute(
            update(EarningsLedger)
            .where(EarningsLedger.owner_id == owner_id)
            .values(
                lifetime_earnings=EarningsLedger.lifetime_earnings + amount,
                current_period_earnings=EarningsLedger.current_period_earnings + amount,
            )
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:  # type: ignore[attr-defined]
            raise LookupError(f"No earnings ledger for owner {owner_id}")

        if commit:
            self.db.commit()
            self.db.refresh(credit)
        return credit

    def get_credits(self, owner_id: str, skip: int = 0, limit: int = 100) -> list[EarningsCredit]:
        return (
            self.db.query(EarningsCredit)
            .filter(EarningsCredit.owner_id == owner_id)
            .order_by(EarningsCredit.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_credit_by_settlement_ref(self, settlement_ref: str) -> EarningsCredit | None:
        return (
            self.db.query(EarningsCredit)
            .filter(EarningsCredit.settlement_ref == settlement_ref)
            .first()
        )

    def get_credit_by_usage_event_id(self, usage_event_id: UUID) -> EarningsCredit | None:
        return (
            self.db.query(EarningsCredit)
            .filter(EarningsCredit.usage_event_id == usage_event_id)
            .first()
        )

    def reset_current_period(self) -> int:
        """Zero every owner's current-period total."""
        result = self.db.execute(
            update(EarningsLedger)
            .values(current_period_earnings=Decimal("0"))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()
        return int(result.rowcount or 0)  # type: ignore[attr-defined]
