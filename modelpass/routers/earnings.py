from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from modelpass.core.auth import get_current_caller
from modelpass.core.database import get_db
from modelpass.models.earnings import EarningsCredit, EarningsLedger
from modelpass.repositories.earnings_repository import EarningsRepository
from modelpass.schemas.earnings import EarningsCreditResponse, EarningsLedgerResponse

router = APIRouter()


@router.get(
    "/",
    response_model=EarningsLedgerResponse,
    summary="Get the owner's earnings ledger",
    responses={
        401: {"description": "Unauthorized – invalid or missing bearer token"},
        404: {"description": "No earnings yet"},
    },
)
async def get_earnings(
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_caller),
) -> EarningsLedger:
    ledger = EarningsRepository(db).get_ledger(owner_id)
    if not ledger:
        raise HTTPException(status_code=404, detail="No earnings recorded")
    return ledger


@router.get(
    "/credits",
    response_model=list[EarningsCreditResponse],
    summary="List earnings credits",
    responses={401: {"description": "Unauthorized – invalid or missing bearer token"}},
)
async def list_credits(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_caller),
) -> list[EarningsCredit]:
    """Each credit traces back to a usage event or a settlement reference."""
    return EarningsRepository(db).get_credits(owner_id, skip=skip, limit=limit)
