from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from modelpass.core.auth import get_current_caller
from modelpass.core.database import get_db
from modelpass.models.usage_event import UsageEvent
from modelpass.repositories.usage_event_repository import UsageEventRepository
from modelpass.schemas.usage import UsageEventResponse, UsageSummaryResponse, UsageWindow
from modelpass.services.usage_summary_service import UsageSummaryService

router = APIRouter()


@router.get(
    "/summary",
    response_model=UsageSummaryResponse,
    summary="Summarise usage over a window",
    responses={401: {"description": "Unauthorized – invalid or missing bearer token"}},
)
async def get_usage_summary(
    window: UsageWindow = UsageWindow.MONTH,
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
) -> UsageSummaryResponse:
    return UsageSummaryService(db).get_summary(caller_id, window)


@router.get(
    "/events",
    response_model=list[UsageEventResponse],
    summary="List recent usage events",
    responses={401: {"description": "Unauthorized – invalid or missing bearer token"}},
)
async def list_usage_events(
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
) -> list[UsageEvent]:
    """Most recent first."""
    return UsageEventRepository(db).get_recent(caller_id, limit=limit)
