"""Access query endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from modelpass.core.auth import get_current_caller
from modelpass.core.database import get_db
from modelpass.models.shared import ensure_utc
from modelpass.schemas.access import AccessResponse, BatchAccessItem
from modelpass.services.access_service import AccessService

router = APIRouter()

MAX_BATCH_RESOURCES = 50


@router.get(
    "/",
    response_model=list[BatchAccessItem],
    summary="Check access to several resources",
    responses={401: {"description": "Unauthorized – invalid or missing bearer token"}},
)
async def check_access_batch(
    resource_ids: str = Query(..., description="Comma-separated resource ids"),
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
) -> list[BatchAccessItem]:
    ids = [rid.strip() for rid in resource_ids.split(",") if rid.strip()]
    if not ids:
        raise HTTPException(status_code=400, detail="resource_ids must not be empty")
    if len(ids) > MAX_BATCH_RESOURCES:
        raise HTTPException(
            status_code=400,
            detail=f"At most {MAX_BATCH_RESOURCES} resources can be checked at once",
        )

    service = AccessService(db)
    items = []
    for resource_id in dict.fromkeys(ids):
        access = service.check_access(caller_id, resource_id)
        expires_at = (
            ensure_utc(access.subscription.period_end)  # type: ignore[arg-type]
            if access.subscription is not None
            else None
        )
        items.append(
            BatchAccessItem(resource_id=resource_id, allowed=access.allowed, expires_at=expires_at)
        )
    return items


@router.get(
    "/{resource_id}",
    response_model=AccessResponse,
    summary="Get access and quota for a resource",
    responses={401: {"description": "Unauthorized – invalid or missing bearer token"}},
)
async def get_access(
    resource_id: str,
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
) -> AccessResponse:
    """Whether the caller holds a live subscription, and how much quota is left."""
    return AccessService(db).get_access(caller_id, resource_id)
