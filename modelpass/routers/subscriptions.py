from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from modelpass.core.auth import get_current_caller
from modelpass.core.database import get_db
from modelpass.models.subscription import Subscription, SubscriptionStatus
from modelpass.repositories.subscription_repository import SubscriptionRepository
from modelpass.schemas.subscription import SubscriptionResponse
from modelpass.services.audit_service import AuditService

router = APIRouter()


@router.get(
    "/",
    response_model=list[SubscriptionResponse],
    summary="List subscriptions",
    responses={401: {"description": "Unauthorized – invalid or missing bearer token"}},
)
async def list_subscriptions(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
) -> list[Subscription]:
    """List the caller's live subscriptions, soonest to expire first."""
    repo = SubscriptionRepository(db)
    if include_inactive:
        return repo.get_by_caller_id(caller_id)
    return repo.get_active_by_caller_id(caller_id)


@router.post(
    "/{subscription_id}/cancel",
    response_model=SubscriptionResponse,
    summary="Cancel a subscription",
    responses={
        400: {"description": "Subscription is no longer active"},
        401: {"description": "Unauthorized – invalid or missing bearer token"},
        404: {"description": "Subscription not found"},
    },
)
async def cancel_subscription(
    subscription_id: UUID,
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
) -> Subscription:
    repo = SubscriptionRepository(db)
    subscription = repo.get_by_id(subscription_id)
    if not subscription or subscription.caller_id != caller_id:
        raise HTTPException(status_code=404, detail="Subscription not found")

    old_status = str(subscription.status)
    try:
        repo.transition(subscription, SubscriptionStatus.CANCELLED)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    AuditService(db).log_status_change(
        resource_type="subscription",
        resource_id=str(subscription_id),
        old_status=old_status,
        new_status=SubscriptionStatus.CANCELLED.value,
        actor_type="caller",
        actor_id=caller_id,
    )
    return subscription
