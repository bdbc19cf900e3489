"""Resource endpoints: plans, purchase and guarded invocation."""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modelpass.core.auth import get_current_caller
from modelpass.core.database import get_db
from modelpass.core.errors import (
    InvalidUnit,
    MalformedMetadata,
    NotEntitled,
    ProviderError,
    QuotaExceeded,
    http_error,
)
from modelpass.models.plan import Plan
from modelpass.models.resource import Resource
from modelpass.models.shared import ensure_utc
from modelpass.repositories.plan_repository import PlanRepository
from modelpass.repositories.resource_repository import ResourceRepository
from modelpass.schemas.invocation import InvokeRequest, InvokeResponse
from modelpass.schemas.plan import (
    PlanCreate,
    PlanRequest,
    PlanResponse,
    PlanVersionCreate,
    ResourceCreate,
    ResourceRequest,
    ResourceResponse,
)
from modelpass.schemas.pricing import PurchaseRequest, PurchaseResponse
from modelpass.services.access_service import AccessService
from modelpass.services.invocation import InvocationProviderBase, get_invocation_provider
from modelpass.services.metering_service import MeteringService
from modelpass.services.payment_provider import (
    PaymentProviderBase,
    PaymentProviderName,
    get_payment_provider,
)
from modelpass.services.purchase_service import PurchaseService

router = APIRouter()


def invocation_provider() -> InvocationProviderBase:
    return get_invocation_provider()


def checkout_provider() -> PaymentProviderBase:
    return get_payment_provider(PaymentProviderName.HELIO)


def _owned_resource(db: Session, resource_id: str, caller_id: str) -> Resource:
    resource = ResourceRepository(db).get_by_id(resource_id)
    if not resource:
        raise HTTPException(status_code=404, detail="Resource not found")
    if resource.owner_id != caller_id:
        raise HTTPException(status_code=403, detail="Only the resource owner can manage plans")
    return resource


@router.post(
    "/",
    response_model=ResourceResponse,
    status_code=201,
    summary="Publish a resource",
    responses={
        401: {"description": "Unauthorized – invalid or missing bearer token"},
        409: {"description": "Resource id already taken"},
    },
)
async def create_resource(
    data: ResourceRequest,
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
) -> Resource:
    """Publish a resource owned by the caller."""
    try:
        return ResourceRepository(db).create(
            ResourceCreate(id=data.id, owner_id=caller_id, name=data.name)
        )
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Resource id already exists") from None


@router.post(
    "/{resource_id}/plans",
    response_model=PlanResponse,
    status_code=201,
    summary="Offer a plan",
    responses={
        401: {"description": "Unauthorized – invalid or missing bearer token"},
        403: {"description": "Caller does not own the resource"},
        404: {"description": "Resource not found"},
        409: {"description": "Plan id already taken"},
    },
)
async def create_plan(
    resource_id: str,
    data: PlanRequest,
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
) -> Plan:
    _owned_resource(db, resource_id, caller_id)
    try:
        return PlanRepository(db).create(PlanCreate(resource_id=resource_id, **data.model_dump()))
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Plan id already exists") from None


@router.post(
    "/{resource_id}/plans/{plan_id}/versions",
    response_model=PlanResponse,
    status_code=201,
    summary="Reprice a plan",
    responses={
        401: {"description": "Unauthorized – invalid or missing bearer token"},
        403: {"description": "Caller does not own the resource"},
        404: {"description": "Plan not found"},
    },
)
async def create_plan_version(
    resource_id: str,
    plan_id: str,
    data: PlanVersionCreate,
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
) -> Plan:
    """Publish a new plan row; subscriptions keep pointing at the version they bought."""
    _owned_resource(db, resource_id, caller_id)
    repo = PlanRepository(db)
    current = repo.get_by_id(plan_id)
    if not current or current.resource_id != resource_id:
        raise HTTPException(status_code=404, detail="Plan not found")
    plan = repo.create_version(plan_id, **data.model_dump(exclude_none=True))
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    return plan


@router.get(
    "/{resource_id}/plans",
    response_model=list[PlanResponse],
    summary="List plans offered for a resource",
    responses={404: {"description": "Resource not found"}},
)
async def list_plans(
    resource_id: str,
    db: Session = Depends(get_db),
) -> list[Plan]:
    if not ResourceRepository(db).get_by_id(resource_id):
        raise HTTPException(status_code=404, detail="Resource not found")
    return PlanRepository(db).get_by_resource_id(resource_id)


@router.post(
    "/{resource_id}/purchase",
    response_model=PurchaseResponse,
    status_code=201,
    summary="Start a purchase",
    responses={
        400: {"description": "Invalid duration unit"},
        401: {"description": "Unauthorized – invalid or missing bearer token"},
        404: {"description": "Plan not offered for this resource"},
        502: {"description": "Payment provider error"},
    },
)
async def purchase(
    resource_id: str,
    data: PurchaseRequest,
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
    provider: PaymentProviderBase = Depends(checkout_provider),
) -> PurchaseResponse:
    """Quote the plan for the requested duration and open a pay link."""
    service = PurchaseService(db, provider)
    try:
        return service.start_purchase(
            caller_id, resource_id, data.plan_id, unit=data.unit, recurring=data.recurring
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (InvalidUnit, MalformedMetadata, ProviderError) as exc:
        raise http_error(exc) from None


@router.post(
    "/{resource_id}/invoke",
    response_model=InvokeResponse,
    summary="Invoke a resource",
    responses={
        401: {"description": "Unauthorized – invalid or missing bearer token"},
        403: {"description": "Active subscription required"},
        429: {"description": "Quota exceeded; see Retry-After"},
        502: {"description": "Inference provider error"},
    },
)
async def invoke(
    resource_id: str,
    data: InvokeRequest,
    response: Response,
    db: Session = Depends(get_db),
    caller_id: str = Depends(get_current_caller),
    provider: InvocationProviderBase = Depends(invocation_provider),
) -> InvokeResponse:
    """Admit, invoke and meter one call. Failed calls are still metered."""
    try:
        _, quota = AccessService(db).authorize(caller_id, resource_id)
    except (NotEntitled, QuotaExceeded) as exc:
        raise http_error(exc) from None

    event, result = await MeteringService(db).invoke_and_meter(
        caller_id, resource_id, data.inputs, data.parameters, provider=provider
    )
    if not result.success:
        raise http_error(
            ProviderError(
                result.message or "Invocation failed",
                error_kind=result.error_kind or "provider_error",
            )
        )

    response.headers["X-RateLimit-Limit"] = str(quota.minute_limit)
    response.headers["X-RateLimit-Remaining"] = str(
        max(quota.minute_limit - quota.minute_used - 1, 0)
    )
    return InvokeResponse(
        resource_id=resource_id,
        output=result.output,
        usage_event_id=event.id,  # type: ignore[arg-type]
        quantity=int(event.quantity),  # type: ignore[arg-type]
        cost=event.cost,  # type: ignore[arg-type]
        latency_ms=int(event.latency_ms),  # type: ignore[arg-type]
        timestamp=ensure_utc(event.timestamp),  # type: ignore[arg-type]
    )
