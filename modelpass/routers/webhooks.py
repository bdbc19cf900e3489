"""Inbound payment provider webhooks."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from modelpass.core.database import get_db
from modelpass.core.errors import InternalError, MalformedMetadata, http_error
from modelpass.schemas.webhook import ReconcileOutcome, ReconcileResponse
from modelpass.services.audit_service import AuditService
from modelpass.services.payment_provider import PaymentProviderName, get_payment_provider
from modelpass.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter()

DEFERRED_RETRY_AFTER = "60"

# Audit key for authenticated deliveries that carry no settlement reference
UNPARSED_DELIVERY_REF = "unparsed"


def _audit_rejected(
    db: Session,
    provider: PaymentProviderName,
    settlement_ref: str | None,
    error: str,
    message: str,
) -> None:
    AuditService(db).log_settlement(
        settlement_ref or UNPARSED_DELIVERY_REF,
        "rejected",
        "unknown",
        {"error": error, "message": message},
        actor_id=provider.value,
    )


@router.post(
    "/{provider}",
    response_model=ReconcileResponse,
    summary="Receive a payment webhook",
    responses={
        400: {"description": "Payload is not a recognisable delivery"},
        401: {"description": "Invalid signature"},
        409: {"description": "Reference is being processed by another delivery"},
        503: {"description": "Payment not settled yet; redeliver later"},
    },
)
async def handle_webhook(
    provider: PaymentProviderName,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> ReconcileResponse:
    """Authenticate a delivery and hand it to reconciliation.

    Reconciliation failures that need an operator (bad metadata, conflicting
    entitlement) are acknowledged with 200 so the provider stops retrying;
    they are kept in the audit trail.
    """
    payload = await request.body()

    try:
        payment_provider = get_payment_provider(provider)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid provider") from None

    if provider == PaymentProviderName.HELIO:
        signature = request.headers.get("Authorization", "")
    else:
        signature = request.headers.get("X-Webhook-Signature", "")
    if not payment_provider.verify_webhook_signature(payload, signature):
        logger.warning("Rejected %s webhook with invalid signature", provider.value)
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload_json = json.loads(payload)
    except ValueError:
        payload_json = None
    if not isinstance(payload_json, dict):
        _audit_rejected(db, provider, None, "invalid_payload", "Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        event = payment_provider.parse_webhook(payload_json)
    except MalformedMetadata as exc:
        logger.warning("Unparseable %s webhook: %s", provider.value, exc.message)
        settlement_ref = payment_provider.extract_settlement_ref(payload_json)
        _audit_rejected(db, provider, settlement_ref, exc.code, exc.message)
        raise http_error(exc) from None

    service = ReconciliationService(db, provider=payment_provider)
    try:
        result = await run_in_threadpool(service.handle_event, event)
    except InternalError as exc:
        raise http_error(exc) from None

    if result.outcome == ReconcileOutcome.IN_PROGRESS:
        response.status_code = 409
    elif result.outcome == ReconcileOutcome.DEFERRED:
        response.status_code = 503
        response.headers["Retry-After"] = DEFERRED_RETRY_AFTER
    return result
