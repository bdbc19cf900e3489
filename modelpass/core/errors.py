"""Error taxonomy shared by the access, metering and reconciliation services.

Services raise these; routers turn them into ``HTTPException`` via
:func:`http_error`. Reconciliation catches them and records the outcome
instead of propagating to the payment provider.
"""

from typing import Any

from fastapi import HTTPException


class BillingError(Exception):
    """Base class for typed billing outcomes."""

    code = "internal_error"
    default_status = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class Unauthenticated(BillingError):
    code = "unauthenticated"
    default_status = 401


class NotEntitled(BillingError):
    code = "not_entitled"
    default_status = 403

    def __init__(self, message: str, resource_id: str | None = None):
        super().__init__(message)
        self.resource_id = resource_id

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["resource_id"] = self.resource_id
        detail["subscription_required"] = True
        return detail


class QuotaExceeded(BillingError):
    code = "quota_exceeded"
    default_status = 429

    def __init__(self, message: str, quota: dict[str, Any]):
        super().__init__(message)
        self.quota = quota

    @property
    def retry_after(self) -> int | None:
        value = self.quota.get("retry_after")
        return int(value) if value is not None else None

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["quota"] = self.quota
        return detail


class InvalidUnit(BillingError):
    code = "invalid_unit"
    default_status = 400


class MalformedMetadata(BillingError):
    code = "malformed_metadata"
    default_status = 400


class ProviderError(BillingError):
    code = "provider_error"
    default_status = 502

    def __init__(self, message: str, error_kind: str = "provider_error"):
        super().__init__(message)
        self.error_kind = error_kind

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["error_kind"] = self.error_kind
        return detail


class ConflictingEntitlement(BillingError):
    code = "conflicting_entitlement"
    default_status = 409


class InternalError(BillingError):
    code = "internal_error"
    default_status = 500


def http_error(exc: BillingError) -> HTTPException:
    """Convert a typed billing error into an HTTPException for the API layer."""
    headers: dict[str, str] | None = None
    if isinstance(exc, QuotaExceeded) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail(), headers=headers)
