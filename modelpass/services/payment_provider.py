"""Payment provider abstraction layer.

Supports Helio pay links and operator-initiated manual deliveries. Providers
turn inbound webhooks into a normalised PaymentEvent for reconciliation.
"""

import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import httpx

from modelpass.core.config import settings
from modelpass.core.errors import MalformedMetadata, ProviderError
from modelpass.schemas.webhook import PaymentEvent, PaymentEventKind
from modelpass.services.billing_metadata import BillingMetadata

logger = logging.getLogger(__name__)


class PaymentProviderName(str, Enum):
    HELIO = "helio"
    MANUAL = "manual"


class SettlementStatus(str, Enum):
    SETTLED = "settled"
    PENDING = "pending"
    FAILED = "failed"


@dataclass
class PayLink:
    """Pay link created with the provider."""

    id: str
    url: str


def _to_decimal(value: Any, field: str) -> Decimal:
    try:
        return Decimal(str(value if value is not None else "0"))
    except InvalidOperation:
        raise MalformedMetadata(f"Invalid {field}: {value!r}") from None


def _event_kind(value: Any) -> PaymentEventKind:
    try:
        return PaymentEventKind(str(value).upper())
    except ValueError:
        raise MalformedMetadata(f"Unknown payment event: {value!r}") from None


def _metadata_dict(value: Any) -> dict[str, Any]:
    if value in (None, ""):
        return {}
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            raise MalformedMetadata("Metadata is not valid JSON") from None
        if isinstance(decoded, dict):
            return decoded
    raise MalformedMetadata("Metadata must be an object")


class PaymentProviderBase(ABC):
    """Abstract base class for payment providers."""

    @property
    @abstractmethod
    def provider_name(self) -> PaymentProviderName:
        """Return the provider enum value."""
        pass  # pragma: no cover

    @abstractmethod
    def create_pay_link(
        self,
        amount: Decimal,
        currency: str,
        metadata: BillingMetadata,
        recurring: bool = False,
    ) -> PayLink:
        """Create a pay link whose deliveries will carry ``metadata``."""
        pass  # pragma: no cover

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify the webhook signature."""
        pass  # pragma: no cover

    @abstractmethod
    def parse_webhook(self, payload: dict[str, Any]) -> PaymentEvent:
        """Parse a webhook payload into a PaymentEvent.

        Raises MalformedMetadata when the payload does not have the
        provider's shape.
        """
        pass  # pragma: no cover

    @abstractmethod
    def extract_settlement_ref(self, payload: dict[str, Any]) -> str | None:
        """Best-effort settlement reference from a payload parse_webhook rejected."""
        pass  # pragma: no cover

    @abstractmethod
    def get_settlement_status(self, settlement_ref: str) -> SettlementStatus:
        """Ask the provider whether a payment has settled."""
        pass  # pragma: no cover


class HelioProvider(PaymentProviderBase):
    """Helio pay links.

    Helio authenticates deliveries with ``Authorization: Bearer <shared token>``
    rather than a body signature.
    """

    SETTLED_STATUSES = frozenset({"SUCCESS", "COMPLETED", "PAID"})
    PENDING_STATUSES = frozenset({"PENDING", "PROCESSING", "INITIATED"})

    def __init__(
        self,
        api_base: str | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
        webhook_secret: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_base = (api_base or settings.helio_api_base).rstrip("/")
        self.api_key = api_key or settings.helio_api_key
        self.api_secret = api_secret or settings.helio_api_secret
        self.webhook_secret = webhook_secret or settings.helio_webhook_secret
        self._transport = transport

    @property
    def provider_name(self) -> PaymentProviderName:
        return PaymentProviderName.HELIO

    def _request(
        self, method: str, endpoint: str, data: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        url = f"{self.api_base}{endpoint}"
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_secret}",
        }
        try:
            with httpx.Client(timeout=30.0, transport=self._transport) as client:
                resp = client.request(
                    method, url, json=data, headers=headers, params={"apiKey": self.api_key}
                )
        except httpx.HTTPError as exc:
            logger.warning("Helio request %s %s failed: %s", method, endpoint, exc)
            raise ProviderError(f"Helio API request failed: {exc}", "payment_provider_error") from exc

        if not 200 <= resp.status_code < 300:
            raise ProviderError(
                f"Helio API returned HTTP {resp.status_code}", "payment_provider_error"
            )
        try:
            body = resp.json()
        except ValueError:
            raise ProviderError("Helio API returned invalid JSON", "payment_provider_error") from None
        data_obj = body.get("data", body) if isinstance(body, dict) else None
        if not isinstance(data_obj, dict):
            raise ProviderError("Helio API returned an unexpected body", "payment_provider_error")
        return data_obj

    def create_pay_link(
        self,
        amount: Decimal,
        currency: str,
        metadata: BillingMetadata,
        recurring: bool = False,
    ) -> PayLink:
        composite_key = metadata.composite_key()
        request_data: dict[str, Any] = {
            "name": composite_key,
            "amount": str(amount),
            "currency": currency,
            "metadata": {**metadata.to_dict(), "composite_key": composite_key},
        }
        endpoint = "/paylink"
        if recurring:
            endpoint = "/paylink/subscription"
            request_data["recurring"] = {
                "interval": "monthly",
                "intervalDays": settings.RECURRING_CYCLE_DAYS,
            }

        response = self._request("POST", endpoint, request_data)
        paylink_id = response.get("id")
        if not paylink_id:
            raise ProviderError("Helio did not return a pay link id", "payment_provider_error")
        url = response.get("url") or f"https://app.hel.io/pay/{paylink_id}"
        return PayLink(id=str(paylink_id), url=str(url))

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Compare the Authorization header against the shared webhook token."""
        if not self.webhook_secret or not signature:
            return False
        if signature.startswith("Bearer "):
            signature = signature[7:]
        return hmac.compare_digest(self.webhook_secret.encode(), signature.encode())

    def parse_webhook(self, payload: dict[str, Any]) -> PaymentEvent:
        """Parse a Helio delivery.

        ``{"event": "CREATED", "transactionObject": {"id", "paylinkId",
        "metadata", "meta": {"transactionSignature", "amount", "currency",
        "transactionStatus"}}}``
        """
        event_kind = _event_kind(payload.get("event"))
        tx = payload.get("transactionObject")
        if not isinstance(tx, dict):
            raise MalformedMetadata("Delivery has no transactionObject")
        meta = tx.get("meta") or {}
        if not isinstance(meta, dict):
            raise MalformedMetadata("transactionObject.meta must be an object")

        settlement_ref = meta.get("transactionSignature") or tx.get("id")
        if not settlement_ref:
            raise MalformedMetadata("Delivery has no settlement reference")

        metadata = _metadata_dict(tx.get("metadata")) or _metadata_dict(meta.get("metadata"))
        status = str(meta.get("transactionStatus") or "SUCCESS").upper()

        return PaymentEvent(
            event_kind=event_kind,
            settlement_ref=str(settlement_ref),
            amount=_to_decimal(meta.get("amount"), "amount"),
            currency=str(meta.get("currency") or "USD"),
            metadata=metadata,
            paylink_id=tx.get("paylinkId"),
            pending=status in self.PENDING_STATUSES,
        )

    def extract_settlement_ref(self, payload: dict[str, Any]) -> str | None:
        tx = payload.get("transactionObject")
        if not isinstance(tx, dict):
            return None
        meta = tx.get("meta")
        ref = meta.get("transactionSignature") if isinstance(meta, dict) else None
        ref = ref or tx.get("id")
        return str(ref) if ref else None

    def get_settlement_status(self, settlement_ref: str) -> SettlementStatus:
        response = self._request("GET", f"/transactions/{settlement_ref}")
        meta = response.get("meta") if isinstance(response.get("meta"), dict) else response
        status = str(meta.get("transactionStatus") or "").upper()  # type: ignore[union-attr]
        if status in self.SETTLED_STATUSES:
            return SettlementStatus.SETTLED
        if status in self.PENDING_STATUSES:
            return SettlementStatus.PENDING
        return SettlementStatus.FAILED


class ManualProvider(PaymentProviderBase):
    """Manual deliveries, signed with HMAC-SHA256 by an operator tool."""

    def __init__(self, webhook_secret: str | None = None):
        self.webhook_secret = webhook_secret or settings.manual_webhook_secret

    @property
    def provider_name(self) -> PaymentProviderName:
        return PaymentProviderName.MANUAL

    def create_pay_link(
        self,
        amount: Decimal,
        currency: str,
        metadata: BillingMetadata,
        recurring: bool = False,
    ) -> PayLink:
        """Manual payments have no hosted page; the id is the composite key."""
        return PayLink(id=metadata.composite_key(), url="")

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        if not self.webhook_secret:
            return False
        expected = hmac.new(
            self.webhook_secret.encode(),
            payload,
            hashlib.sha256,
        ).hexdigest()
        if signature.startswith("sha256="):
            signature = signature[7:]
        return hmac.compare_digest(expected, signature)

    def parse_webhook(self, payload: dict[str, Any]) -> PaymentEvent:
        settlement_ref = payload.get("settlement_ref")
        if not settlement_ref:
            raise MalformedMetadata("Delivery has no settlement reference")
        return PaymentEvent(
            event_kind=_event_kind(payload.get("event_kind", "CREATED")),
            settlement_ref=str(settlement_ref),
            amount=_to_decimal(payload.get("amount"), "amount"),
            currency=str(payload.get("currency") or "USD"),
            metadata=_metadata_dict(payload.get("metadata")),
            paylink_id=payload.get("paylink_id"),
            pending=str(payload.get("status", "settled")).lower() == "pending",
        )

    def extract_settlement_ref(self, payload: dict[str, Any]) -> str | None:
        ref = payload.get("settlement_ref")
        return str(ref) if ref else None

    def get_settlement_status(self, settlement_ref: str) -> SettlementStatus:
        return SettlementStatus.SETTLED


def get_payment_provider(provider: PaymentProviderName | str) -> PaymentProviderBase:
    """Factory function to get the appropriate payment provider."""
    providers: dict[PaymentProviderName, type[PaymentProviderBase]] = {
        PaymentProviderName.HELIO: HelioProvider,
        PaymentProviderName.MANUAL: ManualProvider,
    }

    try:
        provider_class = providers.get(PaymentProviderName(provider))
    except ValueError:
        provider_class = None
    if not provider_class:
        raise ValueError(f"Unsupported payment provider: {provider}")

    return provider_class()
