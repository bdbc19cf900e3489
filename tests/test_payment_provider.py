"""Tests for the Helio and manual payment providers."""

import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest

from modelpass.core.errors import MalformedMetadata, ProviderError
from modelpass.models.plan import DurationUnit
from modelpass.schemas.webhook import PaymentEventKind
from modelpass.services.billing_metadata import BillingMetadata
from modelpass.services.payment_provider import (
    HelioProvider,
    ManualProvider,
    PaymentProviderName,
    SettlementStatus,
    get_payment_provider,
)

METADATA = BillingMetadata("m1", "p1", "u1", DurationUnit.DAY)


def _helio(handler=None, webhook_secret="whsec"):
    transport = httpx.MockTransport(handler) if handler else None
    return HelioProvider(
        api_base="https://helio.test/v1",
        api_key="pk",
        api_secret="sk",
        webhook_secret=webhook_secret,
        transport=transport,
    )


def _delivery(event="CREATED", status="SUCCESS", metadata=None, **meta):
    return {
        "event": event,
        "transactionObject": {
            "id": "tx-1",
            "paylinkId": "pl-1",
            "metadata": metadata,
            "meta": {
                "transactionSignature": "abc123",
                "amount": "8",
                "currency": "USDC",
                "transactionStatus": status,
                **meta,
            },
        },
    }


class TestGetPaymentProvider:
    def test_helio(self):
        assert isinstance(get_payment_provider("helio"), HelioProvider)

    def test_manual(self):
        provider = get_payment_provider(PaymentProviderName.MANUAL)
        assert isinstance(provider, ManualProvider)
        assert provider.provider_name == PaymentProviderName.MANUAL

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unsupported payment provider"):
            get_payment_provider("stripe")


class TestHelioPayLink:
    """Pay link creation against a mocked Helio API."""

    def test_create_pay_link(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(
                200, json={"data": {"id": "pl-1", "url": "https://app.hel.io/pay/pl-1"}}
            )

        link = _helio(handler).create_pay_link(Decimal("8.00"), "USD", METADATA)

        assert link.id == "pl-1"
        assert link.url == "https://app.hel.io/pay/pl-1"
        request = captured["request"]
        assert request.url.path == "/v1/paylink"
        assert request.url.params["apiKey"] == "pk"
        assert request.headers["Authorization"] == "Bearer sk"
        body = json.loads(request.content)
        assert body["name"] == "resource:m1_plan:p1_caller:u1_unit:day"
        assert body["amount"] == "8.00"
        assert body["metadata"]["metadata_version"] == "1"
        assert body["metadata"]["unit"] == "day"
        assert body["metadata"]["composite_key"] == "resource:m1_plan:p1_caller:u1_unit:day"

    def test_recurring_pay_link(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "pl-2"})

        link = _helio(handler).create_pay_link(Decimal("20"), "USD", METADATA, recurring=True)

        assert captured["path"] == "/v1/paylink/subscription"
        assert captured["body"]["recurring"]["intervalDays"] == 30
        assert link.url == "https://app.hel.io/pay/pl-2"

    def test_api_error(self):
        provider = _helio(lambda request: httpx.Response(500, json={"message": "down"}))
        with pytest.raises(ProviderError) as exc_info:
            provider.create_pay_link(Decimal("8"), "USD", METADATA)
        assert exc_info.value.error_kind == "payment_provider_error"

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderError):
            _helio(handler).create_pay_link(Decimal("8"), "USD", METADATA)

    def test_missing_id(self):
        provider = _helio(lambda request: httpx.Response(200, json={"data": {}}))
        with pytest.raises(ProviderError, match="pay link id"):
            provider.create_pay_link(Decimal("8"), "USD", METADATA)


class TestHelioWebhookSignature:
    def test_valid_bearer_token(self):
        assert _helio().verify_webhook_signature(b"{}", "Bearer whsec") is True

    def test_bare_token(self):
        assert _helio().verify_webhook_signature(b"{}", "whsec") is True

    def test_wrong_token(self):
        assert _helio().verify_webhook_signature(b"{}", "Bearer nope") is False

    def test_no_secret_configured(self):
        provider = HelioProvider(webhook_secret="")
        provider.webhook_secret = ""
        assert provider.verify_webhook_signature(b"{}", "Bearer ") is False

    def test_missing_header(self):
        assert _helio().verify_webhook_signature(b"{}", "") is False


class TestHelioWebhookParsing:
    def test_parse_created(self):
        metadata = {**METADATA.to_dict()}
        event = _helio().parse_webhook(_delivery(metadata=metadata))

        assert event.event_kind == PaymentEventKind.CREATED
        assert event.settlement_ref == "abc123"
        assert event.amount == Decimal("8")
        assert event.currency == "USDC"
        assert event.metadata == metadata
        assert event.paylink_id == "pl-1"
        assert event.pending is False

    def test_metadata_as_json_string(self):
        event = _helio().parse_webhook(_delivery(metadata=json.dumps({"composite_key": "k"})))
        assert event.metadata == {"composite_key": "k"}

    def test_metadata_under_meta(self):
        payload = _delivery(metadata={"composite_key": "k"})
        payload["transactionObject"]["metadata"] = None
        payload["transactionObject"]["meta"]["metadata"] = {"composite_key": "k"}
        assert _helio().parse_webhook(payload).metadata == {"composite_key": "k"}

    def test_settlement_ref_falls_back_to_transaction_id(self):
        payload = _delivery()
        del payload["transactionObject"]["meta"]["transactionSignature"]
        assert _helio().parse_webhook(payload).settlement_ref == "tx-1"

    def test_pending_status(self):
        assert _helio().parse_webhook(_delivery(status="PENDING")).pending is True

    def test_event_kind_is_case_insensitive(self):
        assert _helio().parse_webhook(_delivery(event="renewed")).event_kind == (
            PaymentEventKind.RENEWED
        )

    def test_unknown_event(self):
        with pytest.raises(MalformedMetadata, match="Unknown payment event"):
            _helio().parse_webhook(_delivery(event="REFUNDED"))

    def test_missing_transaction(self):
        with pytest.raises(MalformedMetadata):
            _helio().parse_webhook({"event": "CREATED"})

    def test_invalid_amount(self):
        with pytest.raises(MalformedMetadata, match="amount"):
            _helio().parse_webhook(_delivery(amount="eight"))

    def test_metadata_not_an_object(self):
        with pytest.raises(MalformedMetadata):
            _helio().parse_webhook(_delivery(metadata="[1, 2]"))

    def test_extract_settlement_ref(self):
        provider = _helio()
        assert provider.extract_settlement_ref(_delivery(amount="eight")) == "abc123"
        assert provider.extract_settlement_ref(_delivery(transactionSignature=None)) == "tx-1"
        assert provider.extract_settlement_ref({"event": "CREATED"}) is None
        assert provider.extract_settlement_ref({"transactionObject": "tx-1"}) is None


class TestHelioSettlementStatus:
    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            ("SUCCESS", SettlementStatus.SETTLED),
            ("completed", SettlementStatus.SETTLED),
            ("PENDING", SettlementStatus.PENDING),
            ("FAILED", SettlementStatus.FAILED),
        ],
    )
    def test_status(self, status, expected):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/transactions/abc123"
            return httpx.Response(200, json={"data": {"meta": {"transactionStatus": status}}})

        assert _helio(handler).get_settlement_status("abc123") == expected

    def test_http_error(self):
        provider = _helio(lambda request: httpx.Response(404, json={}))
        with pytest.raises(ProviderError):
            provider.get_settlement_status("abc123")


class TestManualProvider:
    def _sign(self, body: bytes, secret: str = "opsecret") -> str:
        return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

    def test_verify_signature(self):
        body = b'{"settlement_ref": "m-1"}'
        provider = ManualProvider(webhook_secret="opsecret")
        assert provider.verify_webhook_signature(body, self._sign(body)) is True
        assert provider.verify_webhook_signature(body, "sha256=" + self._sign(body)) is True

    def test_verify_signature_invalid(self):
        body = b'{"settlement_ref": "m-1"}'
        provider = ManualProvider(webhook_secret="opsecret")
        assert provider.verify_webhook_signature(body, self._sign(body, "other")) is False

    def test_verify_signature_no_secret(self):
        provider = ManualProvider()
        provider.webhook_secret = ""
        assert provider.verify_webhook_signature(b"{}", "anything") is False

    def test_parse_webhook(self):
        event = ManualProvider(webhook_secret="s").parse_webhook(
            {
                "settlement_ref": "m-1",
                "event_kind": "renewed",
                "amount": 20,
                "metadata": METADATA.to_dict(),
            }
        )
        assert event.event_kind == PaymentEventKind.RENEWED
        assert event.amount == Decimal("20")
        assert event.currency == "USD"
        assert event.pending is False

    def test_parse_webhook_defaults_to_created(self):
        event = ManualProvider(webhook_secret="s").parse_webhook(
            {"settlement_ref": "m-1", "status": "pending"}
        )
        assert event.event_kind == PaymentEventKind.CREATED
        assert event.pending is True

    def test_parse_webhook_requires_reference(self):
        with pytest.raises(MalformedMetadata):
            ManualProvider(webhook_secret="s").parse_webhook({"amount": 5})

    def test_extract_settlement_ref(self):
        provider = ManualProvider(webhook_secret="s")
        assert provider.extract_settlement_ref({"settlement_ref": "m-1", "amount": "x"}) == "m-1"
        assert provider.extract_settlement_ref({"amount": 5}) is None

    def test_pay_link_is_composite_key(self):
        link = ManualProvider(webhook_secret="s").create_pay_link(Decimal("8"), "USD", METADATA)
        assert link.id == "resource:m1_plan:p1_caller:u1_unit:day"

    def test_always_settled(self):
        assert ManualProvider(webhook_secret="s").get_settlement_status("m-1") == (
            SettlementStatus.SETTLED
        )
