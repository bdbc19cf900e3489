"""Versioned metadata carried from pay-link creation back through the webhook.

Two encodings are accepted on the way back:

* structured metadata: ``{"metadata_version": "1", "resource_id": ...,
  "plan_id": ..., "caller_id": ..., "unit": ...}``
* a composite key, used where the provider only echoes an identifier:
  ``resource:<id>_plan:<id>_caller:<id>[_unit:<unit>]``

Caller ids come from the auth service and may hold any character, so one
that does not fit the key alphabet is embedded as ``b32.<base32>``.

Anything else is rejected with MalformedMetadata.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any

from modelpass.core.errors import InvalidUnit, MalformedMetadata
from modelpass.models.plan import DurationUnit
from modelpass.services.pricing import parse_unit

METADATA_VERSION = "1"

_ID = r"[A-Za-z0-9.\-]+"
_ID_RE = re.compile(rf"^{_ID}$")
_ENCODED_PREFIX = "b32."
COMPOSITE_KEY_RE = re.compile(
    rf"^resource:(?P<resource_id>{_ID})"
    rf"_plan:(?P<plan_id>{_ID})"
    rf"_caller:(?P<caller_id>{_ID})"
    r"(?:_unit:(?P<unit>[a-z]+))?$"
)


@dataclass(frozen=True)
class BillingMetadata:
    resource_id: str
    plan_id: str
    caller_id: str
    unit: DurationUnit | None = None

    def to_dict(self) -> dict[str, str]:
        data = {
            "metadata_version": METADATA_VERSION,
            "resource_id": self.resource_id,
            "plan_id": self.plan_id,
            "caller_id": self.caller_id,
        }
        if self.unit is not None:
            data["unit"] = self.unit.value
        return data

    def composite_key(self) -> str:
        for name in ("resource_id", "plan_id"):
            if not _ID_RE.match(getattr(self, name)):
                raise MalformedMetadata(f"{name} cannot be embedded in a composite key")
        caller = encode_caller_id(self.caller_id)
        key = f"resource:{self.resource_id}_plan:{self.plan_id}_caller:{caller}"
        if self.unit is not None:
            key += f"_unit:{self.unit.value}"
        return key


def encode_caller_id(caller_id: str) -> str:
    if _ID_RE.match(caller_id) and not caller_id.startswith(_ENCODED_PREFIX):
        return caller_id
    encoded = base64.b32encode(caller_id.encode()).decode().rstrip("=").lower()
    return _ENCODED_PREFIX + encoded


def decode_caller_id(value: str) -> str:
    if not value.startswith(_ENCODED_PREFIX):
        return value
    encoded = value[len(_ENCODED_PREFIX) :].upper()
    try:
        return base64.b32decode(encoded + "=" * (-len(encoded) % 8)).decode()
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise MalformedMetadata(f"Undecodable caller id: {value!r}") from exc


def _unit_or_none(raw: Any) -> DurationUnit | None:
    if raw in (None, ""):
        return None
    try:
        return parse_unit(raw)
    except InvalidUnit as exc:
        raise MalformedMetadata(f"Invalid unit in metadata: {raw!r}") from exc


def parse_structured(metadata: dict[str, Any]) -> BillingMetadata:
    version = str(metadata.get("metadata_version", ""))
    if version != METADATA_VERSION:
        raise MalformedMetadata(f"Unsupported metadata version: {version or 'missing'}")

    values: dict[str, str] = {}
    for name in ("resource_id", "plan_id", "caller_id"):
        value = metadata.get(name)
        if not isinstance(value, str) or not value.strip():
            raise MalformedMetadata(f"Metadata is missing {name}")
        values[name] = value.strip()

    return BillingMetadata(unit=_unit_or_none(metadata.get("unit")), **values)


def parse_composite_key(key: str) -> BillingMetadata:
    match = COMPOSITE_KEY_RE.match(key.strip())
    if not match:
        raise MalformedMetadata(f"Unrecognised composite key: {key!r}")
    return BillingMetadata(
        resource_id=match.group("resource_id"),
        plan_id=match.group("plan_id"),
        caller_id=decode_caller_id(match.group("caller_id")),
        unit=_unit_or_none(match.group("unit")),
    )


def parse_metadata(metadata: dict[str, Any] | None, paylink_id: str | None = None) -> BillingMetadata:
    """Recover who bought what from a delivery.

    Structured metadata wins when present. A ``composite_key`` entry in the
    metadata is tried next, then the provider's pay-link identifier.
    """
    metadata = metadata or {}
    if "metadata_version" in metadata:
        return parse_structured(metadata)

    composite = metadata.get("composite_key")
    if isinstance(composite, str) and composite:
        return parse_composite_key(composite)
    if paylink_id:
        return parse_composite_key(paylink_id)

    raise MalformedMetadata("Delivery carries no billing metadata")
