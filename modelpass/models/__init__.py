from modelpass.models.audit_log import AuditLog
from modelpass.models.earnings import CreditSource, EarningsCredit, EarningsLedger
from modelpass.models.plan import DurationUnit, Plan
from modelpass.models.resource import Resource
from modelpass.models.settled_payment import SettledPaymentRecord, SettlementState
from modelpass.models.subscription import Subscription, SubscriptionStatus
from modelpass.models.usage_event import UsageEvent

__all__ = [
    "AuditLog",
    "CreditSource",
    "DurationUnit",
    "EarningsCredit",
    "EarningsLedger",
    "Plan",
    "Resource",
    "SettledPaymentRecord",
    "SettlementState",
    "Subscription",
    "SubscriptionStatus",
    "UsageEvent",
]
