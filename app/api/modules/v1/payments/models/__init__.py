from .event_ledger_model import LedgerStatus, PaymentEventLedger
from .subscription_model import SubscriptionStatus, VendorSubscription

__all__ = [
    "LedgerStatus",
    "PaymentEventLedger",
    "SubscriptionStatus",
    "VendorSubscription",
]
