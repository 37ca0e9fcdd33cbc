from .ledger_schema import BeginResult, IdempotencyRecord
from .payment_event import EventKind, PaymentEvent
from .subscription_schema import (
    TransitionOutcome,
    TransitionResult,
    VendorSubscriptionResponse,
    VendorSubscriptionState,
)

__all__ = [
    "BeginResult",
    "IdempotencyRecord",
    "EventKind",
    "PaymentEvent",
    "TransitionOutcome",
    "TransitionResult",
    "VendorSubscriptionResponse",
    "VendorSubscriptionState",
]
