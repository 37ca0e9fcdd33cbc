import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class EventKind(str, Enum):
    """Provider-agnostic classification of a payment notification."""

    PAYMENT_CAPTURED = "payment_captured"
    PAYMENT_FAILED = "payment_failed"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    UNKNOWN = "unknown"


class PaymentEvent(BaseModel):
    """Normalized webhook notification. Created per inbound call, never persisted."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    vendor_id: uuid.UUID
    kind: EventKind
    event_type: str
    raw_payload_hash: str
    received_at: datetime
    occurred_at: Optional[datetime] = None
