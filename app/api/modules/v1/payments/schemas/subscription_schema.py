import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.api.modules.v1.payments.models.subscription_model import SubscriptionStatus


class VendorSubscriptionState(BaseModel):
    """Immutable snapshot of a vendor subscription as read from the store."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    vendor_id: uuid.UUID
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    last_event_id: Optional[str] = None
    last_event_at: Optional[datetime] = None
    last_transition_at: Optional[datetime] = None


class TransitionOutcome(str, Enum):
    TRANSITIONED = "transitioned"
    NO_OP = "no_op"


class TransitionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    subscription: VendorSubscriptionState
    previous_status: SubscriptionStatus
    outcome: TransitionOutcome

    def describe(self) -> str:
        """Short outcome string stored on the ledger record."""
        if self.outcome == TransitionOutcome.NO_OP:
            return f"no_op:{self.subscription.status.value}"
        return f"transitioned:{self.previous_status.value}->{self.subscription.status.value}"


class VendorSubscriptionResponse(BaseModel):
    vendor_id: uuid.UUID
    status: SubscriptionStatus
    last_event_id: Optional[str] = None
    last_transition_at: Optional[datetime] = None
