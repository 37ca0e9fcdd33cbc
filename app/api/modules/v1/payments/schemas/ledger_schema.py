import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.api.modules.v1.payments.models.event_ledger_model import LedgerStatus


class BeginResult(str, Enum):
    """What `begin_processing` tells the caller about an event id."""

    FRESH = "fresh"
    ALREADY_PROCESSED = "already_processed"
    IN_FLIGHT = "in_flight"


class IdempotencyRecord(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    event_id: str
    status: LedgerStatus
    payload_hash: str
    lease_token: str
    first_seen_at: datetime
    claimed_at: datetime
    vendor_id: Optional[uuid.UUID] = None
    outcome: Optional[str] = None
    processed_at: Optional[datetime] = None
