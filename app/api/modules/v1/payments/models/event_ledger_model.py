import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel


class LedgerStatus(str, Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"


class PaymentEventLedger(SQLModel, table=True):
    """One row per provider event id; the unique constraint is the dedup lock."""

    __tablename__ = "payment_event_ledger"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4, primary_key=True, index=True, nullable=False
    )

    event_id: str = Field(
        max_length=255,
        nullable=False,
        unique=True,
        index=True,
        description="Provider-assigned event id",
    )

    vendor_id: Optional[uuid.UUID] = Field(default=None, nullable=True, index=True)

    status: LedgerStatus = Field(default=LedgerStatus.PROCESSING, nullable=False, index=True)

    payload_hash: str = Field(
        max_length=64, nullable=False, description="SHA-256 of the raw webhook body"
    )

    lease_token: str = Field(
        max_length=64,
        nullable=False,
        description="Changes every time a worker claims the event",
    )

    outcome: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    first_seen_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    claimed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
        description="When the current lease holder claimed the event",
    )

    processed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
