import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey
from sqlmodel import Field, SQLModel


class SubscriptionStatus(str, Enum):
    """Lifecycle of a vendor's marketplace subscription."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class VendorSubscription(SQLModel, table=True):
    """
    Current subscription status of a vendor.

    `status`, `last_event_id`, `last_event_at` and `last_transition_at` are only
    ever written together, by a single conditional UPDATE (or the first INSERT).
    """

    __tablename__ = "vendor_subscriptions"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4, primary_key=True, index=True, nullable=False
    )

    vendor_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("vendors.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
            index=True,
        )
    )

    status: SubscriptionStatus = Field(default=SubscriptionStatus.INACTIVE, nullable=False)

    last_event_id: Optional[str] = Field(
        default=None,
        max_length=255,
        nullable=True,
        description="Provider event that produced the current status",
    )

    last_event_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
        description="Provider timestamp of last_event_id, when the provider sent one",
    )

    last_transition_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
