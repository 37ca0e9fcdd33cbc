import asyncio
import json
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock
from uuid import UUID

import pytest

from app.api.core.config import settings
from app.api.modules.v1.payments.models import SubscriptionStatus
from app.api.modules.v1.payments.schemas import EventKind, PaymentEvent, VendorSubscriptionState
from app.api.modules.v1.payments.service.normalizer import hash_payload
from app.api.modules.v1.payments.service.signature import compute_signature


class InMemorySubscriptionStore:
    """
    Subscription store backed by a dict.

    Every call yields to the event loop so concurrent `apply` calls interleave
    between the read and the conditional write.
    """

    def __init__(self):
        self.rows = {}
        self.writes = []

    def seed(self, vendor_id: UUID, status=SubscriptionStatus.INACTIVE, **fields):
        self.rows[vendor_id] = VendorSubscriptionState(vendor_id=vendor_id, status=status, **fields)

    async def read(self, vendor_id: UUID) -> VendorSubscriptionState:
        await asyncio.sleep(0)
        return self.rows.get(vendor_id) or VendorSubscriptionState(vendor_id=vendor_id)

    async def conditional_write(
        self,
        vendor_id: UUID,
        expected_last_event_id: Optional[str],
        new_state: VendorSubscriptionState,
    ) -> bool:
        await asyncio.sleep(0)
        current = self.rows.get(vendor_id)
        current_last = current.last_event_id if current else None
        if current_last != expected_last_event_id:
            return False
        self.rows[vendor_id] = new_state
        self.writes.append((vendor_id, new_state.last_event_id, new_state.status))
        return True


@pytest.fixture
def subscription_store():
    return InMemorySubscriptionStore()


@pytest.fixture
def vendor_directory():
    directory = AsyncMock()
    directory.vendor_exists.return_value = True
    return directory


@pytest.fixture
def webhook_body():
    """Build a Stripe-style event envelope for a vendor."""

    def _build(event_id, event_type, vendor_id, created=None, **extra) -> bytes:
        payload = {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": {"metadata": {"vendor_id": str(vendor_id)}}},
        }
        if created is not None:
            payload["created"] = created
        payload.update(extra)
        return json.dumps(payload).encode("utf-8")

    return _build


@pytest.fixture
def sign():
    def _sign(body: bytes, secret: Optional[str] = None) -> str:
        if secret is None:
            secret = settings.PAYMENT_WEBHOOK_SECRET.get_secret_value()
        return compute_signature(body, secret.encode("utf-8"))

    return _sign


@pytest.fixture
def make_event():
    def _make(
        event_id,
        vendor_id,
        kind=EventKind.PAYMENT_CAPTURED,
        body: Optional[bytes] = None,
        occurred_at: Optional[datetime] = None,
    ) -> PaymentEvent:
        raw = body if body is not None else event_id.encode("utf-8")
        return PaymentEvent(
            event_id=event_id,
            vendor_id=vendor_id,
            kind=kind,
            event_type="invoice.paid",
            raw_payload_hash=hash_payload(raw),
            received_at=datetime.now(timezone.utc),
            occurred_at=occurred_at,
        )

    return _make
