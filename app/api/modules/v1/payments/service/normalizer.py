import hashlib
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from app.api.modules.v1.payments.errors import MalformedPayload, UnknownVendor
from app.api.modules.v1.payments.schemas.payment_event import EventKind, PaymentEvent
from app.api.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

MAX_EVENT_ID_LENGTH = 255

# Provider event types, grouped by the subscription effect they have.
PAYMENT_CAPTURED_TYPES = frozenset(
    {
        "invoice.paid",
        "invoice.payment_succeeded",
        "payment_intent.succeeded",
        "checkout.session.completed",
    }
)
PAYMENT_FAILED_TYPES = frozenset(
    {
        "invoice.payment_failed",
        "payment_intent.payment_failed",
    }
)
SUBSCRIPTION_CANCELLED_TYPES = frozenset({"customer.subscription.deleted"})


def classify_event_type(event_type: str) -> EventKind:
    if event_type in PAYMENT_CAPTURED_TYPES:
        return EventKind.PAYMENT_CAPTURED
    if event_type in PAYMENT_FAILED_TYPES:
        return EventKind.PAYMENT_FAILED
    if event_type in SUBSCRIPTION_CANCELLED_TYPES:
        return EventKind.SUBSCRIPTION_CANCELLED
    return EventKind.UNKNOWN


def hash_payload(raw_body: bytes) -> str:
    return hashlib.sha256(raw_body).hexdigest()


class EventNormalizer:
    """
    Turns a provider webhook body into a PaymentEvent.

    The body is expected to be a Stripe-style event envelope::

        {"id": "evt_...", "type": "invoice.paid", "created": 1731000000,
         "data": {"object": {"metadata": {"vendor_id": "<uuid>"}}}}

    The vendor reference is read from `data.object.metadata.vendor_id`, falling
    back to a top-level `vendor_id`.
    """

    def __init__(self, vendor_directory, clock: Callable[[], datetime] = utcnow):
        self.vendor_directory = vendor_directory
        self.clock = clock

    async def normalize(self, raw_body: bytes) -> PaymentEvent:
        """
        Parse and classify a webhook body.

        Args:
            raw_body (bytes): Verified raw request body.

        Returns:
            PaymentEvent: The normalized, immutable event.

        Raises:
            MalformedPayload: If required fields are missing or of the wrong shape.
            UnknownVendor: If the vendor reference is not a registered vendor.
            TransientStorageFailure: If the vendor directory cannot be reached.
        """
        payload = self._parse_body(raw_body)

        event_id = payload.get("id")
        if not isinstance(event_id, str) or not event_id.strip():
            raise MalformedPayload("Event id is missing")
        if len(event_id) > MAX_EVENT_ID_LENGTH:
            raise MalformedPayload("Event id is too long", event_id=event_id)

        event_type = payload.get("type")
        if not isinstance(event_type, str) or not event_type.strip():
            raise MalformedPayload("Event type is missing", event_id=event_id)

        occurred_at = self._parse_created(payload.get("created"), event_id)
        vendor_id = self._extract_vendor_id(payload, event_id)

        if not await self.vendor_directory.vendor_exists(vendor_id):
            logger.warning("Webhook event %s references unknown vendor %s", event_id, vendor_id)
            raise UnknownVendor(f"Unknown vendor {vendor_id}", event_id=event_id)

        kind = classify_event_type(event_type)
        if kind == EventKind.UNKNOWN:
            logger.info("Webhook event %s has unhandled type %s", event_id, event_type)

        return PaymentEvent(
            event_id=event_id,
            vendor_id=vendor_id,
            kind=kind,
            event_type=event_type,
            raw_payload_hash=hash_payload(raw_body),
            received_at=self.clock(),
            occurred_at=occurred_at,
        )

    @staticmethod
    def _parse_body(raw_body: bytes) -> Dict[str, Any]:
        if not raw_body:
            raise MalformedPayload("Empty payload")
        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedPayload("Payload is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedPayload("Payload must be a JSON object")
        return payload

    @staticmethod
    def _parse_created(created: Any, event_id: str) -> Optional[datetime]:
        if created is None:
            return None
        if isinstance(created, bool) or not isinstance(created, (int, float)) or created < 0:
            raise MalformedPayload("Event timestamp is invalid", event_id=event_id)
        try:
            return datetime.fromtimestamp(created, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise MalformedPayload("Event timestamp is out of range", event_id=event_id) from exc

    @staticmethod
    def _extract_vendor_id(payload: Dict[str, Any], event_id: str) -> uuid.UUID:
        data = payload.get("data")
        if data is not None and not isinstance(data, dict):
            raise MalformedPayload("Event data must be an object", event_id=event_id)

        data_obj = (data or {}).get("object")
        if data_obj is not None and not isinstance(data_obj, dict):
            raise MalformedPayload("Event data.object must be an object", event_id=event_id)

        metadata = (data_obj or {}).get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            raise MalformedPayload("Event metadata must be an object", event_id=event_id)

        vendor_ref = (metadata or {}).get("vendor_id") or payload.get("vendor_id")
        if not isinstance(vendor_ref, str) or not vendor_ref:
            raise MalformedPayload("Vendor reference is missing", event_id=event_id)

        try:
            return uuid.UUID(vendor_ref)
        except ValueError as exc:
            raise MalformedPayload("Vendor reference is not a valid id", event_id=event_id) from exc
