import hashlib
import json
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from app.api.modules.v1.payments.errors import (
    MalformedPayload,
    TransientStorageFailure,
    UnknownVendor,
)
from app.api.modules.v1.payments.schemas import EventKind
from app.api.modules.v1.payments.service.normalizer import EventNormalizer, classify_event_type
from app.api.modules.v1.vendors.service.vendor_service import VendorDirectory

FIXED_NOW = datetime(2025, 11, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "event_type,kind",
    [
        ("invoice.paid", EventKind.PAYMENT_CAPTURED),
        ("invoice.payment_succeeded", EventKind.PAYMENT_CAPTURED),
        ("payment_intent.succeeded", EventKind.PAYMENT_CAPTURED),
        ("checkout.session.completed", EventKind.PAYMENT_CAPTURED),
        ("invoice.payment_failed", EventKind.PAYMENT_FAILED),
        ("payment_intent.payment_failed", EventKind.PAYMENT_FAILED),
        ("customer.subscription.deleted", EventKind.SUBSCRIPTION_CANCELLED),
        ("customer.created", EventKind.UNKNOWN),
    ],
)
def test_classify_event_type(event_type, kind):
    assert classify_event_type(event_type) == kind


@pytest.mark.asyncio
class TestEventNormalizer:
    async def test_normalizes_stripe_envelope(self, vendor_directory, webhook_body):
        vendor_id = uuid4()
        body = webhook_body("evt_100", "invoice.paid", vendor_id, created=1762000000)
        normalizer = EventNormalizer(vendor_directory, clock=lambda: FIXED_NOW)

        event = await normalizer.normalize(body)

        assert event.event_id == "evt_100"
        assert event.vendor_id == vendor_id
        assert event.kind == EventKind.PAYMENT_CAPTURED
        assert event.event_type == "invoice.paid"
        assert event.raw_payload_hash == hashlib.sha256(body).hexdigest()
        assert event.received_at == FIXED_NOW
        assert event.occurred_at == datetime.fromtimestamp(1762000000, tz=timezone.utc)
        vendor_directory.vendor_exists.assert_awaited_once_with(vendor_id)

    async def test_top_level_vendor_id_is_accepted(self, vendor_directory):
        vendor_id = uuid4()
        body = json.dumps(
            {"id": "evt_101", "type": "invoice.payment_failed", "vendor_id": str(vendor_id)}
        ).encode()

        event = await EventNormalizer(vendor_directory).normalize(body)

        assert event.vendor_id == vendor_id
        assert event.kind == EventKind.PAYMENT_FAILED
        assert event.occurred_at is None

    async def test_unhandled_type_normalizes_to_unknown(self, vendor_directory, webhook_body):
        body = webhook_body("evt_102", "customer.updated", uuid4())
        event = await EventNormalizer(vendor_directory).normalize(body)
        assert event.kind == EventKind.UNKNOWN

    @pytest.mark.parametrize(
        "body",
        [
            b"",
            b"not json",
            b"\xff\xfe",
            b"[1, 2, 3]",
            b'"evt_1"',
            json.dumps({"type": "invoice.paid", "vendor_id": str(uuid4())}).encode(),
            json.dumps({"id": "", "type": "invoice.paid", "vendor_id": str(uuid4())}).encode(),
            json.dumps({"id": 42, "type": "invoice.paid", "vendor_id": str(uuid4())}).encode(),
            json.dumps({"id": "x" * 256, "type": "invoice.paid", "vendor_id": str(uuid4())}).encode(),
            json.dumps({"id": "evt_1", "vendor_id": str(uuid4())}).encode(),
            json.dumps({"id": "evt_1", "type": "   ", "vendor_id": str(uuid4())}).encode(),
            json.dumps({"id": "evt_1", "type": "invoice.paid"}).encode(),
            json.dumps({"id": "evt_1", "type": "invoice.paid", "vendor_id": "vendor-1"}).encode(),
            json.dumps({"id": "evt_1", "type": "invoice.paid", "vendor_id": 7}).encode(),
            json.dumps({"id": "evt_1", "type": "invoice.paid", "data": []}).encode(),
            json.dumps({"id": "evt_1", "type": "invoice.paid", "data": {"object": "x"}}).encode(),
            json.dumps(
                {"id": "evt_1", "type": "invoice.paid", "data": {"object": {"metadata": "x"}}}
            ).encode(),
            json.dumps(
                {"id": "evt_1", "type": "invoice.paid", "created": True, "vendor_id": str(uuid4())}
            ).encode(),
            json.dumps(
                {"id": "evt_1", "type": "invoice.paid", "created": -5, "vendor_id": str(uuid4())}
            ).encode(),
            json.dumps(
                {"id": "evt_1", "type": "invoice.paid", "created": "today", "vendor_id": str(uuid4())}
            ).encode(),
            json.dumps(
                {"id": "evt_1", "type": "invoice.paid", "created": 1e20, "vendor_id": str(uuid4())}
            ).encode(),
        ],
    )
    async def test_malformed_payloads_are_rejected(self, vendor_directory, body):
        with pytest.raises(MalformedPayload):
            await EventNormalizer(vendor_directory).normalize(body)
        vendor_directory.vendor_exists.assert_not_awaited()

    async def test_unknown_vendor_is_rejected(self, vendor_directory, webhook_body):
        vendor_directory.vendor_exists.return_value = False
        body = webhook_body("evt_103", "invoice.paid", uuid4())

        with pytest.raises(UnknownVendor) as exc_info:
            await EventNormalizer(vendor_directory).normalize(body)

        assert exc_info.value.event_id == "evt_103"

    async def test_directory_outage_propagates(self, vendor_directory, webhook_body):
        vendor_directory.vendor_exists.side_effect = TransientStorageFailure("down")
        body = webhook_body("evt_104", "invoice.paid", uuid4())

        with pytest.raises(TransientStorageFailure):
            await EventNormalizer(vendor_directory).normalize(body)


@pytest.mark.asyncio
class TestVendorDirectory:
    async def test_vendor_exists(self, test_session, vendor):
        directory = VendorDirectory(test_session)
        assert await directory.vendor_exists(vendor.id) is True
        assert await directory.vendor_exists(uuid4()) is False

    async def test_normalizer_against_database(self, test_session, vendor, webhook_body):
        normalizer = EventNormalizer(VendorDirectory(test_session))

        event = await normalizer.normalize(webhook_body("evt_105", "invoice.paid", vendor.id))
        assert event.vendor_id == vendor.id

        with pytest.raises(UnknownVendor):
            await normalizer.normalize(webhook_body("evt_106", "invoice.paid", uuid4()))
