"""Error taxonomy for payment webhook ingestion."""

from typing import Optional


class PaymentWebhookError(Exception):
    """Base class for every error raised on the webhook path."""

    def __init__(self, detail: str, event_id: Optional[str] = None):
        self.detail = detail
        self.event_id = event_id
        super().__init__(detail)


class AuthenticationFailure(PaymentWebhookError):
    """Signature missing or not produced with the shared secret. Never retried."""


class NormalizationError(PaymentWebhookError):
    """The payload could not be turned into a PaymentEvent."""


class MalformedPayload(NormalizationError):
    """Required fields are absent, of the wrong shape, or the event id was reused."""


class UnknownVendor(NormalizationError):
    """The vendor reference does not resolve to a registered vendor."""


class TransientStorageFailure(PaymentWebhookError):
    """A backing store is unreachable or a conditional write kept losing races."""


class OrderingConflict(PaymentWebhookError):
    """The event is older than the one that produced the vendor's current status."""

    def __init__(self, detail: str, event_id: Optional[str] = None, last_event_id=None):
        self.last_event_id = last_event_id
        super().__init__(detail, event_id=event_id)
