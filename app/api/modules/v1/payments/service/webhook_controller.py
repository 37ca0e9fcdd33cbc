import logging
from typing import Any, Dict, Optional

from fastapi import status
from pydantic import BaseModel, Field

from app.api.modules.v1.payments.errors import (
    MalformedPayload,
    NormalizationError,
    OrderingConflict,
    TransientStorageFailure,
    UnknownVendor,
)
from app.api.modules.v1.payments.schemas.ledger_schema import BeginResult

logger = logging.getLogger(__name__)

ORDERING_CONFLICT_OUTCOME = "ordering_conflict"

_ERROR_CODES = {
    MalformedPayload: "MALFORMED_PAYLOAD",
    UnknownVendor: "UNKNOWN_VENDOR",
}


class WebhookResponse(BaseModel):
    """Provider-facing result of one webhook delivery."""

    status_code: int
    message: str
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status_code == status.HTTP_200_OK


class WebhookController:
    """
    Runs one delivery through verify -> normalize -> ledger -> state machine.

    Status codes:
        200: applied, no-op, ordering conflict, or already processed.
        400: bad signature or unusable payload. The provider should not retry.
        500: storage trouble or the event is in flight elsewhere. The provider retries.
    """

    def __init__(self, verifier, normalizer, ledger, state_machine):
        self.verifier = verifier
        self.normalizer = normalizer
        self.ledger = ledger
        self.state_machine = state_machine

    @property
    def signature_header(self) -> str:
        return self.verifier.header_name

    async def handle(self, raw_body: bytes, signature: Optional[str]) -> WebhookResponse:
        if not self.verifier.verify(raw_body, signature):
            logger.warning(
                "Rejected payment webhook: %s signature",
                "missing" if not signature else "invalid",
            )
            return WebhookResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                message="Invalid webhook signature",
                error="INVALID_SIGNATURE",
            )

        try:
            event = await self.normalizer.normalize(raw_body)
        except NormalizationError as exc:
            logger.warning(
                "Discarded payment webhook event %s: %s", exc.event_id or "<unknown>", exc.detail
            )
            return self._bad_payload(exc)
        except TransientStorageFailure as exc:
            logger.error("Could not normalize payment webhook: %s", exc.detail)
            return self._retry_later("Temporary failure, retry later")

        try:
            claim = await self.ledger.begin_processing(event)
        except MalformedPayload as exc:
            return self._bad_payload(exc)
        except TransientStorageFailure as exc:
            logger.error("Ledger unavailable for webhook event %s: %s", event.event_id, exc.detail)
            return self._retry_later("Temporary failure, retry later")

        if claim == BeginResult.ALREADY_PROCESSED:
            return WebhookResponse(
                status_code=status.HTTP_200_OK,
                message="Event already processed",
                data={"event_id": event.event_id, "action": "already_processed"},
            )
        if claim == BeginResult.IN_FLIGHT:
            return self._retry_later("Event is being processed, retry later")

        subscription_status = None
        try:
            result = await self.state_machine.apply(
                event.vendor_id, event.kind, event.event_id, event.occurred_at
            )
            outcome = result.describe()
            subscription_status = result.subscription.status.value
        except OrderingConflict:
            outcome = ORDERING_CONFLICT_OUTCOME
        except Exception:
            logger.exception("Failed to apply webhook event %s", event.event_id)
            try:
                await self.ledger.mark_failed(event.event_id)
            except TransientStorageFailure:
                logger.exception(
                    "Could not release claim on webhook event %s; it frees up after the "
                    "processing timeout",
                    event.event_id,
                )
            return self._retry_later("Failed to process event")

        try:
            await self.ledger.mark_processed(event.event_id, outcome)
        except TransientStorageFailure:
            logger.error(
                "Webhook event %s applied but not marked processed; reconciliation will repair it",
                event.event_id,
            )

        logger.info(
            "Payment webhook event %s (%s) handled: %s", event.event_id, event.event_type, outcome
        )
        return WebhookResponse(
            status_code=status.HTTP_200_OK,
            message="Webhook processed",
            data={
                "event_id": event.event_id,
                "kind": event.kind.value,
                "action": outcome,
                "subscription_status": subscription_status,
            },
        )

    @staticmethod
    def _bad_payload(exc: NormalizationError) -> WebhookResponse:
        return WebhookResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            message=exc.detail,
            error=_ERROR_CODES.get(type(exc), "INVALID_PAYLOAD"),
        )

    @staticmethod
    def _retry_later(message: str) -> WebhookResponse:
        return WebhookResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message=message,
            error="RETRY_LATER",
        )
