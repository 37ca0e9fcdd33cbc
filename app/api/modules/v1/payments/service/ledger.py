import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from app.api.modules.v1.payments.errors import MalformedPayload, TransientStorageFailure
from app.api.modules.v1.payments.models.event_ledger_model import LedgerStatus
from app.api.modules.v1.payments.schemas.ledger_schema import BeginResult, IdempotencyRecord
from app.api.modules.v1.payments.schemas.payment_event import PaymentEvent
from app.api.modules.v1.payments.schemas.subscription_schema import VendorSubscriptionState
from app.api.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

RECONCILED_OUTCOME = "reconciled"
SUPERSEDED_OUTCOME = "superseded"


class IdempotencyLedger:
    """
    Records which provider events have been handled.

    Exactly one caller wins `begin_processing` for an event id; everyone else
    sees `IN_FLIGHT` or `ALREADY_PROCESSED`. A `processing` record whose side
    effect is already visible on the vendor subscription (its `last_event_id`)
    is promoted to `processed` instead of being handed out again. A stale
    claim is only taken over while the subscription shows no transition since
    the claim was made; otherwise the event may already be buried under a
    later one and is closed as `superseded`.

    Instances are request scoped: the lease won in `begin_processing` is kept
    on the instance and used by `mark_processed` / `mark_failed`.
    """

    def __init__(
        self,
        store,
        subscription_store,
        processing_timeout_seconds: int = 300,
        mark_retries: int = 3,
        retry_backoff: float = 0.1,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.subscription_store = subscription_store
        self.processing_timeout = timedelta(seconds=processing_timeout_seconds)
        self.mark_retries = max(1, mark_retries)
        self.retry_backoff = retry_backoff
        self.clock = clock
        self._claims: Dict[str, IdempotencyRecord] = {}

    async def begin_processing(self, event: PaymentEvent) -> BeginResult:
        """
        Try to claim `event` for processing.

        Args:
            event (PaymentEvent): Normalized event about to be applied.

        Returns:
            BeginResult: FRESH if this caller must apply the event, otherwise
            ALREADY_PROCESSED or IN_FLIGHT.

        Raises:
            MalformedPayload: If the event id was seen before with a different payload.
            TransientStorageFailure: If the ledger store is unreachable.
        """
        claim = self._new_claim(event)
        if await self.store.create_if_absent(claim):
            return self._claimed(claim, "Claimed")

        existing = await self.store.get(event.event_id)
        if existing is None:
            # The previous holder released it between our insert and read.
            if await self.store.create_if_absent(claim):
                return self._claimed(claim, "Claimed")
            logger.info("Webhook event %s is contended, reporting in flight", event.event_id)
            return BeginResult.IN_FLIGHT

        if existing.payload_hash != event.raw_payload_hash:
            logger.warning(
                "Webhook event %s redelivered with a different payload; rejecting",
                event.event_id,
            )
            raise MalformedPayload("Event id reused with a different payload", event.event_id)

        if existing.status == LedgerStatus.PROCESSED:
            logger.info(
                "Webhook event %s already processed (outcome=%s)",
                event.event_id,
                existing.outcome,
            )
            return BeginResult.ALREADY_PROCESSED

        subscription = await self.subscription_store.read(event.vendor_id)
        if subscription.last_event_id == event.event_id:
            await self._promote(existing, RECONCILED_OUTCOME)
            logger.info(
                "Webhook event %s was applied but never marked; ledger reconciled",
                event.event_id,
            )
            return BeginResult.ALREADY_PROCESSED

        if self._is_stale(existing):
            if _transitioned_since(subscription, existing.claimed_at):
                return await self._close_superseded(existing)
            takeover = existing.model_copy(
                update={"lease_token": uuid.uuid4().hex, "claimed_at": self.clock()}
            )
            if await self.store.compare_and_set(takeover, existing.lease_token):
                return self._claimed(takeover, "Took over stale claim on")

        logger.info("Webhook event %s is already being processed", event.event_id)
        return BeginResult.IN_FLIGHT

    async def mark_processed(self, event_id: str, outcome: str) -> None:
        """
        Record that the event's side effect has been applied.

        Raises:
            TransientStorageFailure: If every attempt to write the record failed.
        """
        claim = self._claims.get(event_id)
        if claim is None:
            logger.error("mark_processed called for unclaimed webhook event %s", event_id)
            return

        done = claim.model_copy(
            update={
                "status": LedgerStatus.PROCESSED,
                "outcome": outcome,
                "processed_at": self.clock(),
            }
        )

        last_error: Optional[TransientStorageFailure] = None
        for attempt in range(1, self.mark_retries + 1):
            try:
                marked = await self.store.compare_and_set(done, claim.lease_token)
            except TransientStorageFailure as exc:
                last_error = exc
                logger.warning(
                    "Marking webhook event %s processed failed (attempt %d/%d)",
                    event_id,
                    attempt,
                    self.mark_retries,
                )
                if attempt < self.mark_retries and self.retry_backoff:
                    await asyncio.sleep(self.retry_backoff * (2 ** (attempt - 1)))
                continue

            self._claims.pop(event_id, None)
            if marked:
                logger.info("Webhook event %s marked processed (%s)", event_id, outcome)
            else:
                logger.warning(
                    "Lost the claim on webhook event %s before marking it processed", event_id
                )
            return

        logger.error(
            "Webhook event %s applied but left in processing after %d attempts",
            event_id,
            self.mark_retries,
        )
        raise TransientStorageFailure(
            "Could not mark event processed", event_id
        ) from last_error

    async def mark_failed(self, event_id: str) -> None:
        """
        Release the claim so the provider's next delivery is treated as fresh.

        Raises:
            TransientStorageFailure: If the ledger store is unreachable.
        """
        claim = self._claims.pop(event_id, None)
        if claim is None:
            logger.error("mark_failed called for unclaimed webhook event %s", event_id)
            return
        released = await self.store.delete(event_id, claim.lease_token)
        if released:
            logger.info("Released claim on webhook event %s for retry", event_id)
        else:
            logger.warning("Claim on webhook event %s was already gone", event_id)

    async def reconcile(self, limit: int = 500) -> int:
        """
        Promote `processing` records whose side effect is already durable.

        Run at startup to repair records left behind when an instance applied
        a transition but died (or lost the store) before marking it.

        Returns:
            int: Number of records promoted to processed.
        """
        repaired = 0
        for record in await self.store.list_processing(limit=limit):
            if record.vendor_id is None:
                continue
            subscription = await self.subscription_store.read(record.vendor_id)
            if subscription.last_event_id == record.event_id:
                outcome = RECONCILED_OUTCOME
            elif self._is_stale(record) and _transitioned_since(subscription, record.claimed_at):
                outcome = SUPERSEDED_OUTCOME
            else:
                continue
            if await self._promote(record, outcome):
                repaired += 1
                logger.info("Closed webhook event %s as %s", record.event_id, outcome)

        if repaired:
            logger.info("Ledger reconciliation promoted %d webhook events", repaired)
        return repaired

    def _new_claim(self, event: PaymentEvent) -> IdempotencyRecord:
        now = self.clock()
        return IdempotencyRecord(
            event_id=event.event_id,
            vendor_id=event.vendor_id,
            status=LedgerStatus.PROCESSING,
            payload_hash=event.raw_payload_hash,
            lease_token=uuid.uuid4().hex,
            first_seen_at=now,
            claimed_at=now,
        )

    def _claimed(self, claim: IdempotencyRecord, verb: str) -> BeginResult:
        self._claims[claim.event_id] = claim
        logger.info("%s webhook event %s for processing", verb, claim.event_id)
        return BeginResult.FRESH

    def _is_stale(self, record: IdempotencyRecord) -> bool:
        return self.clock() - record.claimed_at > self.processing_timeout

    async def _close_superseded(self, record: IdempotencyRecord) -> BeginResult:
        if not await self._promote(record, SUPERSEDED_OUTCOME):
            logger.info("Webhook event %s changed hands, reporting in flight", record.event_id)
            return BeginResult.IN_FLIGHT
        logger.warning(
            "Stale claim on webhook event %s predates a later subscription transition; "
            "closed as superseded instead of reapplying",
            record.event_id,
        )
        return BeginResult.ALREADY_PROCESSED

    async def _promote(self, record: IdempotencyRecord, outcome: str) -> bool:
        done = record.model_copy(
            update={
                "status": LedgerStatus.PROCESSED,
                "outcome": outcome,
                "processed_at": self.clock(),
            }
        )
        return await self.store.compare_and_set(done, record.lease_token)


def _transitioned_since(subscription: VendorSubscriptionState, moment: datetime) -> bool:
    # A write after the claim means this event was applied or a later one landed first.
    changed_at = subscription.last_transition_at
    return changed_at is not None and changed_at >= moment
