import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from app.api.modules.v1.payments.errors import OrderingConflict, TransientStorageFailure
from app.api.modules.v1.payments.models.subscription_model import SubscriptionStatus
from app.api.modules.v1.payments.schemas.payment_event import EventKind
from app.api.modules.v1.payments.schemas.subscription_schema import (
    TransitionOutcome,
    TransitionResult,
    VendorSubscriptionState,
)
from app.api.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

# (event kind, current status) -> next status. Missing pairs are no-ops;
# CANCELLED never appears as a source, which makes it terminal.
TRANSITIONS: Dict[Tuple[EventKind, SubscriptionStatus], SubscriptionStatus] = {
    (EventKind.PAYMENT_CAPTURED, SubscriptionStatus.INACTIVE): SubscriptionStatus.ACTIVE,
    (EventKind.PAYMENT_CAPTURED, SubscriptionStatus.ACTIVE): SubscriptionStatus.ACTIVE,
    (EventKind.PAYMENT_CAPTURED, SubscriptionStatus.PAST_DUE): SubscriptionStatus.ACTIVE,
    (EventKind.PAYMENT_FAILED, SubscriptionStatus.INACTIVE): SubscriptionStatus.INACTIVE,
    (EventKind.PAYMENT_FAILED, SubscriptionStatus.ACTIVE): SubscriptionStatus.PAST_DUE,
    (EventKind.PAYMENT_FAILED, SubscriptionStatus.PAST_DUE): SubscriptionStatus.PAST_DUE,
    (EventKind.SUBSCRIPTION_CANCELLED, SubscriptionStatus.INACTIVE): SubscriptionStatus.CANCELLED,
    (EventKind.SUBSCRIPTION_CANCELLED, SubscriptionStatus.ACTIVE): SubscriptionStatus.CANCELLED,
    (EventKind.SUBSCRIPTION_CANCELLED, SubscriptionStatus.PAST_DUE): SubscriptionStatus.CANCELLED,
}


def next_status(current: SubscriptionStatus, kind: EventKind) -> Optional[SubscriptionStatus]:
    return TRANSITIONS.get((kind, current))


class SubscriptionStateMachine:
    """
    Applies payment events to vendor subscriptions.

    Each attempt reads the current state, computes the next one from
    `TRANSITIONS` and hands it to the store's conditional write, guarded by the
    `last_event_id` that was read. Losing that race means another event for the
    same vendor landed first; the attempt is recomputed from the fresh state.
    """

    def __init__(
        self,
        store,
        write_retries: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.write_retries = max(1, write_retries)
        self.clock = clock

    async def apply(
        self,
        vendor_id: uuid.UUID,
        kind: EventKind,
        event_id: str,
        occurred_at: Optional[datetime] = None,
    ) -> TransitionResult:
        """
        Apply one event to a vendor's subscription.

        Args:
            vendor_id (uuid.UUID): Vendor whose subscription changes.
            kind (EventKind): Normalized event kind.
            event_id (str): Provider event id, recorded as `last_event_id`.
            occurred_at (datetime | None): Provider timestamp, when known.

        Returns:
            TransitionResult: The resulting subscription and whether it changed.

        Raises:
            OrderingConflict: If the event is older than the vendor's last recorded event.
            TransientStorageFailure: If the store is unreachable or the write kept losing races.
        """
        for attempt in range(1, self.write_retries + 1):
            current = await self.store.read(vendor_id)

            if current.last_event_id == event_id:
                logger.info(
                    "Event %s already recorded on vendor %s subscription", event_id, vendor_id
                )
                return self._no_op(current)

            if self._is_out_of_order(current, occurred_at):
                logger.warning(
                    "Ignoring out-of-order event %s for vendor %s: occurred at %s, "
                    "before last event %s at %s",
                    event_id,
                    vendor_id,
                    occurred_at.isoformat(),
                    current.last_event_id,
                    current.last_event_at.isoformat(),
                )
                raise OrderingConflict(
                    "Event is older than the vendor's last recorded event",
                    event_id=event_id,
                    last_event_id=current.last_event_id,
                )

            target = next_status(current.status, kind)
            if target is None:
                logger.info(
                    "Event %s (%s) is a no-op for vendor %s in status %s",
                    event_id,
                    kind.value,
                    vendor_id,
                    current.status.value,
                )
                return self._no_op(current)

            new_state = current.model_copy(
                update={
                    "status": target,
                    "last_event_id": event_id,
                    "last_event_at": occurred_at,
                    "last_transition_at": self.clock(),
                }
            )
            if await self.store.conditional_write(vendor_id, current.last_event_id, new_state):
                logger.info(
                    "Vendor %s subscription %s -> %s (event %s)",
                    vendor_id,
                    current.status.value,
                    target.value,
                    event_id,
                )
                return TransitionResult(
                    subscription=new_state,
                    previous_status=current.status,
                    outcome=TransitionOutcome.TRANSITIONED,
                )

            logger.info(
                "Concurrent update on vendor %s subscription while applying %s (attempt %d/%d)",
                vendor_id,
                event_id,
                attempt,
                self.write_retries,
            )

        logger.error(
            "Gave up applying event %s to vendor %s after %d conflicting writes",
            event_id,
            vendor_id,
            self.write_retries,
        )
        raise TransientStorageFailure("Subscription write kept conflicting", event_id)

    @staticmethod
    def _is_out_of_order(
        current: VendorSubscriptionState, occurred_at: Optional[datetime]
    ) -> bool:
        # Ordering is only derivable when both sides carry a provider timestamp.
        if occurred_at is None or current.last_event_at is None:
            return False
        return occurred_at < current.last_event_at

    @staticmethod
    def _no_op(current: VendorSubscriptionState) -> TransitionResult:
        return TransitionResult(
            subscription=current,
            previous_status=current.status,
            outcome=TransitionOutcome.NO_OP,
        )
