import logging
import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.modules.v1.payments.errors import TransientStorageFailure
from app.api.modules.v1.payments.models.subscription_model import VendorSubscription
from app.api.modules.v1.payments.schemas.subscription_schema import VendorSubscriptionState
from app.api.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)


class SqlSubscriptionStore:
    """Vendor subscriptions in `vendor_subscriptions`, one row per vendor."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def read(self, vendor_id: uuid.UUID) -> VendorSubscriptionState:
        """
        Load the vendor's subscription, defaulting to `inactive` for vendors
        that have never had a transition.

        Raises:
            TransientStorageFailure: If the table cannot be queried.
        """
        stmt = (
            select(VendorSubscription)
            .where(VendorSubscription.vendor_id == vendor_id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Subscription read failed for vendor %s: %s", vendor_id, exc)
            raise TransientStorageFailure("Subscription store unavailable") from exc

        row = result.scalar_one_or_none()
        if row is None:
            return VendorSubscriptionState(vendor_id=vendor_id)

        return VendorSubscriptionState(
            vendor_id=row.vendor_id,
            status=row.status,
            last_event_id=row.last_event_id,
            last_event_at=ensure_utc(row.last_event_at),
            last_transition_at=ensure_utc(row.last_transition_at),
        )

    async def conditional_write(
        self,
        vendor_id: uuid.UUID,
        expected_last_event_id: Optional[str],
        new_state: VendorSubscriptionState,
    ) -> bool:
        """
        Write `new_state` only if the stored `last_event_id` still equals
        `expected_last_event_id`.

        Status and event bookkeeping go out in one statement, so readers never
        see a status without the event id that produced it.

        Returns:
            bool: False when another writer got there first.

        Raises:
            TransientStorageFailure: If the write fails for any other reason.
        """
        values = {
            "status": new_state.status,
            "last_event_id": new_state.last_event_id,
            "last_event_at": new_state.last_event_at,
            "last_transition_at": new_state.last_transition_at,
        }
        if expected_last_event_id is None:
            guard = VendorSubscription.last_event_id.is_(None)
        else:
            guard = VendorSubscription.last_event_id == expected_last_event_id

        stmt = (
            update(VendorSubscription)
            .where(VendorSubscription.vendor_id == vendor_id, guard)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db.execute(stmt)
            if result.rowcount == 1:
                await self.db.commit()
                return True

            if expected_last_event_id is not None:
                await self.db.rollback()
                return False

            # First transition for this vendor: the unique vendor_id decides races.
            row = VendorSubscription(vendor_id=vendor_id, **values)
            self.db.add(row)
            await self.db.commit()
            self.db.expunge(row)
            return True
        except IntegrityError:
            await self.db.rollback()
            return False
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Subscription write failed for vendor %s: %s", vendor_id, exc)
            raise TransientStorageFailure("Subscription store unavailable") from exc
