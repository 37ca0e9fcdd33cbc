import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.modules.v1.payments.errors import TransientStorageFailure
from app.api.modules.v1.vendors.models.vendor_model import Vendor

logger = logging.getLogger(__name__)


class VendorDirectory:
    """Read-only vendor lookups used by the payment pipeline."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def vendor_exists(self, vendor_id: uuid.UUID) -> bool:
        """
        Check whether a vendor with the given id is registered.

        Args:
            vendor_id (uuid.UUID): Vendor identifier taken from a payment payload.

        Returns:
            bool: True when the vendor row exists.

        Raises:
            TransientStorageFailure: If the vendor table cannot be queried.
        """
        try:
            result = await self.db.execute(select(Vendor.id).where(Vendor.id == vendor_id))
            return result.scalar_one_or_none() is not None
        except SQLAlchemyError as exc:
            logger.error("Vendor lookup failed for vendor_id=%s: %s", vendor_id, exc)
            raise TransientStorageFailure("Vendor directory unavailable") from exc
