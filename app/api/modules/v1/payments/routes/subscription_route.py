import logging
import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.db.database import get_db
from app.api.modules.v1.payments.errors import TransientStorageFailure
from app.api.modules.v1.payments.routes.docs.webhook_route_docs import (
    vendor_subscription_responses,
)
from app.api.modules.v1.payments.schemas.subscription_schema import VendorSubscriptionResponse
from app.api.modules.v1.payments.service.subscription_store import SqlSubscriptionStore
from app.api.modules.v1.vendors.service.vendor_service import VendorDirectory
from app.api.utils.response_payloads import error_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vendors", tags=["Vendor Subscriptions"])


@router.get(
    "/{vendor_id}/subscription",
    status_code=status.HTTP_200_OK,
    summary="Current subscription status of a vendor",
    responses=vendor_subscription_responses,
)
async def get_vendor_subscription(vendor_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """
    Return the vendor's subscription. Vendors that never had a payment event
    are reported as `inactive`.
    """
    try:
        if not await VendorDirectory(db).vendor_exists(vendor_id):
            return error_response(
                status_code=status.HTTP_404_NOT_FOUND,
                message="Vendor not found",
                error="VENDOR_NOT_FOUND",
            )
        subscription = await SqlSubscriptionStore(db).read(vendor_id)
    except TransientStorageFailure as exc:
        logger.error("Could not load subscription for vendor %s: %s", vendor_id, exc.detail)
        return error_response(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal server error",
        )

    data = VendorSubscriptionResponse(**subscription.model_dump(exclude={"last_event_at"}))
    return success_response(
        status_code=status.HTTP_200_OK,
        message="Subscription retrieved",
        data=data.model_dump(),
    )
