import logging

from fastapi import APIRouter, Depends, Request, status

from app.api.modules.v1.payments.dependencies import get_webhook_controller
from app.api.modules.v1.payments.routes.docs.webhook_route_docs import (
    payment_webhook_responses,
)
from app.api.modules.v1.payments.service.webhook_controller import WebhookController
from app.api.utils.response_payloads import error_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post(
    "/webhook",
    status_code=status.HTTP_200_OK,
    summary="Payment provider webhook endpoint",
    responses=payment_webhook_responses,
)
async def payment_webhook(
    request: Request,
    controller: WebhookController = Depends(get_webhook_controller),
):
    """
    Payment provider webhook receiver.

    The raw body is read untouched so the signature is checked over the exact
    bytes the provider signed.

    Returns:
    - 200: Event applied, ignored as a no-op, or already processed
    - 400: Signature or payload rejected (provider should not retry)
    - 500: Temporary failure (provider should retry)
    """
    payload = await request.body()
    signature = request.headers.get(controller.signature_header)

    result = await controller.handle(payload, signature)

    if result.ok:
        return success_response(
            status_code=result.status_code, message=result.message, data=result.data
        )
    return error_response(
        status_code=result.status_code, message=result.message, error=result.error or "ERROR"
    )
