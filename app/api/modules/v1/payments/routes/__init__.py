from fastapi import APIRouter

from app.api.modules.v1.payments.routes.subscription_route import router as subscription
from app.api.modules.v1.payments.routes.webhook_route import router as webhook

payments_router = APIRouter()

payments_router.include_router(webhook)
payments_router.include_router(subscription)


__all__ = ["payments_router"]
