"""
Builds the webhook pipeline from process-wide settings.

This is the only place that reads `settings`; every component below receives
its secret, stores and limits through its constructor.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.core.config import settings
from app.api.core.dependencies.redis_service import get_redis_client
from app.api.db.database import get_db
from app.api.modules.v1.payments.service.idempotency_store import (
    RedisIdempotencyStore,
    SqlIdempotencyStore,
)
from app.api.modules.v1.payments.service.ledger import IdempotencyLedger
from app.api.modules.v1.payments.service.normalizer import EventNormalizer
from app.api.modules.v1.payments.service.signature import build_signature_verifier
from app.api.modules.v1.payments.service.state_machine import SubscriptionStateMachine
from app.api.modules.v1.payments.service.subscription_store import SqlSubscriptionStore
from app.api.modules.v1.payments.service.webhook_controller import WebhookController
from app.api.modules.v1.vendors.service.vendor_service import VendorDirectory

REDIS_BACKEND = "redis"
DATABASE_BACKEND = "database"


def get_signature_verifier():
    return build_signature_verifier(
        scheme=settings.PAYMENT_WEBHOOK_SIGNATURE_SCHEME,
        secret=settings.PAYMENT_WEBHOOK_SECRET.get_secret_value(),
        header_name=settings.PAYMENT_WEBHOOK_SIGNATURE_HEADER,
        tolerance=settings.PAYMENT_WEBHOOK_TOLERANCE_SECONDS,
    )


async def build_idempotency_store(db: AsyncSession):
    if settings.IDEMPOTENCY_BACKEND == REDIS_BACKEND:
        client = await get_redis_client()
        return RedisIdempotencyStore(
            client,
            record_ttl_seconds=settings.IDEMPOTENCY_RECORD_TTL_SECONDS,
        )
    if settings.IDEMPOTENCY_BACKEND == DATABASE_BACKEND:
        return SqlIdempotencyStore(db)
    raise ValueError(f"Unsupported idempotency backend: {settings.IDEMPOTENCY_BACKEND}")


async def build_ledger(db: AsyncSession) -> IdempotencyLedger:
    return IdempotencyLedger(
        store=await build_idempotency_store(db),
        subscription_store=SqlSubscriptionStore(db),
        processing_timeout_seconds=settings.IDEMPOTENCY_PROCESSING_TIMEOUT_SECONDS,
        mark_retries=settings.IDEMPOTENCY_MARK_RETRIES,
    )


async def get_webhook_controller(db: AsyncSession = Depends(get_db)) -> WebhookController:
    return WebhookController(
        verifier=get_signature_verifier(),
        normalizer=EventNormalizer(VendorDirectory(db)),
        ledger=await build_ledger(db),
        state_machine=SubscriptionStateMachine(
            SqlSubscriptionStore(db),
            write_retries=settings.SUBSCRIPTION_WRITE_RETRIES,
        ),
    )
