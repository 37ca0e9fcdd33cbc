from fastapi import APIRouter

from app.api.modules.v1.payments.routes import payments_router

router = APIRouter(prefix="/v1")
router.include_router(payments_router)
