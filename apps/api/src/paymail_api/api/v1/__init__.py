from fastapi import APIRouter

from .endpoints import billing_webhooks, health, observability

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(billing_webhooks.router)
router.include_router(observability.router)
