from fastapi import APIRouter

from . import payments, stripe_connect, stripe_webhook, subscriptions

router = APIRouter()
router.include_router(stripe_webhook.router)
router.include_router(stripe_connect.router)
router.include_router(subscriptions.router)
router.include_router(payments.router)
