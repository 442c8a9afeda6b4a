"""Subscription Router - Hauler subscription checkout, manual subscribe and summary."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from livestockway.db import get_async_db
from livestockway.dependencies import get_stripe_gateway, get_task_queue, require_hauler
from livestockway.models.user import User

from .schemas import (
    CheckoutResponse,
    SubscribeResponse,
    SubscriptionRequest,
    SubscriptionSummaryResponse,
)
from .service import (
    create_subscription_checkout as service_create_subscription_checkout,
    get_hauler_subscription as service_get_hauler_subscription,
    subscribe_hauler as service_subscribe_hauler,
)

router = APIRouter(tags=["Subscriptions"])


@router.post("/stripe/subscription/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    request: SubscriptionRequest,
    user: User = Depends(require_hauler),
    db: AsyncSession = Depends(get_async_db),
    gateway=Depends(get_stripe_gateway),
    task_queue=Depends(get_task_queue),
):
    return await service_create_subscription_checkout(
        db, user=user, request=request, gateway=gateway, task_queue=task_queue
    )


@router.get("/hauler/subscription", response_model=SubscriptionSummaryResponse)
async def get_hauler_subscription(
    user: User = Depends(require_hauler),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_get_hauler_subscription(db, user=user)


@router.post("/hauler/subscription/subscribe", response_model=SubscribeResponse)
async def subscribe(
    request: SubscriptionRequest,
    user: User = Depends(require_hauler),
    db: AsyncSession = Depends(get_async_db),
    task_queue=Depends(get_task_queue),
):
    return await service_subscribe_hauler(db, user=user, request=request, task_queue=task_queue)
