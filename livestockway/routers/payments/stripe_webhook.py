"""Stripe Webhook Router - Handles Stripe webhook events."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from livestockway.db import get_async_db
from livestockway.dependencies import get_stripe_gateway, get_task_queue

from .service import process_stripe_webhook as service_process_stripe_webhook

router = APIRouter(prefix="/stripe/webhook", tags=["Stripe Webhooks"])


@router.post("")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    db: AsyncSession = Depends(get_async_db),
    gateway=Depends(get_stripe_gateway),
    task_queue=Depends(get_task_queue),
):
    return await service_process_stripe_webhook(
        db,
        request=request,
        stripe_signature=stripe_signature,
        gateway=gateway,
        task_queue=task_queue,
    )
