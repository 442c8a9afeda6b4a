"""Stripe Connect Router - Hauler onboarding and account status."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from livestockway.db import get_async_db
from livestockway.dependencies import get_stripe_gateway, require_hauler
from livestockway.models.user import User

from .schemas import AccountLinkResponse, ConnectStatusResponse, StripeConfigResponse
from .service import (
    create_connect_onboarding_link as service_create_connect_onboarding_link,
    get_connect_status as service_get_connect_status,
    get_stripe_config as service_get_stripe_config,
)

router = APIRouter(prefix="/stripe", tags=["Stripe Connect"])


@router.get("/config", response_model=StripeConfigResponse)
async def get_stripe_config(gateway=Depends(get_stripe_gateway)):
    return service_get_stripe_config(gateway=gateway)


@router.post("/connect/onboard", response_model=AccountLinkResponse)
async def create_onboarding_link(
    user: User = Depends(require_hauler),
    db: AsyncSession = Depends(get_async_db),
    gateway=Depends(get_stripe_gateway),
):
    return await service_create_connect_onboarding_link(db, user=user, gateway=gateway)


@router.get("/connect/status", response_model=ConnectStatusResponse)
async def get_connect_status(
    user: User = Depends(require_hauler),
    db: AsyncSession = Depends(get_async_db),
    gateway=Depends(get_stripe_gateway),
):
    return await service_get_connect_status(db, user=user, gateway=gateway)
