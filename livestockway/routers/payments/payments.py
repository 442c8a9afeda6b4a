"""Payments Router - Trip escrow payments: creation, listing, fee quotes, funding and release."""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from livestockway.db import get_async_db
from livestockway.dependencies import get_current_user, get_stripe_gateway, get_task_queue
from livestockway.models.user import User

from .schemas import (
    CreatePaymentRequest,
    FeeBreakdownResponse,
    FundingIntentResponse,
    PaymentResponse,
    ReleasePayoutResponse,
)
from .service import (
    create_trip_payment as service_create_trip_payment,
    fund_payment as service_fund_payment,
    get_fee_quote as service_get_fee_quote,
    get_trip_payment as service_get_trip_payment,
    list_payments as service_list_payments,
    release_payment as service_release_payment,
)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("", response_model=List[PaymentResponse])
async def list_payments(
    role: Optional[Literal["payer", "payee"]] = Query(None, description="Only payments where the user pays or receives"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_list_payments(db, user=user, role=role)


@router.post("", response_model=PaymentResponse, status_code=201)
async def create_payment(
    request: CreatePaymentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    task_queue=Depends(get_task_queue),
):
    """The caller becomes the payer of a new escrow payment for the trip."""
    return await service_create_trip_payment(db, user=user, request=request, task_queue=task_queue)


@router.get("/quote", response_model=FeeBreakdownResponse)
async def get_fee_quote(
    amount_cents: int = Query(..., ge=0, description="Amount the hauler should receive, in cents"),
    user: User = Depends(get_current_user),
):
    return service_get_fee_quote(amount_cents=amount_cents)


@router.get("/trip/{trip_id}", response_model=PaymentResponse)
async def get_trip_payment(
    trip_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_get_trip_payment(db, user=user, trip_id=trip_id)


@router.post("/{payment_id}/fund", response_model=FundingIntentResponse)
async def fund_payment(
    payment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    gateway=Depends(get_stripe_gateway),
    task_queue=Depends(get_task_queue),
):
    return await service_fund_payment(
        db, user=user, payment_id=payment_id, gateway=gateway, task_queue=task_queue
    )


@router.post("/{payment_id}/release", response_model=ReleasePayoutResponse)
async def release_payment(
    payment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    gateway=Depends(get_stripe_gateway),
    task_queue=Depends(get_task_queue),
):
    return await service_release_payment(
        db, user=user, payment_id=payment_id, gateway=gateway, task_queue=task_queue
    )
