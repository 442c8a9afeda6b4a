"""Payments/Subscription/Connect service layer.

Orchestrates the domain services for HTTP callers and converts domain errors
into HTTP errors with the message passed through.
"""

import logging
from typing import List, Optional

from fastapi import HTTPException, status

import livestockway.core.config as config
from livestockway.services import connect_service, escrow_service, subscription_service
from livestockway.services.audit_service import AuditTrail, flush_audit_events
from livestockway.services.errors import BillingError, InvalidAmount
from livestockway.services.fee_calculator import calculate_shipper_charge
from livestockway.services.webhook_dispatcher import process_stripe_event

from . import repository as payments_repository
from .schemas import (
    AccountLinkResponse,
    CheckoutResponse,
    ConnectStatusResponse,
    CreatePaymentRequest,
    FeeBreakdownResponse,
    FundingIntentResponse,
    PaymentResponse,
    ReleasePayoutResponse,
    StripeConfigResponse,
    SubscribeResponse,
    SubscriptionRequest,
    SubscriptionSummaryResponse,
)

logger = logging.getLogger(__name__)


def _http_error(exc: BillingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


async def process_stripe_webhook(db, *, request, stripe_signature: Optional[str], gateway, task_queue):
    body = await request.body()
    try:
        return await process_stripe_event(
            db, payload=body, signature=stripe_signature, gateway=gateway, task_queue=task_queue
        )
    except BillingError as exc:
        raise _http_error(exc)


def get_stripe_config(*, gateway) -> StripeConfigResponse:
    if not gateway.publishable_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe publishable key not configured",
        )
    return StripeConfigResponse(
        publishable_key=gateway.publishable_key, currency=config.PAYMENTS_DEFAULT_CURRENCY
    )


async def create_connect_onboarding_link(db, *, user, gateway) -> AccountLinkResponse:
    hauler = await payments_repository.get_or_create_hauler(db, user=user)
    try:
        result = await connect_service.create_onboarding_link(db, hauler=hauler, user=user, gateway=gateway)
    except BillingError as exc:
        raise _http_error(exc)
    return AccountLinkResponse(url=result["url"], account_id=result["account_id"])


async def get_connect_status(db, *, user, gateway) -> ConnectStatusResponse:
    hauler = await payments_repository.get_or_create_hauler(db, user=user)
    try:
        result = await connect_service.get_connected_account_status(db, hauler=hauler, gateway=gateway)
    except BillingError as exc:
        raise _http_error(exc)
    return ConnectStatusResponse(**result)


async def create_subscription_checkout(
    db, *, user, request: SubscriptionRequest, gateway, task_queue
) -> CheckoutResponse:
    hauler = await payments_repository.get_or_create_hauler(db, user=user)
    audit = AuditTrail()
    try:
        result = await subscription_service.start_checkout(
            db,
            hauler=hauler,
            user=user,
            billing_cycle=request.billing_cycle,
            gateway=gateway,
            audit=audit,
        )
    except BillingError as exc:
        raise _http_error(exc)
    await flush_audit_events(task_queue, audit.events)
    return CheckoutResponse(**result)


async def get_hauler_subscription(db, *, user) -> SubscriptionSummaryResponse:
    hauler = await payments_repository.get_or_create_hauler(db, user=user)
    summary = await subscription_service.get_subscription_summary(db, hauler=hauler)
    return SubscriptionSummaryResponse(**summary)


async def subscribe_hauler(db, *, user, request: SubscriptionRequest, task_queue) -> SubscribeResponse:
    hauler = await payments_repository.get_or_create_hauler(db, user=user)
    audit = AuditTrail()
    try:
        sub = await subscription_service.subscribe_manually(
            db, hauler=hauler, billing_cycle=request.billing_cycle, audit=audit
        )
    except BillingError as exc:
        raise _http_error(exc)
    await flush_audit_events(task_queue, audit.events)
    return SubscribeResponse(
        subscription_id=sub.id,
        hauler_type=hauler.hauler_type,
        status=sub.status,
        billing_cycle=sub.billing_cycle,
        charged_amount=sub.charged_amount,
        monthly_price=sub.monthly_price,
        yearly_price=subscription_service.charge_for_cycle(sub.monthly_price, subscription_service.YEARLY),
        currency=sub.currency,
        current_period_end=sub.current_period_end,
    )


def get_fee_quote(*, amount_cents: int) -> FeeBreakdownResponse:
    try:
        charge = calculate_shipper_charge(amount_cents)
    except InvalidAmount as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return FeeBreakdownResponse(**charge.as_dict())


async def create_trip_payment(db, *, user, request: CreatePaymentRequest, task_queue) -> PaymentResponse:
    audit = AuditTrail()
    try:
        payment = await escrow_service.create_payment_for_trip(
            db,
            trip_id=request.trip_id,
            payer=user,
            payee_user_id=request.payee_user_id,
            amount_minor=request.amount_cents,
            load_id=request.load_id,
            currency=request.currency,
            audit=audit,
        )
    except InvalidAmount as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except BillingError as exc:
        raise _http_error(exc)
    await flush_audit_events(task_queue, audit.events)
    return PaymentResponse.model_validate(payment)


async def list_payments(db, *, user, role: Optional[str]) -> List[PaymentResponse]:
    try:
        payments = await escrow_service.list_payments_for_user(db, user=user, role=role)
    except BillingError as exc:
        raise _http_error(exc)
    return [PaymentResponse.model_validate(payment) for payment in payments]


async def get_trip_payment(db, *, user, trip_id: int) -> PaymentResponse:
    try:
        payment = await escrow_service.get_payment_for_trip(db, trip_id=trip_id, user=user)
    except BillingError as exc:
        raise _http_error(exc)
    return PaymentResponse.model_validate(payment)


async def fund_payment(db, *, user, payment_id: int, gateway, task_queue) -> FundingIntentResponse:
    payment = await payments_repository.lock_payment(db, payment_id=payment_id)
    audit = AuditTrail()
    try:
        result = await escrow_service.create_funding_intent(
            db, payment=payment, user=user, gateway=gateway, audit=audit
        )
    except InvalidAmount as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except BillingError as exc:
        raise _http_error(exc)
    await flush_audit_events(task_queue, audit.events)
    return FundingIntentResponse(**result)


async def release_payment(db, *, user, payment_id: int, gateway, task_queue) -> ReleasePayoutResponse:
    payment = await payments_repository.lock_payment(db, payment_id=payment_id)
    payee_account_id = None
    if payment is not None:
        payee_account_id = await payments_repository.get_payee_connected_account_id(
            db, payee_user_id=payment.payee_user_id
        )
    audit = AuditTrail()
    try:
        result = await escrow_service.release_payout(
            db,
            payment=payment,
            user=user,
            payee_account_id=payee_account_id,
            gateway=gateway,
            audit=audit,
        )
    except BillingError as exc:
        raise _http_error(exc)
    await flush_audit_events(task_queue, audit.events)
    return ReleasePayoutResponse(**result)
