"""
Escrow Service - trip payments held by the platform until release.

pending -> pending_funding -> in_escrow -> released, with funding_failed as a
retryable side branch. Webhook updates are conditional on the current status,
so a late or replayed event can never move a payment backwards.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, or_, select, update

import livestockway.core.config as config
from livestockway.models.payment import EscrowPayment
from livestockway.models.user import User
from livestockway.services.errors import (
    InvalidAmount,
    InvalidPaymentRequest,
    InvalidPaymentState,
    PayeeNotFound,
    PaymentNotFound,
)
from livestockway.services.fee_calculator import calculate_shipper_charge

logger = logging.getLogger(__name__)

PENDING = "pending"
PENDING_FUNDING = "pending_funding"
IN_ESCROW = "in_escrow"
FUNDING_FAILED = "funding_failed"
RELEASED = "released"

PAYOUT_PENDING = "pending"
PAYOUT_COMPLETED = "completed"

PAYER = "payer"
PAYEE = "payee"

UNFUNDED_STATES = (PENDING, PENDING_FUNDING)
FUNDABLE_STATES = (PENDING, PENDING_FUNDING, FUNDING_FAILED)


def payout_idempotency_key(payment_id: int) -> str:
    return f"payout_{payment_id}"


def _metadata_payment_id(obj: Dict[str, Any]) -> Optional[int]:
    raw = (obj.get("metadata") or {}).get("payment_id")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _ref_id(value) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("id")
    return value or None


async def _guarded_update(db, payment_id: int, allowed, *criteria, **values) -> bool:
    values["updated_at"] = datetime.utcnow()
    result = await db.execute(
        update(EscrowPayment)
        .where(EscrowPayment.id == payment_id, EscrowPayment.status.in_(allowed), *criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def handle_payment_intent_succeeded(db, intent: Dict[str, Any], *, audit) -> bool:
    payment_id = _metadata_payment_id(intent)
    if payment_id is None:
        logger.info("PaymentIntent %s has no payment_id metadata; ignoring", intent.get("id"))
        return False

    values = {
        "status": IN_ESCROW,
        "stripe_payment_intent_id": intent.get("id"),
        "funded_at": datetime.utcnow(),
    }
    charge_id = _ref_id(intent.get("latest_charge"))
    if charge_id:
        values["stripe_charge_id"] = charge_id

    if not await _guarded_update(db, payment_id, UNFUNDED_STATES, **values):
        logger.info("Payment %s not awaiting funds; succeeded event ignored", payment_id)
        return False

    logger.info("Payment %s funded by %s", payment_id, intent.get("id"))
    audit.record(
        "PAYMENT_FUNDED",
        event_type="payment_intent.succeeded",
        resource=f"payment:{payment_id}",
        payment_intent_id=intent.get("id"),
        amount_minor=intent.get("amount"),
    )
    return True


async def handle_payment_intent_failed(db, intent: Dict[str, Any], *, audit) -> bool:
    payment_id = _metadata_payment_id(intent)
    if payment_id is None:
        return False

    if not await _guarded_update(db, payment_id, UNFUNDED_STATES, status=FUNDING_FAILED):
        logger.info("Payment %s not awaiting funds; failed event ignored", payment_id)
        return False

    error = intent.get("last_payment_error") or {}
    logger.warning("Funding failed for payment %s: %s", payment_id, error.get("message"))
    audit.record(
        "PAYMENT_FUNDING_FAILED",
        event_type="payment_intent.payment_failed",
        resource=f"payment:{payment_id}",
        payment_intent_id=intent.get("id"),
        reason=error.get("message"),
    )
    return True


async def handle_transfer_created(db, transfer: Dict[str, Any], *, audit) -> bool:
    payment_id = _metadata_payment_id(transfer)
    if payment_id is None:
        return False

    # A transfer that went out while the release was rolled back still
    # releases the payment
    now = datetime.utcnow()
    result = await db.execute(
        update(EscrowPayment)
        .where(EscrowPayment.id == payment_id)
        .values(
            status=case((EscrowPayment.status == IN_ESCROW, RELEASED), else_=EscrowPayment.status),
            released_at=func.coalesce(EscrowPayment.released_at, now),
            stripe_transfer_id=transfer.get("id"),
            payout_status=PAYOUT_COMPLETED,
            payout_completed_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        logger.warning("Transfer %s references unknown payment %s", transfer.get("id"), payment_id)
        return False

    audit.record(
        "PAYOUT_COMPLETED",
        event_type="transfer.created",
        resource=f"payment:{payment_id}",
        transfer_id=transfer.get("id"),
        amount_minor=transfer.get("amount"),
    )
    return True


def _ensure_payer(payment: Optional[EscrowPayment], user) -> EscrowPayment:
    # Non-parties get the same answer as a missing payment
    if payment is None or payment.payer_user_id != user.id:
        raise PaymentNotFound()
    return payment


async def create_payment_for_trip(
    db,
    *,
    trip_id: int,
    payer,
    payee_user_id: int,
    amount_minor: int,
    load_id: Optional[int] = None,
    currency: Optional[str] = None,
    audit=None,
) -> EscrowPayment:
    """
    Open an escrow payment for a trip, owed by ``payer`` to the payee.

    The amount is what the payee receives; fees are added when funding starts.

    Raises:
        InvalidAmount: amount is not a positive whole number of cents
        InvalidPaymentRequest: payer and payee are the same user
        PayeeNotFound: no user with ``payee_user_id``
    """
    calculate_shipper_charge(amount_minor)
    if int(amount_minor) == 0:
        raise InvalidAmount("amount must be greater than zero")
    if payee_user_id == payer.id:
        raise InvalidPaymentRequest("Payer and payee must be different users")
    if await db.get(User, payee_user_id) is None:
        raise PayeeNotFound()

    payment = EscrowPayment(
        trip_id=trip_id,
        load_id=load_id,
        payer_user_id=payer.id,
        payee_user_id=payee_user_id,
        amount_minor=int(amount_minor),
        currency=(currency or config.PAYMENTS_DEFAULT_CURRENCY).lower(),
        status=PENDING,
    )
    try:
        db.add(payment)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(payment)
    logger.info("Payment %s opened for trip %s (%s cents)", payment.id, trip_id, payment.amount_minor)
    if audit is not None:
        audit.record(
            "PAYMENT_CREATED",
            resource=f"payment:{payment.id}",
            user_id=payer.id,
            trip_id=trip_id,
            payee_user_id=payee_user_id,
            amount_minor=payment.amount_minor,
        )
    return payment


def _party_filter(user_id: int, role: Optional[str]):
    if role == PAYER:
        return EscrowPayment.payer_user_id == user_id
    if role == PAYEE:
        return EscrowPayment.payee_user_id == user_id
    return or_(EscrowPayment.payer_user_id == user_id, EscrowPayment.payee_user_id == user_id)


async def get_payment_for_trip(db, *, trip_id: int, user) -> EscrowPayment:
    """Latest payment for a trip the user is a party to."""
    stmt = (
        select(EscrowPayment)
        .where(EscrowPayment.trip_id == trip_id, _party_filter(user.id, None))
        .order_by(EscrowPayment.created_at.desc(), EscrowPayment.id.desc())
        .limit(1)
    )
    payment = (await db.execute(stmt)).scalar_one_or_none()
    if payment is None:
        raise PaymentNotFound()
    return payment


async def list_payments_for_user(db, *, user, role: Optional[str] = None) -> List[EscrowPayment]:
    """Payments where the user pays, receives, or either when ``role`` is None."""
    if role not in (None, PAYER, PAYEE):
        raise InvalidPaymentRequest("role must be payer or payee")
    stmt = (
        select(EscrowPayment)
        .where(_party_filter(user.id, role))
        .order_by(EscrowPayment.created_at.desc(), EscrowPayment.id.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_funding_intent(db, *, payment: Optional[EscrowPayment], user, gateway, audit=None) -> Dict[str, Any]:
    """
    Start (or retry) funding: gross up the payee amount and create a PaymentIntent.

    Raises:
        PaymentNotFound: payment missing or the caller is not its payer
        InvalidPaymentState: payment already funded or released
        ProviderError: Stripe rejected the request
    """
    payment = _ensure_payer(payment, user)
    if payment.status not in FUNDABLE_STATES:
        raise InvalidPaymentState(f"Payment is {payment.status}; it cannot be funded")

    charge = calculate_shipper_charge(payment.amount_minor)
    intent = await gateway.create_payment_intent(
        amount_minor=charge.total_charged_cents,
        currency=payment.currency,
        metadata={
            "payment_id": str(payment.id),
            "trip_id": str(payment.trip_id or ""),
            "payer_user_id": str(payment.payer_user_id),
        },
        customer_id=user.stripe_customer_id,
        transfer_group=f"payment_{payment.id}",
    )

    try:
        updated = await _guarded_update(
            db,
            payment.id,
            FUNDABLE_STATES,
            status=PENDING_FUNDING,
            stripe_payment_intent_id=intent["id"],
            platform_fee_minor=charge.platform_fee_cents,
            processor_fee_minor=charge.stripe_fee_cents,
            total_charged_minor=charge.total_charged_cents,
        )
        if not updated:
            raise InvalidPaymentState("Payment changed state while funding was requested")
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(payment)
    logger.info("PaymentIntent %s created for payment %s (%s cents)", intent["id"], payment.id, charge.total_charged_cents)
    if audit is not None:
        audit.record(
            "PAYMENT_FUNDING_STARTED",
            resource=f"payment:{payment.id}",
            user_id=user.id,
            payment_intent_id=intent["id"],
            total_charged_minor=charge.total_charged_cents,
        )
    return {
        "payment_id": payment.id,
        "status": payment.status,
        "payment_intent_id": intent["id"],
        "client_secret": intent["client_secret"],
        "breakdown": charge.as_dict(),
    }


async def release_payout(
    db, *, payment: Optional[EscrowPayment], user, payee_account_id: Optional[str], gateway, audit=None
) -> Dict[str, Any]:
    """
    Release escrowed funds to the payee's connected account.

    The payment is marked released before the transfer is requested; the
    transfer.created webhook later completes the payout. A payment with a
    recorded transfer is never released again, and every attempt for one
    payment reuses the same Stripe idempotency key, so a retry after a lost
    response cannot pay the payee twice.
    """
    payment = _ensure_payer(payment, user)
    if payment.status != IN_ESCROW:
        raise InvalidPaymentState(f"Payment is {payment.status}; only in_escrow payments can be released")
    if payment.stripe_transfer_id or payment.payout_status:
        raise InvalidPaymentState("A transfer is already recorded for this payment")
    if not payee_account_id:
        raise InvalidPaymentState("Payee has not connected a Stripe account")

    now = datetime.utcnow()
    try:
        if not await _guarded_update(
            db,
            payment.id,
            (IN_ESCROW,),
            EscrowPayment.stripe_transfer_id.is_(None),
            EscrowPayment.payout_status.is_(None),
            status=RELEASED,
            released_at=now,
            payout_status=PAYOUT_PENDING,
        ):
            raise InvalidPaymentState("Payment changed state while release was requested")

        transfer_id = await gateway.create_transfer(
            amount_minor=payment.amount_minor,
            currency=payment.currency,
            destination=payee_account_id,
            metadata={"payment_id": str(payment.id), "trip_id": str(payment.trip_id or "")},
            transfer_group=f"payment_{payment.id}",
            idempotency_key=payout_idempotency_key(payment.id),
        )
        await db.execute(
            update(EscrowPayment)
            .where(EscrowPayment.id == payment.id, EscrowPayment.stripe_transfer_id.is_(None))
            .values(stripe_transfer_id=transfer_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(payment)
    logger.info("Payment %s released via transfer %s", payment.id, transfer_id)
    if audit is not None:
        audit.record(
            "PAYMENT_RELEASED",
            resource=f"payment:{payment.id}",
            user_id=user.id,
            transfer_id=transfer_id,
            amount_minor=payment.amount_minor,
        )
    return {
        "payment_id": payment.id,
        "status": payment.status,
        "payout_status": payment.payout_status,
        "transfer_id": transfer_id,
    }
