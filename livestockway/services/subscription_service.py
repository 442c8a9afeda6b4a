"""
Subscription Service - hauler subscription lifecycle.

Subscriptions move PENDING -> ACTIVE -> PAST_DUE / CANCELED, driven either by
Stripe webhooks or by the manual subscribe flow. After every transition the
Hauler mirror (subscription_status / subscription_current_period_end) is copied
from the hauler's latest non-PENDING subscription in the same transaction.
"""
import calendar
import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from sqlalchemy import and_, or_, select, update

import livestockway.core.config as config
from livestockway.db import dialect_insert
from livestockway.models.hauler import Hauler
from livestockway.models.subscription import PricingConfig, Subscription, SubscriptionPayment
from livestockway.models.user import User
from livestockway.services.errors import (
    AlreadySubscribed,
    InvalidBillingCycle,
    PricingUnavailable,
    WrongAccountType,
)
from livestockway.services.stripe_service import (
    ProviderSubscription,
    normalize_subscription,
)

logger = logging.getLogger(__name__)

PLAN_INDIVIDUAL = "INDIVIDUAL"
PRICING_TARGET_INDIVIDUAL = "HAULER_INDIVIDUAL"

MONTHLY = "MONTHLY"
YEARLY = "YEARLY"
BILLING_CYCLES = (MONTHLY, YEARLY)

PENDING = "PENDING"
ACTIVE = "ACTIVE"
PAST_DUE = "PAST_DUE"
CANCELED = "CANCELED"

# Yearly plans charge ten months for twelve
YEARLY_CHARGED_MONTHS = 10
MONTHLY_PERIOD = timedelta(days=30)
# Stripe Checkout sessions expire after 24 hours by default
CHECKOUT_SESSION_TTL = timedelta(hours=24)

CENTS = Decimal("0.01")


# --- Pricing and entitlement rules ---


def normalize_billing_cycle(value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        return MONTHLY
    cycle = str(value).strip().upper()
    if cycle not in BILLING_CYCLES:
        raise InvalidBillingCycle()
    return cycle


def charge_for_cycle(monthly_price, billing_cycle: str) -> Decimal:
    price = Decimal(str(monthly_price))
    amount = price * YEARLY_CHARGED_MONTHS if billing_cycle == YEARLY else price
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic; a day missing from the target month rolls forward (Feb 29 -> Mar 1)."""
    index = value.month - 1 + months
    year, month = value.year + index // 12, index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    if value.day <= last_day:
        return value.replace(year=year, month=month)
    return value.replace(year=year, month=month, day=last_day) + timedelta(days=value.day - last_day)


def period_end_for_cycle(start: datetime, billing_cycle: str) -> datetime:
    if billing_cycle == YEARLY:
        return add_months(start, 12)
    return start + MONTHLY_PERIOD


def has_access(status: Optional[str], period_end: Optional[datetime], now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    if status == ACTIVE:
        return period_end is None or period_end > now
    if status == PAST_DUE:
        # grace period while Stripe retries the card
        return True
    if status == CANCELED:
        return period_end is not None and period_end > now
    return False


def is_individual(hauler: Hauler) -> bool:
    return (hauler.hauler_type or "").upper() == PLAN_INDIVIDUAL


# --- Queries ---


async def get_active_pricing(db) -> Optional[PricingConfig]:
    stmt = (
        select(PricingConfig)
        .where(
            PricingConfig.target_user_type == PRICING_TARGET_INDIVIDUAL,
            PricingConfig.is_active.is_(True),
        )
        .order_by(PricingConfig.updated_at.desc(), PricingConfig.id.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_latest_subscription(db, hauler_id: int) -> Optional[Subscription]:
    stmt = (
        select(Subscription)
        .where(Subscription.hauler_id == hauler_id, Subscription.status != PENDING)
        .order_by(Subscription.started_at.desc(), Subscription.id.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_open_checkout(db, hauler_id: int, now: Optional[datetime] = None) -> Optional[Subscription]:
    """PENDING checkout row whose Stripe session can still complete."""
    now = now or datetime.utcnow()
    stmt = (
        select(Subscription)
        .where(
            Subscription.hauler_id == hauler_id,
            Subscription.status == PENDING,
            Subscription.stripe_checkout_session_id.isnot(None),
            Subscription.started_at > now - CHECKOUT_SESSION_TTL,
        )
        .order_by(Subscription.started_at.desc(), Subscription.id.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_other_entitlement(db, hauler_id: int, *, exclude_id: int) -> Optional[Subscription]:
    now = datetime.utcnow()
    stmt = (
        select(Subscription)
        .where(
            Subscription.hauler_id == hauler_id,
            Subscription.id != exclude_id,
            Subscription.status == ACTIVE,
            or_(Subscription.current_period_end.is_(None), Subscription.current_period_end > now),
        )
        .order_by(Subscription.started_at.desc(), Subscription.id.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_subscription_by_provider_ref(db, subscription_ref: str) -> Optional[Subscription]:
    stmt = (
        select(Subscription)
        .where(Subscription.stripe_subscription_id == subscription_ref)
        .with_for_update()
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def refresh_hauler_mirror(db, hauler_id: int) -> Optional[Subscription]:
    """Copy the latest non-PENDING subscription onto the hauler row. Caller commits."""
    await db.flush()
    latest = await get_latest_subscription(db, hauler_id)
    if latest is None:
        return None
    hauler = await db.get(Hauler, hauler_id)
    if hauler is not None:
        hauler.subscription_status = latest.status
        hauler.subscription_current_period_end = latest.current_period_end
    return latest


# --- Webhook transitions ---


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _ref_id(value) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def invoice_subscription_ref(invoice: Dict[str, Any]) -> Optional[str]:
    ref = invoice.get("subscription")
    if not ref:
        parent = invoice.get("parent") or {}
        ref = (parent.get("subscription_details") or {}).get("subscription")
    return _ref_id(ref)


def _apply_transition(
    sub: Subscription,
    status: str,
    *,
    event_at: Optional[datetime],
    period_end: Optional[datetime] = None,
) -> bool:
    """
    Move a subscription to ``status``. Returns False when the event is skipped.

    CANCELED is terminal for webhook transitions, and events older than the
    newest one already applied to the row are ignored.
    """
    if sub.status == CANCELED and status != CANCELED:
        logger.info(
            "Skipping %s for subscription %s: already canceled", status, sub.id
        )
        return False
    if event_at is not None and sub.provider_event_at is not None and event_at < sub.provider_event_at:
        logger.info(
            "Skipping stale %s for subscription %s (event %s < applied %s)",
            status, sub.id, event_at, sub.provider_event_at,
        )
        return False

    sub.status = status
    if period_end is not None:
        sub.current_period_end = period_end
    if event_at is not None and (sub.provider_event_at is None or event_at > sub.provider_event_at):
        sub.provider_event_at = event_at
    sub.updated_at = datetime.utcnow()
    return True


async def _locate_subscription(
    db, provider_sub: ProviderSubscription, metadata: Dict[str, Any]
) -> Optional[Subscription]:
    sub = await get_subscription_by_provider_ref(db, provider_sub.id)
    if sub is not None:
        return sub

    # Checkout pre-creates a PENDING row and passes its id through metadata
    row_id = _to_int(metadata.get("subscription_row_id"))
    hauler_id = _to_int(metadata.get("hauler_id"))
    if row_id is None:
        return None
    stmt = select(Subscription).where(Subscription.id == row_id).with_for_update()
    sub = (await db.execute(stmt)).scalar_one_or_none()
    if sub is None or sub.stripe_subscription_id is not None:
        return None
    if hauler_id is not None and sub.hauler_id != hauler_id:
        logger.warning(
            "Subscription row %s belongs to hauler %s, metadata says %s",
            row_id, sub.hauler_id, hauler_id,
        )
        return None
    sub.stripe_subscription_id = provider_sub.id
    return sub


async def _insert_from_provider(
    db, *, hauler_id: int, provider_sub: ProviderSubscription, metadata: Dict[str, Any], event_at
) -> Subscription:
    cycle = str(metadata.get("billing_cycle") or "").upper()
    if cycle not in BILLING_CYCLES:
        cycle = YEARLY if provider_sub.interval == "year" else MONTHLY

    if provider_sub.unit_amount is not None:
        charged = (Decimal(provider_sub.unit_amount) / 100).quantize(CENTS)
        monthly = (charged / 12).quantize(CENTS, rounding=ROUND_HALF_UP) if cycle == YEARLY else charged
    else:
        pricing = await get_active_pricing(db)
        monthly = Decimal(str(pricing.monthly_price)) if pricing and pricing.monthly_price is not None else Decimal("0")
        charged = charge_for_cycle(monthly, cycle)

    sub = Subscription(
        hauler_id=hauler_id,
        plan_type=PLAN_INDIVIDUAL,
        billing_cycle=cycle,
        status=ACTIVE,
        monthly_price=monthly,
        charged_amount=charged,
        currency=config.SUBSCRIPTION_CURRENCY,
        stripe_subscription_id=provider_sub.id,
        started_at=datetime.utcnow(),
        current_period_end=provider_sub.current_period_end,
        provider_event_at=event_at,
    )
    db.add(sub)
    await db.flush()
    logger.info("Created subscription %s for hauler %s from %s", sub.id, hauler_id, provider_sub.id)
    return sub


async def _resolve_subscription(db, provider_sub: ProviderSubscription, metadata: Dict[str, Any], event_at):
    """Find the local row for a provider subscription, inserting one if the hauler is known."""
    sub = await _locate_subscription(db, provider_sub, metadata)
    if sub is not None:
        return sub, False
    hauler_id = _to_int(metadata.get("hauler_id"))
    if hauler_id is None or await db.get(Hauler, hauler_id) is None:
        return None, False
    sub = await _insert_from_provider(
        db, hauler_id=hauler_id, provider_sub=provider_sub, metadata=metadata, event_at=event_at
    )
    return sub, True


async def _cancel_if_duplicate(db, sub: Subscription, *, event_type: str, audit) -> bool:
    """
    Cancel ``sub`` locally when the hauler is already entitled by another row.

    This happens when a manual subscribe lands while a checkout is open. The
    Stripe subscription keeps billing until an operator cancels it, so the
    audit entry names it.
    """
    if sub.status == CANCELED:
        return False
    entitled = await get_other_entitlement(db, sub.hauler_id, exclude_id=sub.id)
    if entitled is None:
        return False

    logger.warning(
        "Hauler %s already entitled by subscription %s; canceling duplicate %s (%s)",
        sub.hauler_id, entitled.id, sub.id, sub.stripe_subscription_id,
    )
    sub.status = CANCELED
    sub.updated_at = datetime.utcnow()
    # A canceled duplicate never outranks the entitlement in the mirror
    if sub.started_at is None or sub.started_at >= entitled.started_at:
        sub.started_at = entitled.started_at - timedelta(seconds=1)
    audit.record(
        "SUBSCRIPTION_DUPLICATE_CANCELED",
        event_type=event_type,
        resource=f"hauler_subscription:{sub.id}",
        hauler_id=sub.hauler_id,
        stripe_subscription_id=sub.stripe_subscription_id,
        entitled_subscription_id=entitled.id,
        action_required="cancel_stripe_subscription",
    )
    return True


async def _persist_customer_id(db, hauler: Hauler, customer_id: Optional[str]) -> None:
    if not customer_id:
        return
    if not hauler.stripe_customer_id:
        hauler.stripe_customer_id = customer_id
    user = await db.get(User, hauler.user_id)
    if user is not None and not user.stripe_customer_id:
        user.stripe_customer_id = customer_id


async def handle_checkout_completed(db, session: Dict[str, Any], *, gateway, event_at, audit) -> Optional[Subscription]:
    if session.get("mode") != "subscription":
        logger.info("Ignoring checkout session %s with mode=%s", session.get("id"), session.get("mode"))
        return None

    metadata = session.get("metadata") or {}
    hauler_id = _to_int(metadata.get("hauler_id"))
    subscription_ref = _ref_id(session.get("subscription"))
    if hauler_id is None or not subscription_ref:
        logger.warning("Checkout session %s missing hauler_id or subscription", session.get("id"))
        return None

    hauler = await db.get(Hauler, hauler_id)
    if hauler is None:
        logger.warning("Checkout session %s references unknown hauler %s", session.get("id"), hauler_id)
        return None

    provider_sub = await gateway.retrieve_subscription(subscription_ref)
    await _persist_customer_id(db, hauler, _ref_id(session.get("customer")) or provider_sub.customer)

    merged = {**provider_sub.metadata, **metadata}
    sub, created = await _resolve_subscription(db, provider_sub, merged, event_at)
    if sub is None:
        return None
    if not sub.stripe_checkout_session_id:
        sub.stripe_checkout_session_id = session.get("id")

    if await _cancel_if_duplicate(db, sub, event_type="checkout.session.completed", audit=audit):
        await refresh_hauler_mirror(db, hauler_id)
        return sub
    if not created:
        _apply_transition(sub, ACTIVE, event_at=event_at, period_end=provider_sub.current_period_end)

    await refresh_hauler_mirror(db, hauler_id)
    audit.record(
        "SUBSCRIPTION_ACTIVATED",
        event_type="checkout.session.completed",
        resource=f"hauler_subscription:{sub.id}",
        user_id=_to_int(metadata.get("user_id")),
        hauler_id=hauler_id,
        stripe_subscription_id=provider_sub.id,
    )
    return sub


async def handle_invoice_paid(
    db, invoice: Dict[str, Any], *, gateway, event_at, audit, event_type: str = "invoice.paid"
) -> Optional[Subscription]:
    subscription_ref = invoice_subscription_ref(invoice)
    if not subscription_ref:
        logger.info("Invoice %s is not a subscription invoice", invoice.get("id"))
        return None

    provider_sub = await gateway.retrieve_subscription(subscription_ref)
    sub, created = await _resolve_subscription(db, provider_sub, provider_sub.metadata, event_at)
    if sub is None:
        logger.warning("No local subscription for %s (invoice %s)", subscription_ref, invoice.get("id"))
        return None
    duplicate = await _cancel_if_duplicate(db, sub, event_type=event_type, audit=audit)
    if not duplicate and not created:
        _apply_transition(sub, ACTIVE, event_at=event_at, period_end=provider_sub.current_period_end)

    # Receipt is keyed by invoice id so a retried invoice never double-counts
    amount = (Decimal(int(invoice.get("amount_paid") or 0)) / 100).quantize(CENTS)
    insert = dialect_insert(db)
    await db.execute(
        insert(SubscriptionPayment)
        .values(
            subscription_id=sub.id,
            amount=amount,
            currency=(invoice.get("currency") or config.SUBSCRIPTION_CURRENCY).upper(),
            provider="STRIPE",
            provider_ref=invoice.get("id"),
            billing_cycle=sub.billing_cycle,
            status="PAID",
        )
        .on_conflict_do_nothing(index_elements=["provider_ref"])
    )

    await refresh_hauler_mirror(db, sub.hauler_id)
    audit.record(
        "SUBSCRIPTION_PAYMENT_RECEIVED",
        event_type=event_type,
        resource=f"hauler_subscription:{sub.id}",
        hauler_id=sub.hauler_id,
        invoice_id=invoice.get("id"),
        amount=str(amount),
    )
    return sub


async def handle_invoice_payment_failed(db, invoice: Dict[str, Any], *, event_at, audit) -> Optional[Subscription]:
    subscription_ref = invoice_subscription_ref(invoice)
    if not subscription_ref:
        return None
    sub = await get_subscription_by_provider_ref(db, subscription_ref)
    if sub is None:
        logger.warning("No local subscription for %s (failed invoice %s)", subscription_ref, invoice.get("id"))
        return None

    if _apply_transition(sub, PAST_DUE, event_at=event_at):
        audit.record(
            "SUBSCRIPTION_PAST_DUE",
            event_type="invoice.payment_failed",
            resource=f"hauler_subscription:{sub.id}",
            hauler_id=sub.hauler_id,
            invoice_id=invoice.get("id"),
        )
    await refresh_hauler_mirror(db, sub.hauler_id)
    return sub


async def handle_subscription_updated(db, payload: Dict[str, Any], *, event_at, audit) -> Optional[Subscription]:
    provider_sub = normalize_subscription(payload)
    sub = await _locate_subscription(db, provider_sub, provider_sub.metadata)
    if sub is None:
        logger.info("Ignoring update for unknown subscription %s", provider_sub.id)
        return None

    status = ACTIVE if provider_sub.status == "active" else provider_sub.status.upper()
    if status == ACTIVE and await _cancel_if_duplicate(
        db, sub, event_type="customer.subscription.updated", audit=audit
    ):
        await refresh_hauler_mirror(db, sub.hauler_id)
        return sub
    if _apply_transition(sub, status, event_at=event_at, period_end=provider_sub.current_period_end):
        audit.record(
            "SUBSCRIPTION_UPDATED",
            event_type="customer.subscription.updated",
            resource=f"hauler_subscription:{sub.id}",
            hauler_id=sub.hauler_id,
            status=status,
        )
    await refresh_hauler_mirror(db, sub.hauler_id)
    return sub


async def handle_subscription_deleted(db, payload: Dict[str, Any], *, event_at, audit) -> Optional[Subscription]:
    subscription_ref = payload.get("id")
    sub = await get_subscription_by_provider_ref(db, subscription_ref) if subscription_ref else None
    if sub is None:
        logger.info("Ignoring deletion of unknown subscription %s", subscription_ref)
        return None

    if _apply_transition(sub, CANCELED, event_at=event_at):
        audit.record(
            "SUBSCRIPTION_CANCELED",
            event_type="customer.subscription.deleted",
            resource=f"hauler_subscription:{sub.id}",
            hauler_id=sub.hauler_id,
        )
    await refresh_hauler_mirror(db, sub.hauler_id)
    return sub


# --- Hauler-initiated flows ---


async def subscribe_manually(db, *, hauler: Hauler, billing_cycle: Optional[str], audit=None) -> Subscription:
    """
    Activate an individual subscription without a card flow.

    The conditional UPDATE on the hauler row is the concurrency gate: of two
    concurrent calls only one can flip a non-entitled hauler to ACTIVE.

    Raises:
        WrongAccountType: hauler is not INDIVIDUAL
        InvalidBillingCycle: billing cycle is not MONTHLY or YEARLY
        AlreadySubscribed: hauler already has an active, unexpired subscription
            or an open checkout
        PricingUnavailable: no active individual pricing
    """
    if not is_individual(hauler):
        raise WrongAccountType()
    cycle = normalize_billing_cycle(billing_cycle)

    now = datetime.utcnow()
    if hauler.subscription_status == ACTIVE and (
        hauler.subscription_current_period_end is None or hauler.subscription_current_period_end > now
    ):
        raise AlreadySubscribed()

    pricing = await get_active_pricing(db)
    if pricing is None or pricing.monthly_price is None:
        raise PricingUnavailable()

    monthly = Decimal(str(pricing.monthly_price)).quantize(CENTS, rounding=ROUND_HALF_UP)
    charged = charge_for_cycle(monthly, cycle)
    period_end = period_end_for_cycle(now, cycle)

    try:
        # A checkout that can still complete would become a second paid subscription
        if await get_open_checkout(db, hauler.id, now) is not None:
            raise AlreadySubscribed("A subscription checkout is already in progress")

        gate = await db.execute(
            update(Hauler)
            .where(
                Hauler.id == hauler.id,
                or_(
                    Hauler.subscription_status.is_(None),
                    Hauler.subscription_status != ACTIVE,
                    and_(
                        Hauler.subscription_current_period_end.isnot(None),
                        Hauler.subscription_current_period_end <= now,
                    ),
                ),
            )
            .values(subscription_status=ACTIVE, subscription_current_period_end=period_end)
            .execution_options(synchronize_session=False)
        )
        if gate.rowcount == 0:
            raise AlreadySubscribed()

        sub = Subscription(
            hauler_id=hauler.id,
            plan_type=PLAN_INDIVIDUAL,
            billing_cycle=cycle,
            status=ACTIVE,
            monthly_price=monthly,
            charged_amount=charged,
            currency=config.SUBSCRIPTION_CURRENCY,
            started_at=now,
            current_period_end=period_end,
        )
        db.add(sub)
        await db.flush()
        db.add(
            SubscriptionPayment(
                subscription_id=sub.id,
                amount=charged,
                currency=config.SUBSCRIPTION_CURRENCY,
                provider="MANUAL",
                billing_cycle=cycle,
                status="PAID",
            )
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(hauler)
    logger.info("Hauler %s subscribed manually (%s, %s)", hauler.id, cycle, charged)
    if audit is not None:
        audit.record(
            "SUBSCRIPTION_MANUAL",
            resource=f"hauler_subscription:{sub.id}",
            user_id=hauler.user_id,
            hauler_id=hauler.id,
            billing_cycle=cycle,
            amount=str(charged),
        )
    return sub


async def start_checkout(db, *, hauler: Hauler, user: User, billing_cycle: Optional[str], gateway, audit=None) -> Dict[str, Any]:
    """Create a Stripe Checkout session for an individual subscription."""
    if not is_individual(hauler):
        raise WrongAccountType()
    cycle = normalize_billing_cycle(billing_cycle)
    if hauler.subscription_status == ACTIVE and has_access(
        hauler.subscription_status, hauler.subscription_current_period_end
    ):
        raise AlreadySubscribed()

    pricing = await get_active_pricing(db)
    price_id = None
    if pricing is not None:
        price_id = pricing.stripe_price_id_yearly if cycle == YEARLY else pricing.stripe_price_id_monthly
    if pricing is None or pricing.monthly_price is None or not price_id:
        raise PricingUnavailable(f"Stripe pricing is not configured for {cycle} billing")

    customer_id = hauler.stripe_customer_id or user.stripe_customer_id
    if not customer_id:
        customer_id = await gateway.create_customer(
            email=user.email,
            name=user.full_name,
            metadata={"hauler_id": str(hauler.id), "user_id": str(user.id)},
        )
    if hauler.stripe_customer_id != customer_id or user.stripe_customer_id != customer_id:
        hauler.stripe_customer_id = hauler.stripe_customer_id or customer_id
        user.stripe_customer_id = user.stripe_customer_id or customer_id
        await db.commit()

    monthly = Decimal(str(pricing.monthly_price)).quantize(CENTS, rounding=ROUND_HALF_UP)
    try:
        sub = Subscription(
            hauler_id=hauler.id,
            plan_type=PLAN_INDIVIDUAL,
            billing_cycle=cycle,
            status=PENDING,
            monthly_price=monthly,
            charged_amount=charge_for_cycle(monthly, cycle),
            currency=config.SUBSCRIPTION_CURRENCY,
            started_at=datetime.utcnow(),
        )
        db.add(sub)
        await db.flush()

        metadata = {
            "hauler_id": str(hauler.id),
            "user_id": str(user.id),
            "billing_cycle": cycle,
            "subscription_row_id": str(sub.id),
        }
        session = await gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            success_url=f"{config.FRONTEND_URL}/hauler/payment?status=success",
            cancel_url=f"{config.FRONTEND_URL}/hauler/payment?status=cancelled",
            metadata=metadata,
        )
        sub.stripe_checkout_session_id = session["id"]
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Checkout session %s created for hauler %s (row %s)", session["id"], hauler.id, sub.id)
    if audit is not None:
        audit.record(
            "SUBSCRIPTION_CHECKOUT_STARTED",
            resource=f"hauler_subscription:{sub.id}",
            user_id=user.id,
            hauler_id=hauler.id,
            billing_cycle=cycle,
        )
    return {"session_id": session["id"], "url": session["url"], "subscription_id": sub.id}


async def get_subscription_summary(db, *, hauler: Hauler) -> Dict[str, Any]:
    pricing = await get_active_pricing(db)
    latest = await get_latest_subscription(db, hauler.id)

    monthly_price = yearly_price = None
    if pricing is not None and pricing.monthly_price is not None:
        monthly_price = charge_for_cycle(pricing.monthly_price, MONTHLY)
        yearly_price = charge_for_cycle(pricing.monthly_price, YEARLY)

    return {
        "hauler_type": hauler.hauler_type,
        "status": hauler.subscription_status or "NONE",
        "current_period_end": hauler.subscription_current_period_end,
        "billing_cycle": latest.billing_cycle if latest else None,
        "monthly_price": monthly_price,
        "yearly_price": yearly_price,
        "has_access": has_access(hauler.subscription_status, hauler.subscription_current_period_end),
    }
