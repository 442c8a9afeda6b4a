"""
Stripe webhook dispatcher.

signature -> idempotency gate -> handler -> record event -> commit, then audit
side effects. Handler and event record share one transaction: an event id is
only recorded when its state change committed, and a failed handler leaves no
record so Stripe's retry runs it again.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from livestockway.services import connect_service, escrow_service, subscription_service
from livestockway.services.audit_service import AuditTrail, flush_audit_events
from livestockway.services.errors import HandlerFailure, UnknownEventType
from livestockway.services.idempotency import mark_processed, should_process
from livestockway.services.stripe_service import StripeEvent

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


async def _checkout_completed(db, event: StripeEvent, *, gateway, audit):
    return await subscription_service.handle_checkout_completed(
        db, event.data_object, gateway=gateway, event_at=event.created, audit=audit
    )


async def _invoice_paid(db, event: StripeEvent, *, gateway, audit):
    return await subscription_service.handle_invoice_paid(
        db,
        event.data_object,
        gateway=gateway,
        event_at=event.created,
        audit=audit,
        event_type=event.type,
    )


async def _invoice_payment_failed(db, event: StripeEvent, *, gateway, audit):
    return await subscription_service.handle_invoice_payment_failed(
        db, event.data_object, event_at=event.created, audit=audit
    )


async def _subscription_updated(db, event: StripeEvent, *, gateway, audit):
    return await subscription_service.handle_subscription_updated(
        db, event.data_object, event_at=event.created, audit=audit
    )


async def _subscription_deleted(db, event: StripeEvent, *, gateway, audit):
    return await subscription_service.handle_subscription_deleted(
        db, event.data_object, event_at=event.created, audit=audit
    )


async def _account_updated(db, event: StripeEvent, *, gateway, audit):
    return await connect_service.handle_account_updated(db, event.data_object, audit=audit)


async def _payment_intent_succeeded(db, event: StripeEvent, *, gateway, audit):
    return await escrow_service.handle_payment_intent_succeeded(db, event.data_object, audit=audit)


async def _payment_intent_failed(db, event: StripeEvent, *, gateway, audit):
    return await escrow_service.handle_payment_intent_failed(db, event.data_object, audit=audit)


async def _transfer_created(db, event: StripeEvent, *, gateway, audit):
    return await escrow_service.handle_transfer_created(db, event.data_object, audit=audit)


EVENT_HANDLERS: Dict[str, Handler] = {
    "checkout.session.completed": _checkout_completed,
    "invoice.paid": _invoice_paid,
    "invoice.payment_succeeded": _invoice_paid,
    "invoice.payment_failed": _invoice_payment_failed,
    "customer.subscription.updated": _subscription_updated,
    "customer.subscription.deleted": _subscription_deleted,
    "account.updated": _account_updated,
    "payment_intent.succeeded": _payment_intent_succeeded,
    "payment_intent.payment_failed": _payment_intent_failed,
    "transfer.created": _transfer_created,
}


def get_handler(event_type: str) -> Handler:
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        raise UnknownEventType(f"Unhandled Stripe event type: {event_type}")
    return handler


async def dispatch_event(db, event: StripeEvent, *, gateway, audit: AuditTrail) -> Optional[Any]:
    try:
        handler = get_handler(event.type)
    except UnknownEventType as exc:
        logger.info("%s (event %s)", exc.message, event.id)
        return None
    return await handler(db, event, gateway=gateway, audit=audit)


async def process_stripe_event(db, *, payload: bytes, signature: Optional[str], gateway, task_queue) -> Dict[str, Any]:
    """
    Verify, deduplicate and apply one Stripe webhook delivery.

    Returns:
        ``{"received": True}``, plus ``"duplicate": True`` for a replayed event

    Raises:
        InvalidSignature: signature missing or invalid (nothing is recorded)
        HandlerFailure: the handler raised; the transaction was rolled back
    """
    event = gateway.construct_event(payload, signature)
    logger.info("Stripe event received | id=%s type=%s", event.id, event.type)

    if not await should_process(db, event.id):
        logger.info("Stripe event %s already processed; skipping", event.id)
        return {"received": True, "duplicate": True}

    audit = AuditTrail()
    try:
        await dispatch_event(db, event, gateway=gateway, audit=audit)
        recorded = await mark_processed(
            db, event_id=event.id, event_type=event.type, payload=event.data_object
        )
        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.exception("Stripe webhook handler failed | id=%s type=%s", event.id, event.type)
        raise HandlerFailure(f"Error processing webhook {event.id}") from exc

    if not recorded:
        # A concurrent delivery of the same event recorded it first
        logger.info("Stripe event %s recorded concurrently; skipping side effects", event.id)
        return {"received": True, "duplicate": True}

    await flush_audit_events(task_queue, audit.events)
    return {"received": True}
