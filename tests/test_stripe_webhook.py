"""
Webhook dispatcher tests: signature checks, idempotent replay, unknown events,
and rollback on handler failure.
"""

import json
from datetime import datetime

import pytest
from sqlalchemy import select

from livestockway.models.subscription import Subscription, SubscriptionPayment
from livestockway.models.webhook import WebhookEventRecord
from livestockway.services.errors import HandlerFailure, InvalidSignature, ProviderError
from livestockway.services.idempotency import mark_processed, should_process
from livestockway.services.stripe_service import normalize_subscription, subscription_period_end
from livestockway.services.webhook_dispatcher import process_stripe_event

from billing_helpers import (
    build_event,
    seed_hauler,
    seed_pricing,
    seed_subscription,
    seed_user,
    sign_payload,
    unix,
)


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(db, gateway, task_queue, count_rows):
    body, _header = build_event("invoice.paid", {"id": "in_1"})

    with pytest.raises(InvalidSignature) as exc_info:
        await process_stripe_event(db, payload=body, signature=None, gateway=gateway, task_queue=task_queue)

    assert exc_info.value.status_code == 400
    assert await count_rows(WebhookEventRecord) == 0


@pytest.mark.asyncio
async def test_wrong_secret_is_rejected(db, gateway, task_queue, count_rows):
    body, header = build_event("invoice.paid", {"id": "in_1"}, secret="whsec_someone_else")

    with pytest.raises(InvalidSignature):
        await process_stripe_event(db, payload=body, signature=header, gateway=gateway, task_queue=task_queue)
    assert await count_rows(WebhookEventRecord) == 0


@pytest.mark.asyncio
async def test_tampered_body_is_rejected(db, gateway, task_queue):
    body, header = build_event("payment_intent.succeeded", {"id": "pi_1", "amount": 100})
    tampered = body.replace(b'"amount": 100', b'"amount": 999999')

    with pytest.raises(InvalidSignature):
        await process_stripe_event(db, payload=tampered, signature=header, gateway=gateway, task_queue=task_queue)


@pytest.mark.asyncio
async def test_unset_webhook_secret_rejects_everything(db, gateway, task_queue):
    gateway.webhook_secret = ""
    body, header = build_event("invoice.paid", {"id": "in_1"})

    with pytest.raises(InvalidSignature):
        await process_stripe_event(db, payload=body, signature=header, gateway=gateway, task_queue=task_queue)


@pytest.mark.asyncio
async def test_unknown_event_type_is_acknowledged_and_recorded(deliver, count_rows):
    result = await deliver("customer.created", {"id": "cus_1"}, event_id="evt_unknown_1")

    assert result == {"received": True}
    assert await count_rows(WebhookEventRecord, WebhookEventRecord.stripe_event_id == "evt_unknown_1") == 1

    replay = await deliver("customer.created", {"id": "cus_1"}, event_id="evt_unknown_1")
    assert replay == {"received": True, "duplicate": True}


@pytest.mark.asyncio
async def test_replayed_event_changes_state_once(session_maker, deliver, gateway, task_queue, count_rows):
    async with session_maker() as session:
        user = await seed_user(session)
        hauler = await seed_hauler(session, user=user)
        await seed_subscription(session, hauler=hauler, status="PAST_DUE", stripe_subscription_id="sub_1")
    gateway.add_subscription("sub_1", period_end=datetime(2030, 1, 1))
    invoice = {"id": "in_1", "subscription": "sub_1", "amount_paid": 2000, "currency": "usd"}

    first = await deliver("invoice.paid", invoice, event_id="evt_replay_1")
    second = await deliver("invoice.paid", invoice, event_id="evt_replay_1")

    assert first == {"received": True}
    assert second == {"received": True, "duplicate": True}
    assert await count_rows(SubscriptionPayment) == 1
    assert await count_rows(WebhookEventRecord) == 1
    # The duplicate never reached the handler
    assert len(gateway.calls_named("retrieve_subscription")) == 1
    audit_actions = [task["payload"]["action"] for task in task_queue.tasks]
    assert audit_actions == ["SUBSCRIPTION_PAYMENT_RECEIVED"]


@pytest.mark.asyncio
async def test_handler_failure_rolls_back_and_is_retried(session_maker, deliver, gateway, count_rows):
    async with session_maker() as session:
        user = await seed_user(session)
        hauler = await seed_hauler(session, user=user)
        await seed_pricing(session)
    gateway.add_subscription("sub_1", metadata={"hauler_id": str(hauler.id)})
    session_obj = {
        "id": "cs_1",
        "mode": "subscription",
        "subscription": "sub_1",
        "customer": "cus_1",
        "metadata": {"hauler_id": str(hauler.id), "user_id": str(user.id)},
    }

    gateway.fail_with = ProviderError("Stripe is down")
    with pytest.raises(HandlerFailure) as exc_info:
        await deliver("checkout.session.completed", session_obj, event_id="evt_fail_1")

    assert exc_info.value.status_code == 500
    assert await count_rows(WebhookEventRecord) == 0
    assert await count_rows(Subscription) == 0

    gateway.fail_with = None
    result = await deliver("checkout.session.completed", session_obj, event_id="evt_fail_1")

    assert result == {"received": True}
    assert await count_rows(WebhookEventRecord) == 1
    assert await count_rows(Subscription, Subscription.status == "ACTIVE") == 1


@pytest.mark.asyncio
async def test_event_snapshot_is_stored(deliver, session_maker):
    await deliver("customer.created", {"id": "cus_9", "email": "a@example.com"}, event_id="evt_snap")

    async with session_maker() as session:
        record = (
            await session.execute(
                select(WebhookEventRecord).where(WebhookEventRecord.stripe_event_id == "evt_snap")
            )
        ).scalar_one()
    assert record.event_type == "customer.created"
    assert record.payload == {"id": "cus_9", "email": "a@example.com"}


@pytest.mark.asyncio
async def test_mark_processed_absorbs_duplicate_insert(db):
    assert await should_process(db, "evt_gate") is True

    assert await mark_processed(db, event_id="evt_gate", event_type="invoice.paid") is True
    assert await mark_processed(db, event_id="evt_gate", event_type="invoice.paid") is False
    await db.commit()

    assert await should_process(db, "evt_gate") is False


def test_construct_event_decodes_verified_payload(gateway):
    body = json.dumps(
        {"id": "evt_1", "type": "invoice.paid", "created": unix(datetime(2030, 1, 1)), "data": {"object": {"id": "in_1"}}}
    )
    event = gateway.construct_event(body.encode("utf-8"), sign_payload(body))

    assert event.id == "evt_1"
    assert event.type == "invoice.paid"
    assert event.created == datetime(2030, 1, 1)
    assert event.data_object == {"id": "in_1"}


def test_construct_event_rejects_expired_timestamp(gateway):
    body = json.dumps({"id": "evt_1", "type": "invoice.paid", "data": {"object": {}}})
    header = sign_payload(body, timestamp=1_000_000_000)

    with pytest.raises(InvalidSignature):
        gateway.construct_event(body.encode("utf-8"), header)


def test_period_end_prefers_subscription_item():
    item_end = unix(datetime(2031, 6, 1))
    legacy_end = unix(datetime(2030, 6, 1))

    assert subscription_period_end(
        {"current_period_end": legacy_end, "items": {"data": [{"current_period_end": item_end}]}}
    ) == datetime(2031, 6, 1)
    assert subscription_period_end({"current_period_end": legacy_end, "items": {"data": []}}) == datetime(2030, 6, 1)
    assert subscription_period_end({}) is None


def test_normalize_subscription_reads_price_interval():
    sub = normalize_subscription(
        {
            "id": "sub_1",
            "status": "active",
            "customer": {"id": "cus_1"},
            "metadata": {"hauler_id": "5"},
            "items": {
                "data": [
                    {
                        "current_period_end": unix(datetime(2031, 1, 1)),
                        "price": {"unit_amount": 20000, "recurring": {"interval": "year"}},
                    }
                ]
            },
        }
    )

    assert sub.customer == "cus_1"
    assert sub.interval == "year"
    assert sub.unit_amount == 20000
    assert sub.metadata == {"hauler_id": "5"}
    assert sub.current_period_end == datetime(2031, 1, 1)
