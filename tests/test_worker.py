import json
from dataclasses import asdict

import pytest
from sqlalchemy import select

from livestockway.core.queue import InMemoryTaskQueue, build_task_queue, encode_task
from livestockway.models.webhook import AuditLog
from livestockway.services.audit_service import AUDIT_TASK, AuditTrail, flush_audit_events
from workers.worker import process_message, run_worker


class FakeAsyncRedis:
    def __init__(self, items):
        self.items = list(items)
        self.polls = 0

    async def blpop(self, keys, timeout=0):
        self.polls += 1
        if not self.items:
            return None
        return keys[0].encode(), self.items.pop(0)


class BrokenQueue:
    def enqueue(self, *, name, payload=None):
        raise ConnectionError("redis unavailable")


def audit_message(action="PAYMENT_FUNDED", **metadata):
    trail = AuditTrail()
    trail.record(action, event_type="payment_intent.succeeded", resource="payment:5", user_id=3, **metadata)
    (event,) = trail.events
    queue = InMemoryTaskQueue()
    queue.enqueue(name=AUDIT_TASK, payload=asdict(event))
    return json.dumps(queue.tasks[0])


@pytest.mark.asyncio
async def test_audit_task_writes_audit_log(session_maker):
    ok = await process_message(audit_message(payment_intent_id="pi_1"), session_factory=session_maker)

    assert ok is True
    async with session_maker() as session:
        entry = (await session.execute(select(AuditLog))).scalar_one()
    assert entry.action == "PAYMENT_FUNDED"
    assert entry.event_type == "payment_intent.succeeded"
    assert entry.resource == "payment:5"
    assert entry.user_id == 3
    assert entry.details == {"payment_intent_id": "pi_1"}


@pytest.mark.asyncio
async def test_event_type_defaults_to_action(session_maker):
    raw = encode_task(AUDIT_TASK, {"action": "SUBSCRIPTION_MANUAL"})

    assert await process_message(raw, session_factory=session_maker) is True
    async with session_maker() as session:
        entry = (await session.execute(select(AuditLog))).scalar_one()
    assert entry.event_type == "SUBSCRIPTION_MANUAL"
    assert entry.details is None


@pytest.mark.asyncio
async def test_unknown_task_is_reported_as_failed(session_maker):
    assert await process_message(encode_task("reports.rebuild", {}), session_factory=session_maker) is False


@pytest.mark.asyncio
async def test_malformed_message_is_reported_as_failed():
    assert await process_message(b"{not json") is False


@pytest.mark.asyncio
async def test_flush_enqueues_each_event():
    trail = AuditTrail()
    trail.record("PAYMENT_FUNDED", resource="payment:1")
    trail.record("PAYOUT_COMPLETED", resource="payment:1")
    queue = InMemoryTaskQueue()

    sent = await flush_audit_events(queue, trail.events)

    assert sent == 2
    assert [task["name"] for task in queue.tasks] == [AUDIT_TASK, AUDIT_TASK]
    assert [task["payload"]["action"] for task in queue.drain()] == ["PAYMENT_FUNDED", "PAYOUT_COMPLETED"]
    assert queue.tasks == []


@pytest.mark.asyncio
async def test_flush_swallows_enqueue_failures():
    trail = AuditTrail()
    trail.record("PAYMENT_FUNDED")

    assert await flush_audit_events(BrokenQueue(), trail.events) == 0


@pytest.mark.asyncio
async def test_run_worker_drains_until_max_tasks(session_maker):
    client = FakeAsyncRedis(
        [
            audit_message("PAYMENT_FUNDED").encode(),
            encode_task("noop", {}).encode(),
        ]
    )

    handled = await run_worker(
        queue="tasks", poll_timeout=0, client=client, max_tasks=2, session_factory=session_maker
    )

    assert handled == 2
    async with session_maker() as session:
        actions = (await session.execute(select(AuditLog.action))).scalars().all()
    assert actions == ["PAYMENT_FUNDED"]


def test_build_task_queue_backends():
    assert isinstance(build_task_queue("memory"), InMemoryTaskQueue)
    with pytest.raises(ValueError):
        build_task_queue("carrier-pigeon")
