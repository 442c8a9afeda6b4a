"""
Idempotency gate for Stripe webhook events.

An event id is recorded in the same transaction as the state change it caused,
so a recorded id always means the change is durable.
"""
from typing import Any, Dict, Optional

from sqlalchemy import select

from livestockway.db import dialect_insert
from livestockway.models.webhook import WebhookEventRecord


async def should_process(db, event_id: str) -> bool:
    result = await db.execute(
        select(WebhookEventRecord.id).where(WebhookEventRecord.stripe_event_id == event_id)
    )
    return result.scalar_one_or_none() is None


async def mark_processed(
    db, *, event_id: str, event_type: str, payload: Optional[Dict[str, Any]] = None
) -> bool:
    """
    Record an event id. Returns False when a concurrent delivery already recorded it.

    The insert never raises on a duplicate key, so the caller's transaction
    survives the losing side of a race.
    """
    insert = dialect_insert(db)
    stmt = (
        insert(WebhookEventRecord)
        .values(stripe_event_id=event_id, event_type=event_type, payload=payload)
        .on_conflict_do_nothing(index_elements=["stripe_event_id"])
    )
    result = await db.execute(stmt)
    return bool(result.rowcount)
