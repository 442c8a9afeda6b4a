"""
Audit trail for payment and subscription transitions.

Handlers record audit events while they run; the events are only enqueued after
the surrounding transaction commits, and the worker writes them to audit_logs.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from livestockway.models.webhook import AuditLog

logger = logging.getLogger(__name__)

AUDIT_TASK = "audit.log"


@dataclass
class AuditEvent:
    action: str
    event_type: Optional[str] = None
    resource: Optional[str] = None
    user_id: Optional[int] = None
    user_role: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class AuditTrail:
    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    def record(
        self,
        action: str,
        *,
        event_type: Optional[str] = None,
        resource: Optional[str] = None,
        user_id: Optional[int] = None,
        user_role: Optional[str] = None,
        **metadata: Any,
    ) -> None:
        self.events.append(
            AuditEvent(
                action=action,
                event_type=event_type,
                resource=resource,
                user_id=user_id,
                user_role=user_role,
                metadata=metadata,
            )
        )

    def clear(self) -> None:
        self.events = []


async def flush_audit_events(task_queue, events: List[AuditEvent]) -> int:
    """Enqueue committed audit events. Failures are logged, never raised."""
    sent = 0
    for event in events:
        try:
            await run_in_threadpool(task_queue.enqueue, name=AUDIT_TASK, payload=asdict(event))
            sent += 1
        except Exception as exc:
            logger.warning("Failed to enqueue audit event %s: %s", event.action, exc)
    return sent


async def write_audit_log(db, payload: Dict[str, Any]) -> AuditLog:
    user_id = payload.get("user_id")
    entry = AuditLog(
        user_id=int(user_id) if user_id is not None else None,
        user_role=payload.get("user_role"),
        action=payload["action"],
        event_type=payload.get("event_type") or payload["action"],
        resource=payload.get("resource"),
        details=payload.get("metadata") or None,
    )
    db.add(entry)
    await db.commit()
    return entry
