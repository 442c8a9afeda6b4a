from __future__ import annotations

from typing import Any, Dict

from livestockway.services.audit_service import AUDIT_TASK


async def handle_task(name: str, payload: Dict[str, Any], *, session_factory=None) -> None:
    if name == "noop":
        return
    if name == AUDIT_TASK:
        from livestockway.services.audit_service import write_audit_log

        if session_factory is None:
            from livestockway.db import AsyncSessionLocal as session_factory

        async with session_factory() as db:
            await write_audit_log(db, payload)
        return
    raise ValueError(f"Unknown task: {name}")
