from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional

import redis.asyncio as aioredis  # type: ignore

import livestockway.core.config as config
from livestockway.core.logging import configure_logging

from .handlers import handle_task

logger = logging.getLogger("worker")


async def process_message(raw, *, session_factory=None) -> bool:
    """Decode and run one queued task. Returns False when the task failed."""
    try:
        msg: Dict[str, Any] = json.loads(raw)
        name = msg.get("name")
        payload = msg.get("payload") or {}
        if not isinstance(payload, dict):
            payload = {}
        await handle_task(str(name), payload, session_factory=session_factory)
        return True
    except Exception as exc:
        logger.exception("Worker task failed: %s", exc)
        return False


async def run_worker(
    *,
    queue: str,
    poll_timeout: int,
    client=None,
    max_tasks: Optional[int] = None,
    session_factory=None,
) -> int:
    r = client or aioredis.Redis.from_url(config.REDIS_URL)
    logger.info("Worker started | queue=%s", queue)

    handled = 0
    while max_tasks is None or handled < max_tasks:
        item = await r.blpop([queue], timeout=poll_timeout)
        if not item:
            continue
        _queue_name, raw = item
        if not await process_message(raw, session_factory=session_factory):
            await asyncio.sleep(0.25)
        handled += 1
    return handled


def main() -> None:
    configure_logging(environment=config.ENVIRONMENT, log_level=config.LOG_LEVEL)
    queue = config.WORKER_QUEUE
    poll_timeout = int(os.getenv("WORKER_POLL_TIMEOUT_SECONDS", "5"))
    asyncio.run(run_worker(queue=queue, poll_timeout=poll_timeout))


if __name__ == "__main__":
    main()
