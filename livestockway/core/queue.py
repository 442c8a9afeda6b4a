"""Minimal task queue for side effects that must not run inside a DB transaction.

A Redis list + JSON payloads, drained by ``workers/worker.py``. The in-memory
backend keeps tasks in process for local runs and tests.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import redis  # type: ignore

import livestockway.core.config as config


DEFAULT_QUEUE = "tasks"


def encode_task(name: str, payload: Optional[Dict[str, Any]]) -> str:
    return json.dumps({"name": name, "payload": payload or {}}, default=str)


class RedisTaskQueue:
    def __init__(self, url: str, queue: str = DEFAULT_QUEUE):
        self.queue = queue
        self._client = redis.Redis.from_url(url)

    def enqueue(self, *, name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self._client.rpush(self.queue, encode_task(name, payload))


class InMemoryTaskQueue:
    def __init__(self) -> None:
        self.tasks: List[Dict[str, Any]] = []

    def enqueue(self, *, name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self.tasks.append(json.loads(encode_task(name, payload)))

    def drain(self) -> List[Dict[str, Any]]:
        tasks, self.tasks = self.tasks, []
        return tasks


def build_task_queue(backend: Optional[str] = None):
    backend = (backend or config.TASK_QUEUE_BACKEND).lower()
    if backend == "memory":
        return InMemoryTaskQueue()
    if backend == "redis":
        return RedisTaskQueue(config.REDIS_URL, config.WORKER_QUEUE)
    raise ValueError(f"Unknown TASK_QUEUE_BACKEND: {backend}")
