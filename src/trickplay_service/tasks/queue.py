"""Task queue for background trickplay generation (Redis or in-process)."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Any

import redis.asyncio as redis

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

TRICKPLAY_QUEUE = "trickplay_tasks"
TASK_STATUS_PREFIX = "trickplay_task_status:"
TASK_CANCEL_PREFIX = "trickplay_task_cancel:"
ITEM_TASK_PREFIX = "trickplay_item_task:"

TASK_STATUS_TTL_SECONDS = 60 * 60 * 24
# Upper bound on how long an on-demand request blocks re-scheduling the same item
ITEM_TASK_TTL_SECONDS = 60 * 60

TASK_TYPE_BATCH = "batch"
TASK_TYPE_ITEM = "item"
TERMINAL_STATUSES = {"completed", "failed", "cancelled"}


def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


def _new_task(task_type: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "type": task_type,
        "payload": payload,
        "status": "pending",
        "created_at": _now(),
    }


class TaskQueue:
    """Interface shared by the queue backends."""

    async def enqueue_batch(self) -> str:
        """Enqueue a full-library generation run. Returns the task ID."""
        raise NotImplementedError

    async def enqueue_item(self, item_id: str, force: bool = False) -> str:
        """
        Enqueue generation for one item.

        If a task for the item is already pending or running, its ID is
        returned instead of queuing a duplicate.
        """
        raise NotImplementedError

    async def dequeue(self, timeout: int = 5) -> dict[str, Any] | None:
        raise NotImplementedError

    async def update_task_status(
        self,
        task_id: str,
        status: str,
        error: str | None = None,
        progress: float | None = None,
        result: dict[str, Any] | None = None,
    ) -> None:
        raise NotImplementedError

    async def get_task_status(self, task_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    async def request_cancel(self, task_id: str) -> bool:
        """Flag a task for cooperative cancellation. False if the task is unknown."""
        raise NotImplementedError

    async def is_cancel_requested(self, task_id: str) -> bool:
        raise NotImplementedError

    async def release_item(self, item_id: str, task_id: str) -> None:
        """Allow new tasks for item_id once task_id has finished."""
        raise NotImplementedError

    async def close(self) -> None:
        pass

    @staticmethod
    def _merge_status(
        current: dict[str, Any] | None,
        status: str,
        error: str | None,
        progress: float | None,
        result: dict[str, Any] | None,
    ) -> dict[str, Any]:
        data = dict(current or {})
        data["status"] = status
        data["updated_at"] = _now()
        if error:
            data["error"] = error
        if progress is not None:
            data["progress"] = round(progress, 2)
        if result is not None:
            data["result"] = result
        return data


class RedisTaskQueue(TaskQueue):
    """Redis-based task queue, shared by every service process."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def _push(self, task: dict[str, Any]) -> None:
        await self.redis.set(
            f"{TASK_STATUS_PREFIX}{task['id']}",
            json.dumps({"status": "pending", "type": task["type"], "created_at": task["created_at"]}),
            ex=TASK_STATUS_TTL_SECONDS,
        )
        await self.redis.lpush(TRICKPLAY_QUEUE, json.dumps(task))

    async def enqueue_batch(self) -> str:
        task = _new_task(TASK_TYPE_BATCH, {})
        await self._push(task)
        logger.info(f"Enqueued batch task {task['id']}")
        return task["id"]

    async def enqueue_item(self, item_id: str, force: bool = False) -> str:
        task = _new_task(TASK_TYPE_ITEM, {"item_id": item_id, "force": force})
        claimed = await self.redis.set(
            f"{ITEM_TASK_PREFIX}{item_id}", task["id"], nx=True, ex=ITEM_TASK_TTL_SECONDS
        )
        if not claimed:
            existing = await self.redis.get(f"{ITEM_TASK_PREFIX}{item_id}")
            if existing:
                logger.info(f"Item {item_id} already has task {existing}, not re-queuing")
                return existing
            await self.redis.set(f"{ITEM_TASK_PREFIX}{item_id}", task["id"], ex=ITEM_TASK_TTL_SECONDS)

        await self._push(task)
        logger.info(f"Enqueued item task {task['id']} for item {item_id}")
        return task["id"]

    async def dequeue(self, timeout: int = 5) -> dict[str, Any] | None:
        result = await self.redis.brpop(TRICKPLAY_QUEUE, timeout=timeout)
        if result is None:
            return None

        _, task_json = result
        return json.loads(task_json)

    async def update_task_status(
        self,
        task_id: str,
        status: str,
        error: str | None = None,
        progress: float | None = None,
        result: dict[str, Any] | None = None,
    ) -> None:
        current = await self.get_task_status(task_id)
        data = self._merge_status(current, status, error, progress, result)
        await self.redis.set(f"{TASK_STATUS_PREFIX}{task_id}", json.dumps(data), ex=TASK_STATUS_TTL_SECONDS)

    async def get_task_status(self, task_id: str) -> dict[str, Any] | None:
        data = await self.redis.get(f"{TASK_STATUS_PREFIX}{task_id}")
        if data is None:
            return None
        return json.loads(data)

    async def request_cancel(self, task_id: str) -> bool:
        if await self.get_task_status(task_id) is None:
            return False
        await self.redis.set(f"{TASK_CANCEL_PREFIX}{task_id}", "1", ex=TASK_STATUS_TTL_SECONDS)
        return True

    async def is_cancel_requested(self, task_id: str) -> bool:
        return bool(await self.redis.exists(f"{TASK_CANCEL_PREFIX}{task_id}"))

    async def release_item(self, item_id: str, task_id: str) -> None:
        key = f"{ITEM_TASK_PREFIX}{item_id}"
        if await self.redis.get(key) == task_id:
            await self.redis.delete(key)

    async def close(self) -> None:
        await self.redis.aclose()


class MemoryTaskQueue(TaskQueue):
    """In-process queue for single-instance deployments and tests."""

    def __init__(self, status_ttl_seconds: float = TASK_STATUS_TTL_SECONDS):
        self.status_ttl_seconds = status_ttl_seconds
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._statuses: dict[str, dict[str, Any]] = {}
        # task id -> monotonic time of its last status write, oldest first
        self._written: OrderedDict[str, float] = OrderedDict()
        self._item_tasks: dict[str, str] = {}
        self._cancelled: set[str] = set()

    def _set_status(self, task_id: str, data: dict[str, Any]) -> None:
        self._statuses[task_id] = data
        self._written[task_id] = time.monotonic()
        self._written.move_to_end(task_id)

    def _expire(self) -> None:
        """Drop status records not written for status_ttl_seconds, as Redis key expiry does."""
        now = time.monotonic()
        while self._written:
            task_id, written_at = next(iter(self._written.items()))
            if now - written_at < self.status_ttl_seconds:
                break
            del self._written[task_id]
            self._statuses.pop(task_id, None)
            self._cancelled.discard(task_id)

    def _push(self, task: dict[str, Any]) -> None:
        self._expire()
        self._set_status(
            task["id"],
            {"status": "pending", "type": task["type"], "created_at": task["created_at"]},
        )
        self._queue.put_nowait(task)

    async def enqueue_batch(self) -> str:
        task = _new_task(TASK_TYPE_BATCH, {})
        self._push(task)
        logger.info(f"Enqueued batch task {task['id']}")
        return task["id"]

    async def enqueue_item(self, item_id: str, force: bool = False) -> str:
        existing = self._item_tasks.get(item_id)
        if existing is not None:
            logger.info(f"Item {item_id} already has task {existing}, not re-queuing")
            return existing

        task = _new_task(TASK_TYPE_ITEM, {"item_id": item_id, "force": force})
        self._item_tasks[item_id] = task["id"]
        self._push(task)
        logger.info(f"Enqueued item task {task['id']} for item {item_id}")
        return task["id"]

    async def dequeue(self, timeout: int = 5) -> dict[str, Any] | None:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def update_task_status(
        self,
        task_id: str,
        status: str,
        error: str | None = None,
        progress: float | None = None,
        result: dict[str, Any] | None = None,
    ) -> None:
        self._set_status(
            task_id, self._merge_status(self._statuses.get(task_id), status, error, progress, result)
        )
        if status in TERMINAL_STATUSES:
            self._cancelled.discard(task_id)

    async def get_task_status(self, task_id: str) -> dict[str, Any] | None:
        status = self._statuses.get(task_id)
        return dict(status) if status is not None else None

    async def request_cancel(self, task_id: str) -> bool:
        if task_id not in self._statuses:
            return False
        self._cancelled.add(task_id)
        return True

    async def is_cancel_requested(self, task_id: str) -> bool:
        return task_id in self._cancelled

    async def release_item(self, item_id: str, task_id: str) -> None:
        if self._item_tasks.get(item_id) == task_id:
            del self._item_tasks[item_id]


def create_task_queue(settings: Settings | None = None) -> TaskQueue:
    """Build the queue backend selected by TASK_BACKEND."""
    settings = settings or get_settings()
    if settings.task_backend == "redis":
        client = redis.from_url(settings.redis_url, decode_responses=True)
        return RedisTaskQueue(client)
    return MemoryTaskQueue()
