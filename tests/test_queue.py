"""Tests for the task queue backends."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from trickplay_service.config import Settings
from trickplay_service.tasks.queue import (
    ITEM_TASK_PREFIX,
    TASK_CANCEL_PREFIX,
    TASK_STATUS_PREFIX,
    TASK_TYPE_BATCH,
    TASK_TYPE_ITEM,
    TRICKPLAY_QUEUE,
    MemoryTaskQueue,
    RedisTaskQueue,
    create_task_queue,
)


class TestMemoryTaskQueue:
    """Tests for the in-process backend."""

    @pytest.mark.asyncio
    async def test_enqueue_and_dequeue_batch(self):
        queue = MemoryTaskQueue()
        task_id = await queue.enqueue_batch()

        task = await queue.dequeue(timeout=1)

        assert task["id"] == task_id
        assert task["type"] == TASK_TYPE_BATCH
        assert (await queue.get_task_status(task_id))["status"] == "pending"

    @pytest.mark.asyncio
    async def test_dequeue_times_out(self):
        assert await MemoryTaskQueue().dequeue(timeout=0.01) is None

    @pytest.mark.asyncio
    async def test_item_tasks_are_deduplicated_until_released(self):
        queue = MemoryTaskQueue()

        first = await queue.enqueue_item("abc")
        second = await queue.enqueue_item("abc", force=True)
        assert first == second

        task = await queue.dequeue(timeout=1)
        assert task["type"] == TASK_TYPE_ITEM
        assert task["payload"] == {"item_id": "abc", "force": False}
        assert await queue.dequeue(timeout=0.01) is None

        await queue.release_item("abc", first)
        third = await queue.enqueue_item("abc")
        assert third != first

    @pytest.mark.asyncio
    async def test_release_by_other_task_is_ignored(self):
        queue = MemoryTaskQueue()
        task_id = await queue.enqueue_item("abc")

        await queue.release_item("abc", "someone-else")

        assert await queue.enqueue_item("abc") == task_id

    @pytest.mark.asyncio
    async def test_status_updates_merge(self):
        queue = MemoryTaskQueue()
        task_id = await queue.enqueue_batch()

        await queue.update_task_status(task_id, "running", progress=33.3333)
        await queue.update_task_status(task_id, "completed", result={"total": 3})
        status = await queue.get_task_status(task_id)

        assert status["status"] == "completed"
        assert status["progress"] == 33.33
        assert status["result"] == {"total": 3}
        assert status["type"] == TASK_TYPE_BATCH
        assert "updated_at" in status

    @pytest.mark.asyncio
    async def test_cancel_flags(self):
        queue = MemoryTaskQueue()
        task_id = await queue.enqueue_batch()

        assert await queue.request_cancel("unknown") is False
        assert await queue.is_cancel_requested(task_id) is False
        assert await queue.request_cancel(task_id) is True
        assert await queue.is_cancel_requested(task_id) is True

    @pytest.mark.asyncio
    async def test_unknown_status(self):
        assert await MemoryTaskQueue().get_task_status("nope") is None

    @pytest.mark.asyncio
    async def test_cancel_flag_cleared_when_task_ends(self):
        queue = MemoryTaskQueue()
        task_id = await queue.enqueue_batch()
        await queue.request_cancel(task_id)

        await queue.update_task_status(task_id, "running")
        assert await queue.is_cancel_requested(task_id) is True

        await queue.update_task_status(task_id, "cancelled", result={"cancelled": True})
        assert await queue.is_cancel_requested(task_id) is False
        assert (await queue.get_task_status(task_id))["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_statuses_expire_after_ttl(self):
        queue = MemoryTaskQueue(status_ttl_seconds=0)

        for _ in range(50):
            task_id = await queue.enqueue_batch()
            await queue.dequeue(timeout=1)
            await queue.request_cancel(task_id)
            await queue.update_task_status(task_id, "completed", progress=100.0)

        last = await queue.enqueue_batch()

        assert await queue.get_task_status(task_id) is None
        assert (await queue.get_task_status(last))["status"] == "pending"
        assert len(queue._statuses) == 1
        assert queue._cancelled == set()

    @pytest.mark.asyncio
    async def test_statuses_kept_within_ttl(self):
        queue = MemoryTaskQueue()
        first = await queue.enqueue_batch()
        await queue.update_task_status(first, "completed", progress=100.0)

        await queue.enqueue_batch()

        assert (await queue.get_task_status(first))["status"] == "completed"


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.set.return_value = True
    client.get.return_value = None
    return client


class TestRedisTaskQueue:
    """Tests for the Redis backend."""

    @pytest.mark.asyncio
    async def test_enqueue_batch(self, redis_client):
        queue = RedisTaskQueue(redis_client)
        task_id = await queue.enqueue_batch()

        key, payload = redis_client.lpush.await_args.args
        assert key == TRICKPLAY_QUEUE
        task = json.loads(payload)
        assert task["id"] == task_id
        assert task["type"] == TASK_TYPE_BATCH
        status_key = redis_client.set.await_args.args[0]
        assert status_key == f"{TASK_STATUS_PREFIX}{task_id}"

    @pytest.mark.asyncio
    async def test_enqueue_item_claims_item(self, redis_client):
        queue = RedisTaskQueue(redis_client)
        task_id = await queue.enqueue_item("abc", force=True)

        claim = redis_client.set.await_args_list[0]
        assert claim.args == (f"{ITEM_TASK_PREFIX}abc", task_id)
        assert claim.kwargs["nx"] is True
        task = json.loads(redis_client.lpush.await_args.args[1])
        assert task["payload"] == {"item_id": "abc", "force": True}

    @pytest.mark.asyncio
    async def test_enqueue_item_returns_existing_task(self, redis_client):
        redis_client.set.return_value = None
        redis_client.get.return_value = "existing-task"
        queue = RedisTaskQueue(redis_client)

        assert await queue.enqueue_item("abc") == "existing-task"
        redis_client.lpush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dequeue(self, redis_client):
        redis_client.brpop.return_value = (TRICKPLAY_QUEUE, json.dumps({"id": "t1", "type": "batch"}))
        queue = RedisTaskQueue(redis_client)

        assert await queue.dequeue(timeout=1) == {"id": "t1", "type": "batch"}

        redis_client.brpop.return_value = None
        assert await queue.dequeue(timeout=1) is None

    @pytest.mark.asyncio
    async def test_update_merges_existing_status(self, redis_client):
        redis_client.get.return_value = json.dumps({"status": "pending", "type": "batch"})
        queue = RedisTaskQueue(redis_client)

        await queue.update_task_status("t1", "failed", error="boom")

        key, payload = redis_client.set.await_args.args
        assert key == f"{TASK_STATUS_PREFIX}t1"
        data = json.loads(payload)
        assert data["status"] == "failed"
        assert data["error"] == "boom"
        assert data["type"] == "batch"

    @pytest.mark.asyncio
    async def test_request_cancel(self, redis_client):
        queue = RedisTaskQueue(redis_client)
        assert await queue.request_cancel("t1") is False

        redis_client.get.return_value = json.dumps({"status": "running"})
        assert await queue.request_cancel("t1") is True
        assert redis_client.set.await_args.args[0] == f"{TASK_CANCEL_PREFIX}t1"

        redis_client.exists.return_value = 1
        assert await queue.is_cancel_requested("t1") is True

    @pytest.mark.asyncio
    async def test_release_only_own_claim(self, redis_client):
        queue = RedisTaskQueue(redis_client)

        redis_client.get.return_value = "other-task"
        await queue.release_item("abc", "t1")
        redis_client.delete.assert_not_awaited()

        redis_client.get.return_value = "t1"
        await queue.release_item("abc", "t1")
        redis_client.delete.assert_awaited_once_with(f"{ITEM_TASK_PREFIX}abc")

    @pytest.mark.asyncio
    async def test_close(self, redis_client):
        await RedisTaskQueue(redis_client).close()
        redis_client.aclose.assert_awaited_once()


class TestCreateTaskQueue:
    """Tests for backend selection."""

    def test_memory_backend(self):
        settings = Settings(TASK_BACKEND="memory", _env_file=None)
        assert isinstance(create_task_queue(settings), MemoryTaskQueue)

    def test_redis_backend(self):
        settings = Settings(TASK_BACKEND="redis", REDIS_URL="redis://cache:6379/1", _env_file=None)

        with patch("trickplay_service.tasks.queue.redis.from_url", return_value=MagicMock()) as from_url:
            queue = create_task_queue(settings)

        assert isinstance(queue, RedisTaskQueue)
        from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
