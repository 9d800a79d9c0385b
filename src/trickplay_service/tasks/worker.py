"""Background worker that runs queued trickplay generation tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..errors import GenerationCancelled
from ..generation.orchestrator import TrickplayOrchestrator
from ..generation.types import GenerationStatus
from .queue import TASK_TYPE_BATCH, TASK_TYPE_ITEM, TaskQueue

logger = logging.getLogger(__name__)


class GenerationWorker:
    """Consumes batch and single-item tasks and feeds them to the orchestrator."""

    def __init__(self, queue: TaskQueue, orchestrator: TrickplayOrchestrator, concurrency: int = 1):
        self.queue = queue
        self.orchestrator = orchestrator
        self.concurrency = concurrency
        self.running = False
        self._tasks: list[asyncio.Task] = []
        # One cooperative cancel signal per in-flight task
        self._cancel_events: dict[str, asyncio.Event] = {}

    async def start(self) -> None:
        """Start the consumer loops."""
        if self.running:
            logger.warning("Worker already running")
            return

        self.running = True
        self._tasks = [asyncio.create_task(self._run()) for _ in range(self.concurrency)]
        logger.info(f"Generation worker started with {self.concurrency} consumers")

    async def stop(self) -> None:
        """Signal in-flight runs to cancel and stop the consumer loops."""
        logger.info("Stopping generation worker...")
        self.running = False
        for event in self._cancel_events.values():
            event.set()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            try:
                await asyncio.wait_for(asyncio.gather(*self._tasks, return_exceptions=True), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Timed out waiting for worker consumers to exit")
        self._tasks = []
        logger.info("Generation worker stopped")

    async def cancel(self, task_id: str) -> bool:
        """Request cancellation of a queued or running task."""
        known = await self.queue.request_cancel(task_id)
        event = self._cancel_events.get(task_id)
        if event is not None:
            event.set()
        return known

    async def _run(self) -> None:
        while self.running:
            try:
                task = await self.queue.dequeue(timeout=1)
                if task is None:
                    continue
                await self.process_task(task)
            except asyncio.CancelledError:
                logger.info("Worker loop cancelled")
                break
            except Exception as e:
                logger.exception(f"Worker error: {e}")
                if self.running:
                    await asyncio.sleep(1)

    async def process_task(self, task: dict[str, Any]) -> None:
        """Run a single task, recording its status. Never raises for task failures."""
        task_id = task["id"]
        task_type = task["type"]
        payload = task.get("payload", {})

        if await self.queue.is_cancel_requested(task_id):
            logger.info(f"Task {task_id} was cancelled before it started")
            result: dict[str, Any] = {"cancelled": True}
            if task_type == TASK_TYPE_ITEM:
                result["itemId"] = payload.get("item_id")
            await self.queue.update_task_status(task_id, "cancelled", result=result)
            await self._release(task_type, payload, task_id)
            return

        logger.info(f"Processing task {task_id} (type: {task_type})")
        cancel_event = asyncio.Event()
        self._cancel_events[task_id] = cancel_event

        try:
            await self.queue.update_task_status(task_id, "running", progress=0.0)

            if task_type == TASK_TYPE_BATCH:
                result = await self._process_batch_task(task_id, cancel_event)
            elif task_type == TASK_TYPE_ITEM:
                result = await self._process_item_task(payload, cancel_event)
            else:
                raise ValueError(f"Unknown task type: {task_type}")

            if result.get("cancelled"):
                await self.queue.update_task_status(task_id, "cancelled", result=result)
                logger.info(f"Task {task_id} cancelled")
            else:
                await self.queue.update_task_status(task_id, "completed", progress=100.0, result=result)
                logger.info(f"Task {task_id} completed")

        except asyncio.CancelledError:
            logger.info(f"Task {task_id} interrupted by shutdown")
            raise
        except Exception as e:
            logger.exception(f"Task {task_id} failed: {e}")
            await self.queue.update_task_status(task_id, "failed", error=str(e))
        finally:
            self._cancel_events.pop(task_id, None)
            await self._release(task_type, payload, task_id)

    async def _process_batch_task(self, task_id: str, cancel_event: asyncio.Event) -> dict[str, Any]:
        async def report(percent: float) -> None:
            await self.queue.update_task_status(task_id, "running", progress=percent)
            if await self.queue.is_cancel_requested(task_id):
                cancel_event.set()

        result = await self.orchestrator.run_batch(progress=report, cancel_event=cancel_event)
        return result.to_dict()

    async def _process_item_task(self, payload: dict[str, Any], cancel_event: asyncio.Event) -> dict[str, Any]:
        item_id = payload["item_id"]
        item = await self.orchestrator.catalog.get_item(item_id)
        if item is None:
            raise ValueError(f"Unknown item: {item_id}")

        try:
            outcomes = await self.orchestrator.run_item(
                item, cancel_event=cancel_event, force=payload.get("force", False)
            )
        except GenerationCancelled:
            return {"itemId": item_id, "cancelled": True}

        failed = [o for o in outcomes if o.status == GenerationStatus.FAILED]
        if failed:
            raise RuntimeError(failed[0].error or f"Generation failed for {item_id}")
        return {"itemId": item_id, "outcomes": [o.to_dict() for o in outcomes]}

    async def _release(self, task_type: str, payload: dict[str, Any], task_id: str) -> None:
        if task_type == TASK_TYPE_ITEM and "item_id" in payload:
            await self.queue.release_item(payload["item_id"], task_id)
