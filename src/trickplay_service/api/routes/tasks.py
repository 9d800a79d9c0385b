"""Generation task routes: trigger a library run, poll it, cancel it."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from ...tasks.queue import TaskQueue
from ...tasks.worker import GenerationWorker

logger = logging.getLogger(__name__)

router = APIRouter()


class TaskCreatedResponse(BaseModel):
    """Response model for an enqueued task."""

    taskId: str
    status: str = "pending"


class TaskStatusResponse(BaseModel):
    """Response model for task status."""

    taskId: str
    status: str
    type: str | None = None
    progress: float | None = None
    error: str | None = None
    result: dict[str, Any] | None = None
    createdAt: str | None = None
    updatedAt: str | None = None


@router.post("/GenerateBIF", response_model=TaskCreatedResponse, status_code=202)
async def generate_all(request: Request):
    """Queue a preview generation run over the whole library."""
    queue: TaskQueue = request.app.state.queue
    task_id = await queue.enqueue_batch()
    return TaskCreatedResponse(taskId=task_id)


@router.get("/{task_id}", response_model=TaskStatusResponse)
async def get_task(request: Request, task_id: str):
    """Get the status and progress of a task."""
    queue: TaskQueue = request.app.state.queue
    data = await queue.get_task_status(task_id)
    if data is None:
        raise HTTPException(status_code=404, detail="Task not found")

    return TaskStatusResponse(
        taskId=task_id,
        status=data["status"],
        type=data.get("type"),
        progress=data.get("progress"),
        error=data.get("error"),
        result=data.get("result"),
        createdAt=data.get("created_at"),
        updatedAt=data.get("updated_at"),
    )


@router.post("/{task_id}/Cancel", status_code=202)
async def cancel_task(request: Request, task_id: str):
    """Ask a queued or running task to stop at its next checkpoint."""
    worker: GenerationWorker = request.app.state.worker
    if not await worker.cancel(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    logger.info(f"Cancellation requested for task {task_id}")
    return {"taskId": task_id, "cancelRequested": True}
