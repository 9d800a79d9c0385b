"""Background task processing."""

from .queue import MemoryTaskQueue, RedisTaskQueue, TaskQueue, create_task_queue
from .worker import GenerationWorker

__all__ = [
    "TaskQueue",
    "MemoryTaskQueue",
    "RedisTaskQueue",
    "create_task_queue",
    "GenerationWorker",
]
