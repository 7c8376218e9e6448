"""Celery producer side for fire-and-forget automation tasks.

The core service never imports the worker package; tasks are sent by name
with the same serialization settings the worker uses.
"""

import logging
from functools import lru_cache
from typing import Any, Protocol

from celery import Celery

logger = logging.getLogger(__name__)

AUTOMATION_QUEUE = "automation"

GENERATE_MESSAGE_TASK = "automation.generate_message"
REGENERATE_MESSAGE_TASK = "automation.regenerate_message"


class TaskQueue(Protocol):
    def enqueue(self, task_name: str, payload: dict[str, Any]) -> str: ...


class CeleryTaskQueue:
    """Sends tasks to the worker through the Celery broker."""

    def __init__(self, celery_app: Celery, queue: str = AUTOMATION_QUEUE):
        self.celery_app = celery_app
        self.queue = queue

    def enqueue(self, task_name: str, payload: dict[str, Any]) -> str:
        """Send a task by name and return its id."""
        result = self.celery_app.send_task(
            task_name,
            kwargs={"payload": payload},
            queue=self.queue,
        )
        logger.info(f"Enqueued {task_name} as {result.id}")
        return result.id


@lru_cache
def get_celery_app() -> Celery:
    from coldai_core.config import get_settings

    settings = get_settings()
    celery_app = Celery(
        "coldai",
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
    )
    celery_app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_routes={"automation.*": {"queue": AUTOMATION_QUEUE}},
    )
    return celery_app


def get_task_queue() -> CeleryTaskQueue:
    return CeleryTaskQueue(get_celery_app())


__all__ = [
    "AUTOMATION_QUEUE",
    "CeleryTaskQueue",
    "GENERATE_MESSAGE_TASK",
    "REGENERATE_MESSAGE_TASK",
    "TaskQueue",
    "get_celery_app",
    "get_task_queue",
]
