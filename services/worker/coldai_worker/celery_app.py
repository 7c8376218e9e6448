"""Celery application configuration for Cold AI Worker."""

import os

from celery import Celery
from celery.signals import setup_logging

from coldai_core.observability.logging import configure_logging

# Celery configuration from environment
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")

app = Celery(
    "coldai_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "coldai_worker.tasks.automation",
    ],
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds)
    task_soft_time_limit=300,  # 5 minutes
    task_time_limit=600,  # 10 minutes
    # Queue routing
    task_routes={
        "automation.*": {"queue": "automation"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Send scheduled messages once they are due
    "dispatch-scheduled-periodic": {
        "task": "automation.dispatch_scheduled",
        "schedule": 60.0,  # 1 minute
        "args": (),
    },
}


@setup_logging.connect
def configure_worker_logging(**kwargs):
    """Replace Celery's log setup with the shared JSON logging."""
    configure_logging(
        os.getenv("LOG_LEVEL", "INFO"),
        json_format=os.getenv("LOG_JSON", "true").lower() != "false",
        service_name="coldai-worker",
    )


if __name__ == "__main__":
    app.start()
