"""Cold AI Worker Tasks."""

# Import all tasks to register them with Celery
from coldai_worker.tasks import automation  # noqa: F401
