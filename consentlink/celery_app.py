"""Celery application instance.

Usage:
    celery -A consentlink.celery_app worker -Q email --loglevel=info
"""

from celery import Celery

from consentlink.config import settings

app = Celery(
    "consentlink",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_ignore_result=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "consentlink.tasks.send_email.*": {"queue": "email"},
    },
)

app.autodiscover_tasks(["consentlink.tasks"])

# Explicit import to ensure the task is always registered
import consentlink.tasks.send_email  # noqa: F401, E402
